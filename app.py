"""
Engineering Drawing Lab - メインアプリケーション
Flask + PostgreSQL/SQLite: AI drawing evaluation, student accounts, admin tools
"""

import os
import logging

from flask import Flask, jsonify
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from drawlab.core.config import Config
from drawlab.core.database import DatabaseManager
from drawlab.core.exceptions import DrawLabError
from drawlab.core.sessions import AdminSessionManager, StudentSessionManager
from drawlab.routes import main_bp, functions_bp, table_bp
from drawlab.services import AdminService, DrawingEvaluator, StudentAuthService


def create_app(config_class=Config):
    """Application Factory Pattern"""
    app = Flask(__name__)
    app.config.from_object(config_class)

    logging.basicConfig(level=getattr(logging, str(config_class.LOG_LEVEL).upper(), logging.INFO))

    # セキュリティ設定
    _configure_security(app, config_class)

    # データベース初期化
    db_manager = _init_database(config_class)

    # アプリケーションコンテキスト設定
    app.db_manager = db_manager
    student_sessions = StudentSessionManager(db_manager, session_days=config_class.STUDENT_SESSION_DAYS)
    admin_sessions = AdminSessionManager(db_manager, session_days=config_class.ADMIN_SESSION_DAYS)
    app.student_auth = StudentAuthService(
        db_manager, config_class, sessions=student_sessions, admin_sessions=admin_sessions
    )
    app.admin_api = AdminService(
        db_manager, config_class, admin_sessions=admin_sessions, student_sessions=student_sessions
    )
    app.evaluator = DrawingEvaluator.from_config(config_class)

    CORS(app, origins=config_class.CORS_ORIGINS)

    # ルーティング登録
    _register_blueprints(app)
    _register_error_handlers(app)

    # 必要なディレクトリ作成
    _create_directories(app)

    return app


def _configure_security(app, config_class):
    """セキュリティ設定"""
    if not app.config['SECRET_KEY']:
        if config_class.DEBUG:
            app.config['SECRET_KEY'] = 'dev-secret-key-change-in-production'
            app.logger.warning("開発用のSECRET_KEYを使用しています。本番環境では必ず環境変数を設定してください。")
        else:
            raise ValueError("セキュリティエラー: SECRET_KEY環境変数が設定されていません。")

    if not config_class.ADMIN_PASSWORD:
        if config_class.DEBUG:
            config_class.ADMIN_PASSWORD = 'dev-admin-password-CHANGE-ME'
            app.logger.warning("開発用のデフォルト管理者パスワードを使用しています。")
        else:
            raise ValueError("セキュリティエラー: ADMIN_PASSWORD環境変数が設定されていません。")

    if not config_class.AI_API_KEY:
        app.logger.warning("AI_API_KEY is not set; drawing evaluation will return 500")


def _init_database(config_class):
    """データベース初期化"""
    try:
        db_manager = DatabaseManager(config_class.get_db_config())
        db_manager.init_database()
        return db_manager
    except Exception as e:
        raise RuntimeError(f"データベース初期化エラー: {e}")


def _register_blueprints(app):
    """ブループリント登録"""
    for blueprint in (main_bp, functions_bp, table_bp):
        app.register_blueprint(blueprint)


def _register_error_handlers(app):
    """Every failure is answered as JSON ``{"error": message}``"""

    @app.errorhandler(DrawLabError)
    def _handle_app_error(error):
        if error.status_code >= 500:
            app.logger.error(f"{type(error).__name__}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def _handle_http_error(error):
        return jsonify({'error': error.description}), error.code

    @app.errorhandler(Exception)
    def _handle_unexpected(error):
        app.logger.exception(f"Unhandled error: {error}")
        return jsonify({'error': str(error) or 'Internal server error'}), 500


def _create_directories(app):
    """必要なディレクトリ作成"""
    os.makedirs(app.config['UPLOAD_FOLDER'], exist_ok=True)


if __name__ == '__main__':
    app = create_app()
    app.logger.info(f"🚀 Starting Flask app on port {Config.PORT}")
    app.logger.info(f"🔧 Debug mode: {'ON (開発環境)' if Config.DEBUG else 'OFF (本番環境)'}")
    app.logger.info(f"💾 Database: {Config.database_type().upper()}")
    app.run(debug=Config.DEBUG, host=Config.HOST, port=Config.PORT)
