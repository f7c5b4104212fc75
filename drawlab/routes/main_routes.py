"""
ヘルスチェック
"""
import logging

from flask import Blueprint, current_app, jsonify

from drawlab.core.database import to_db_time, utcnow

logger = logging.getLogger(__name__)

main_bp = Blueprint('main', __name__)


@main_bp.route('/health')
def health():
    """ヘルスチェックエンドポイント"""
    try:
        current_app.db_manager.execute_query("SELECT 1 AS ok")
    except Exception as e:
        logger.error(f"Health check database error: {e}")
        return jsonify({'status': 'unhealthy', 'database': 'error', 'timestamp': to_db_time(utcnow())}), 503
    return jsonify({
        'status': 'healthy',
        'database': current_app.db_manager.db_type,
        'timestamp': to_db_time(utcnow()),
    }), 200
