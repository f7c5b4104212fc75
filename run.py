#!/usr/bin/env python3
"""
Engineering Drawing Lab
起動スクリプト

使用方法:
    python run.py [--port PORT] [--host HOST] [--debug]

例:
    python run.py
    python run.py --port 8080
    python run.py --host 0.0.0.0 --port 5000 --debug
"""

import argparse
import sys

from app import create_app
from drawlab.core.config import Config


def main():
    """アプリケーションを起動"""
    parser = argparse.ArgumentParser(description='Engineering Drawing Lab API server')
    parser.add_argument('--host', default=Config.HOST, help=f'ホストアドレス (デフォルト: {Config.HOST})')
    parser.add_argument('--port', type=int, default=Config.PORT, help=f'ポート番号 (デフォルト: {Config.PORT})')
    parser.add_argument('--debug', action='store_true', help='デバッグモードで起動')

    args = parser.parse_args()

    if args.debug:
        Config.DEBUG = True

    app = create_app(Config)

    print("=" * 60)
    print("📐 Engineering Drawing Lab")
    print("=" * 60)
    print(f"📡 ホスト: {args.host}")
    print(f"🔌 ポート: {args.port}")
    print(f"🐛 デバッグモード: {'有効' if args.debug else '無効'}")
    print(f"💾 データベース: {Config.database_type()}")
    print(f"🌐 URL: http://{args.host}:{args.port}")
    print("=" * 60)
    print("🛑 停止するには Ctrl+C を押してください")
    print("=" * 60)

    try:
        app.run(
            host=args.host,
            port=args.port,
            debug=args.debug,
            use_reloader=args.debug
        )
    except KeyboardInterrupt:
        print("\n\n🛑 アプリケーションを停止しました")
        sys.exit(0)


if __name__ == '__main__':
    main()
