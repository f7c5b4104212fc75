"""
ルーティングモジュール
"""
from .main_routes import main_bp
from .function_routes import functions_bp
from .table_routes import table_bp

__all__ = ['main_bp', 'functions_bp', 'table_bp']
