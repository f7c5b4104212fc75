"""
設定・データベース・共通部品
"""
