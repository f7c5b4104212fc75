"""
Configuration file for the application
Loads settings from environment variables
"""
import os
from dotenv import load_dotenv
import re

# Load environment variables (for local development)
load_dotenv()


def _env_flag(name, default):
    return os.environ.get(name, default).lower() == 'true'


class Config:
    """Application configuration"""

    # Flask settings
    SECRET_KEY = os.environ.get('SECRET_KEY')
    FLASK_ENV = os.environ.get('FLASK_ENV', 'development')
    DEBUG = _env_flag('DEBUG', 'False')
    TESTING = False
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    # Database settings
    DATABASE_URL = os.environ.get('DATABASE_URL', 'sqlite:///drawing_lab.db')

    # Admin settings
    ADMIN_USERNAME = os.environ.get('ADMIN_USERNAME', 'admin')
    ADMIN_PASSWORD = os.environ.get('ADMIN_PASSWORD')
    ADMIN_SESSION_DAYS = int(os.environ.get('ADMIN_SESSION_DAYS', 7))

    # Student accounts
    PASSWORD_SALT = os.environ.get('PASSWORD_SALT', 'student_salt_772855')
    STUDENT_SESSION_DAYS = int(os.environ.get('STUDENT_SESSION_DAYS', 7))
    RESET_TOKEN_MINUTES = int(os.environ.get('RESET_TOKEN_MINUTES', 60))
    # The reset token is handed back to the requester instead of being mailed.
    RESET_TOKEN_IN_RESPONSE = _env_flag('RESET_TOKEN_IN_RESPONSE', 'True')

    # AI gateway (OpenAI compatible chat completions)
    AI_GATEWAY_URL = os.environ.get('AI_GATEWAY_URL', 'https://ai.gateway.lovable.dev/v1/chat/completions')
    AI_API_KEY = os.environ.get('AI_API_KEY') or os.environ.get('LOVABLE_API_KEY')
    AI_MODEL = os.environ.get('AI_MODEL', 'google/gemini-2.5-flash')
    AI_TIMEOUT = float(os.environ.get('AI_TIMEOUT', 120))

    # Uploaded reference files
    UPLOAD_FOLDER = os.environ.get('UPLOAD_FOLDER', 'uploads')
    MAX_CONTENT_LENGTH = int(os.environ.get('MAX_UPLOAD_MB', 16)) * 1024 * 1024

    # Browser clients
    CORS_ORIGINS = [o.strip() for o in os.environ.get('CORS_ORIGINS', '*').split(',') if o.strip()]

    # Server settings
    PORT = int(os.environ.get('PORT', 5002))
    HOST = os.environ.get('HOST', '0.0.0.0')

    @classmethod
    def database_type(cls):
        """Detect database type from DATABASE_URL"""
        url = cls.DATABASE_URL or ''
        if url.startswith('postgresql://') or url.startswith('postgres://'):
            return 'postgresql'
        return 'sqlite'

    @classmethod
    def get_db_config(cls):
        """Get database configuration dictionary"""
        url = cls.DATABASE_URL or 'sqlite:///drawing_lab.db'

        if cls.database_type() == 'postgresql':
            # Normalize postgres scheme (Render often gives postgres://)
            if url.startswith('postgres://'):
                url = url.replace('postgres://', 'postgresql://', 1)
            match = re.match(r'postgresql://([^:]+):([^@]+)@([^:/]+):?(\d+)?/(.+)', url)
            if not match:
                raise ValueError('Invalid PostgreSQL DATABASE_URL format')
            return {
                'DATABASE_TYPE': 'postgresql',
                'DB_USER': match.group(1),
                'DB_PASSWORD': match.group(2),
                'DB_HOST': match.group(3),
                'DB_PORT': match.group(4) or '5432',
                'DB_NAME': match.group(5)
            }

        return {
            'DATABASE_TYPE': 'sqlite',
            'DATABASE': url.replace('sqlite:///', '')
        }
