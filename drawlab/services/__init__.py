"""
サービス層
"""
from .evaluation import DrawingEvaluator
from .student_auth import StudentAuthService
from .admin_api import AdminService

__all__ = ['DrawingEvaluator', 'StudentAuthService', 'AdminService']
