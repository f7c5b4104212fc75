"""
Engineering drawing lab: AI drawing evaluation, student accounts and admin tools
"""

__version__ = '1.0.0'
