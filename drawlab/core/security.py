"""
Student password hashing and token generation
"""
import hashlib
import secrets


def hash_password(password, salt):
    """sha256(password + salt), hex encoded"""
    return hashlib.sha256((password + salt).encode('utf-8')).hexdigest()


def generate_session_token():
    """32 random bytes, hex encoded"""
    return secrets.token_hex(32)


def generate_reset_token():
    """16 random bytes, hex encoded"""
    return secrets.token_hex(16)


def constant_time_equals(a, b):
    return secrets.compare_digest((a or '').encode('utf-8'), (b or '').encode('utf-8'))
