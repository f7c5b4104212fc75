"""
Database backed sessions for students and the admin.

Student sessions are opaque random tokens with an expiry; several may be
active per student. The admin side keeps one row in ``admin_lock`` that
names the only admin session currently allowed to act.
"""

import logging
from datetime import timedelta

from .database import utcnow, to_db_time, format_timestamp
from .security import generate_session_token

logger = logging.getLogger(__name__)


class StudentSessionManager:
    def __init__(self, db_manager, session_days=7, clock=utcnow):
        self.db = db_manager
        self.session_days = session_days
        self.clock = clock

    def create_session(self, student_email):
        """Insert a new session row and return its token"""
        session_token = generate_session_token()
        expires_at = self.clock() + timedelta(days=self.session_days)
        self.db.execute_query(
            "INSERT INTO student_sessions (student_email, session_token, expires_at) VALUES (?, ?, ?)",
            (student_email, session_token, to_db_time(expires_at))
        )
        return session_token

    def get_session(self, session_token):
        """Return the session row, or None when missing or expired"""
        if not session_token:
            return None
        rows = self.db.execute_query(
            "SELECT student_email, expires_at FROM student_sessions "
            "WHERE session_token = ? AND expires_at > ?",
            (session_token, to_db_time(self.clock()))
        )
        if not rows:
            return None
        return {
            'student_email': rows[0]['student_email'],
            'expires_at': format_timestamp(rows[0]['expires_at'])
        }

    def delete_session(self, session_token):
        """Logout"""
        return self.db.execute_query(
            "DELETE FROM student_sessions WHERE session_token = ?", (session_token,)
        )

    def delete_student_sessions(self, student_email):
        """Forcefully log a student out of every device"""
        return self.db.execute_query(
            "DELETE FROM student_sessions WHERE student_email = ?", (student_email,)
        )

    def active_student_emails(self):
        rows = self.db.execute_query(
            "SELECT DISTINCT student_email FROM student_sessions WHERE expires_at > ?",
            (to_db_time(self.clock()),)
        )
        return [row['student_email'] for row in rows]

    def cleanup_expired_sessions(self):
        """期限切れセッションの一括削除"""
        deleted = self.db.execute_query(
            "DELETE FROM student_sessions WHERE expires_at < ?", (to_db_time(self.clock()),)
        )
        if deleted:
            logger.info("Cleaned up %s expired student sessions", deleted)
        return deleted


class AdminSessionManager:
    """Admin sessions guarded by the single-row admin lock.

    Logging in writes the new session id into the lock row with one UPDATE,
    so whichever login commits last is the active admin and any earlier
    token stops verifying.
    """

    LOCK_ID = 'main'

    def __init__(self, db_manager, session_days=7, clock=utcnow):
        self.db = db_manager
        self.session_days = session_days
        self.clock = clock

    def open_session(self, user_email='admin'):
        session_id = generate_session_token()
        expires_at = self.clock() + timedelta(days=self.session_days)
        self.db.execute_query(
            "INSERT INTO admin_sessions (id, user_email, expires_at) VALUES (?, ?, ?)",
            (session_id, user_email, to_db_time(expires_at))
        )
        updated = self.db.execute_query(
            "UPDATE admin_lock SET session_id = ?, expires_at = ? WHERE id = ?",
            (session_id, to_db_time(expires_at), self.LOCK_ID)
        )
        if updated != 1:
            raise RuntimeError("admin_lock row is missing; run init_database()")
        logger.info("Admin session opened, expires %s", to_db_time(expires_at))
        return session_id, to_db_time(expires_at)

    def is_active(self, session_id):
        """True when the session exists, is unexpired and holds the lock"""
        if not session_id:
            return False
        rows = self.db.execute_query(
            "SELECT s.id FROM admin_sessions s "
            "JOIN admin_lock l ON l.session_id = s.id "
            "WHERE l.id = ? AND s.id = ? AND s.expires_at > ?",
            (self.LOCK_ID, session_id, to_db_time(self.clock()))
        )
        return bool(rows)

    def close_session(self, session_id):
        self.db.execute_query("DELETE FROM admin_sessions WHERE id = ?", (session_id,))
        # 自分がロックを保持している場合のみ解放する
        self.db.execute_query(
            "UPDATE admin_lock SET session_id = NULL, expires_at = NULL WHERE id = ? AND session_id = ?",
            (self.LOCK_ID, session_id)
        )

    def active_session(self):
        rows = self.db.execute_query(
            "SELECT session_id, expires_at FROM admin_lock WHERE id = ? AND expires_at > ?",
            (self.LOCK_ID, to_db_time(self.clock()))
        )
        if not rows or not rows[0]['session_id']:
            return None
        return {'session_id': rows[0]['session_id'], 'expires_at': format_timestamp(rows[0]['expires_at'])}
