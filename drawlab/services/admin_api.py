"""
Admin API: single admin login, roster/attendance management and content.

Every action except ``login`` needs an ``adminToken`` that belongs to the
admin session currently holding the admin lock.
"""

import logging

from werkzeug.security import check_password_hash, generate_password_hash

from drawlab.core.database import INTEGRITY_ERRORS, utcnow, to_db_time, format_date
from drawlab.core.exceptions import (
    AuthenticationError, ConfigurationError, ConflictError, NotFoundError, RequestValidationError
)
from drawlab.core.media import sanitize_url
from drawlab.core.schemas import AdminEnvelope, AdminRequest, parse_request
from drawlab.core.security import constant_time_equals
from drawlab.core.sessions import AdminSessionManager, StudentSessionManager

logger = logging.getLogger(__name__)

SETTINGS_ID = 'main'

ROSTER_COLUMNS = 'email, branch, full_name, username, roll_no'


def branch_aliases(branch):
    """Older rows store computer engineering as plain 'computer'"""
    if branch == 'computer_engineering':
        return ['computer_engineering', 'computer']
    return [branch]


class AdminService:
    def __init__(self, db_manager, config, admin_sessions=None, student_sessions=None, clock=utcnow):
        self.db = db_manager
        self.config = config
        self.clock = clock
        self.admin_sessions = admin_sessions or AdminSessionManager(
            db_manager, session_days=config.ADMIN_SESSION_DAYS, clock=clock)
        self.student_sessions = student_sessions or StudentSessionManager(
            db_manager, session_days=config.STUDENT_SESSION_DAYS, clock=clock)

    def handle(self, body):
        envelope = parse_request(AdminEnvelope, body)
        if envelope.action != 'login':
            self.require_admin(envelope.admin_token)
        request = parse_request(AdminRequest, body)
        return getattr(self, f'_{request.action}')(request)

    def require_admin(self, admin_token):
        if not admin_token:
            raise AuthenticationError('Admin token required')
        if not self.admin_sessions.is_active(admin_token):
            raise AuthenticationError('Invalid or expired admin session')

    # ------------------------------------------------------------------
    # password

    def _stored_password_hash(self):
        rows = self.db.execute_query(
            "SELECT password_hash FROM admin_settings WHERE id = ?", (SETTINGS_ID,)
        )
        if rows and rows[0]['password_hash']:
            return rows[0]['password_hash']
        return None

    def check_password(self, password):
        stored = self._stored_password_hash()
        if stored:
            return check_password_hash(stored, password)

        configured = self.config.ADMIN_PASSWORD
        if not configured:
            raise ConfigurationError('ADMIN_PASSWORD is not configured')
        return constant_time_equals(password, configured)

    # ------------------------------------------------------------------
    # session actions

    def _login(self, req):
        if not req.password or not self.check_password(req.password):
            logger.warning("Failed admin login attempt")
            raise AuthenticationError('Invalid password')
        admin_token, expires_at = self.admin_sessions.open_session()
        return {'success': True, 'adminToken': admin_token, 'expiresAt': expires_at}

    def _verify(self, req):
        return {'valid': True}

    def _logout(self, req):
        self.admin_sessions.close_session(req.admin_token)
        return {'success': True}

    def _reset_password(self, req):
        password_hash = generate_password_hash(req.new_password)
        now = to_db_time(self.clock())
        updated = self.db.execute_query(
            "UPDATE admin_settings SET password_hash = ?, updated_at = ? WHERE id = ?",
            (password_hash, now, SETTINGS_ID)
        )
        if not updated:
            self.db.execute_query(
                "INSERT INTO admin_settings (id, password_hash, updated_at) VALUES (?, ?, ?)",
                (SETTINGS_ID, password_hash, now)
            )
        logger.info("Admin password updated")
        return {'success': True, 'message': 'Password updated successfully!'}

    # ------------------------------------------------------------------
    # roster

    def _get_students_by_branch(self, req):
        branches = branch_aliases(req.branch)
        placeholders = ', '.join('?' for _ in branches)
        students = self.db.execute_query(
            f"SELECT {ROSTER_COLUMNS} FROM students WHERE branch IN ({placeholders}) "
            "ORDER BY roll_no IS NULL, roll_no, email",
            tuple(branches)
        )
        return {'success': True, 'students': students}

    def _get_logged_in_students_by_branch(self, req):
        emails = self.student_sessions.active_student_emails()
        if not emails:
            return {'success': True, 'students': []}

        branches = branch_aliases(req.branch)
        students = self.db.execute_query(
            f"SELECT {ROSTER_COLUMNS} FROM students "
            f"WHERE branch IN ({', '.join('?' for _ in branches)}) "
            f"AND email IN ({', '.join('?' for _ in emails)}) "
            "ORDER BY roll_no IS NULL, roll_no, email",
            tuple(branches) + tuple(emails)
        )
        return {'success': True, 'students': students}

    def _remove_student_session(self, req):
        """Log the student out everywhere and lock the account"""
        self.student_sessions.delete_student_sessions(req.student_email)
        self.db.execute_query(
            "UPDATE students SET login_locked = 1 WHERE email = ?", (req.student_email,)
        )
        logger.info(f"Removed sessions and locked {req.student_email}")
        return {'success': True}

    def _unlock_student(self, req):
        self.db.execute_query(
            "UPDATE students SET login_locked = 0 WHERE email = ?", (req.student_email,)
        )
        return {'success': True}

    def _get_locked_students(self, req):
        students = self.db.execute_query(
            "SELECT email, username, full_name, avatar_url, branch, roll_no, points "
            "FROM students WHERE login_locked = 1 ORDER BY branch, email"
        )
        return {'success': True, 'students': students}

    # ------------------------------------------------------------------
    # attendance

    def _get_attendance_by_branch_month(self, req):
        if req.month_end < req.month_start:
            raise RequestValidationError('monthEnd must not be before monthStart')
        rows = self.db.execute_query(
            "SELECT id, student_email, date FROM attendance "
            "WHERE branch = ? AND date >= ? AND date <= ? ORDER BY date, student_email",
            (req.branch, req.month_start.isoformat(), req.month_end.isoformat())
        )
        attendance = [
            {'id': row['id'], 'student_email': row['student_email'], 'date': format_date(row['date'])}
            for row in rows
        ]
        return {'success': True, 'attendance': attendance}

    def _mark_attendance(self, req):
        try:
            self.db.execute_query(
                "INSERT INTO attendance (student_email, branch, date, marked_by, marked_at) "
                "VALUES (?, ?, ?, 'admin', ?)",
                (req.student_email, req.branch, req.date.isoformat(), to_db_time(self.clock()))
            )
        except INTEGRITY_ERRORS:
            raise ConflictError('Attendance already marked for this date')
        return {'success': True}

    def _unmark_attendance(self, req):
        self.db.execute_query(
            "DELETE FROM attendance WHERE branch = ? AND date = ? AND student_email = ?",
            (req.branch, req.date.isoformat(), req.student_email)
        )
        return {'success': True}

    # ------------------------------------------------------------------
    # content

    def _insert_content(self, req):
        item = req.content_item
        file_url = None
        if item.file_url:
            file_url = sanitize_url(item.file_url)
            if file_url is None:
                raise RequestValidationError('file_url is not a valid link')
        content_id = self.db.execute_insert(
            "INSERT INTO content (semester, drawing_type, content_type, title, file_url, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (item.semester, item.drawing_type, item.content_type, item.title, file_url,
             to_db_time(self.clock()))
        )
        logger.info(f"Content added: {item.content_type} '{item.title}' (id={content_id})")
        return {'success': True, 'id': content_id}

    def _delete_content(self, req):
        deleted = self.db.execute_query("DELETE FROM content WHERE id = ?", (req.content_id,))
        if not deleted:
            raise NotFoundError('Content not found')
        return {'success': True}
