"""
Student accounts, sessions and password resets.

``StudentAuthService.handle`` takes the decoded JSON body of
``POST /functions/student-auth`` and returns the response payload.
Failures are raised as ``DrawLabError`` subclasses.
"""

import logging
from datetime import timedelta

from drawlab.core.database import INTEGRITY_ERRORS, utcnow, to_db_time, format_timestamp, format_date
from drawlab.core.exceptions import (
    AccountLockedError, AuthenticationError, RequestValidationError
)
from drawlab.core.schemas import (
    VALID_BRANCHES, StudentAuthRequest, parse_request, parse_roll_no
)
from drawlab.core.security import hash_password, generate_reset_token
from drawlab.core.sessions import StudentSessionManager, AdminSessionManager

logger = logging.getLogger(__name__)

PROFILE_COLUMNS = 'email, username, branch, full_name, avatar_url, interests, goals, extra_info, points, roll_no'

# ProfileUpdate field -> students column
PROFILE_FIELDS = {
    'full_name': 'full_name',
    'avatar_url': 'avatar_url',
    'interests': 'interests',
    'goals': 'goals',
    'extra_info': 'extra_info',
}


def points_for_score(score):
    """Gamification points earned by an evaluation score (6.5 earns nothing)"""
    if score >= 9:
        return 10
    if score >= 7:
        return 8
    return 0


def profile_dict(student):
    return {
        'email': student.get('email'),
        'username': student.get('username'),
        'branch': student.get('branch'),
        'fullName': student.get('full_name'),
        'avatarUrl': student.get('avatar_url'),
        'interests': student.get('interests'),
        'goals': student.get('goals'),
        'extraInfo': student.get('extra_info'),
        'points': student.get('points') or 0,
        'rollNo': student.get('roll_no'),
    }


class StudentAuthService:
    def __init__(self, db_manager, config, sessions=None, admin_sessions=None, clock=utcnow):
        self.db = db_manager
        self.config = config
        self.clock = clock
        self.sessions = sessions or StudentSessionManager(
            db_manager, session_days=config.STUDENT_SESSION_DAYS, clock=clock)
        self.admin_sessions = admin_sessions or AdminSessionManager(
            db_manager, session_days=config.ADMIN_SESSION_DAYS, clock=clock)

    def handle(self, body):
        request = parse_request(StudentAuthRequest, body)
        handler = getattr(self, f'_{request.action}')
        return handler(request)

    # ------------------------------------------------------------------
    # helpers

    def _hash(self, password):
        return hash_password(password, self.config.PASSWORD_SALT)

    def _find_student(self, email):
        rows = self.db.execute_query(
            f"SELECT {PROFILE_COLUMNS}, login_locked FROM students WHERE email = ?", (email,)
        )
        return rows[0] if rows else None

    def _require_session(self, session_token):
        """Email of the session owner; 401 when missing or expired"""
        if not session_token:
            raise AuthenticationError('Authentication required')
        session = self.sessions.get_session(session_token)
        if not session:
            raise AuthenticationError('Invalid session')
        return session['student_email']

    # ------------------------------------------------------------------
    # actions

    def _register(self, req):
        if self.db.execute_query("SELECT id FROM students WHERE email = ?", (req.email,)):
            raise RequestValidationError('Email already registered')
        if req.username and self.db.execute_query(
                "SELECT id FROM students WHERE username = ?", (req.username,)):
            raise RequestValidationError('Username already taken')

        try:
            self.db.execute_query(
                "INSERT INTO students (email, username, password_hash, branch, roll_no, points) "
                "VALUES (?, ?, ?, ?, ?, 0)",
                (req.email, req.username, self._hash(req.password), req.branch, req.roll_no)
            )
        except INTEGRITY_ERRORS:
            # 同時登録で一意制約に当たった場合
            raise RequestValidationError('Email or username already registered')
        logger.info(f"Student registered: {req.email} ({req.branch})")

        # The account exists even if issuing the session fails; the student can log in later.
        try:
            session_token = self.sessions.create_session(req.email)
        except Exception as e:
            logger.error(f"Session creation failed after registering {req.email}: {e}")
            return {
                'success': True,
                'message': 'Registration successful, please log in',
                'sessionToken': None,
                'email': req.email,
                'username': req.username,
                'branch': req.branch,
            }

        return {
            'success': True,
            'message': 'Registration successful',
            'sessionToken': session_token,
            'email': req.email,
            'username': req.username,
            'branch': req.branch,
        }

    def _login(self, req):
        if not req.password or not (req.email or req.username):
            raise RequestValidationError('Email/Username and password are required')

        if req.email:
            column, identifier = 'email', req.email.lower()
        else:
            column, identifier = 'username', req.username.lower()

        rows = self.db.execute_query(
            f"SELECT email, username, branch, login_locked FROM students "
            f"WHERE {column} = ? AND password_hash = ?",
            (identifier, self._hash(req.password))
        )
        if not rows:
            logger.warning(f"Failed student login for {identifier}")
            raise AuthenticationError('Invalid credentials')
        student = rows[0]
        if student['login_locked']:
            raise AccountLockedError()

        self.db.execute_query(
            "UPDATE students SET last_login = ? WHERE email = ?",
            (to_db_time(self.clock()), student['email'])
        )
        session_token = self.sessions.create_session(student['email'])
        return {
            'success': True,
            'sessionToken': session_token,
            'email': student['email'],
            'username': student['username'],
            'branch': student['branch'],
        }

    def _verify(self, req):
        if not req.session_token:
            raise AuthenticationError('Session token required', extra={'valid': False})
        session = self.sessions.get_session(req.session_token)
        if not session:
            return {'valid': False}
        student = self._find_student(session['student_email'])
        if not student:
            return {'valid': False}
        result = {'valid': True}
        result.update(profile_dict(student))
        return result

    def _logout(self, req):
        if req.session_token:
            self.sessions.delete_session(req.session_token)
        return {'success': True}

    def _request_reset(self, req):
        email = req.email.lower()
        if not self._find_student(email):
            return {'success': True, 'message': 'If the email exists, a reset token has been generated'}

        token = generate_reset_token()
        expires_at = self.clock() + timedelta(minutes=self.config.RESET_TOKEN_MINUTES)
        self.db.execute_query(
            "INSERT INTO student_password_reset_tokens (student_email, token, used, expires_at) "
            "VALUES (?, ?, 0, ?)",
            (email, token, to_db_time(expires_at))
        )

        if not self.config.RESET_TOKEN_IN_RESPONSE:
            return {'success': True, 'message': 'If the email exists, a reset token has been generated'}

        logger.warning(f"Password reset token for {email} returned in the response body")
        return {'success': True, 'message': 'Reset token generated', 'resetToken': token}

    def _reset_password(self, req):
        rows = self.db.execute_query(
            "SELECT id, student_email FROM student_password_reset_tokens "
            "WHERE token = ? AND used = 0 AND expires_at > ?",
            (req.reset_token, to_db_time(self.clock()))
        )
        if not rows:
            raise RequestValidationError('Invalid or expired reset token')
        reset = rows[0]

        # 使用済みへの更新に成功した1件だけがパスワードを変更できる
        consumed = self.db.execute_query(
            "UPDATE student_password_reset_tokens SET used = 1 WHERE id = ? AND used = 0",
            (reset['id'],)
        )
        if not consumed:
            raise RequestValidationError('Invalid or expired reset token')

        self.db.execute_query(
            "UPDATE students SET password_hash = ? WHERE email = ?",
            (self._hash(req.new_password), reset['student_email'])
        )
        logger.info(f"Password reset for {reset['student_email']}")
        return {'success': True, 'message': 'Password updated successfully'}

    def _update_profile(self, req):
        email = self._require_session(req.session_token)
        profile = req.profile
        given = profile.model_fields_set

        updates = {}
        for field, column in PROFILE_FIELDS.items():
            if field in given:
                updates[column] = getattr(profile, field)
        if 'branch' in given and profile.branch in VALID_BRANCHES:
            updates['branch'] = profile.branch
        if 'roll_no' in given:
            try:
                updates['roll_no'] = parse_roll_no(profile.roll_no)
            except ValueError:
                # 不正な学籍番号は無視する
                logger.info(f"Ignoring invalid roll number for {email}: {profile.roll_no!r}")

        if updates:
            assignments = ', '.join(f"{column} = ?" for column in updates)
            self.db.execute_query(
                f"UPDATE students SET {assignments} WHERE email = ?",
                tuple(updates.values()) + (email,)
            )
        return {'success': True}

    def _get_profile(self, req):
        email = self._require_session(req.session_token)
        student = self._find_student(email) or {}
        return {'success': True, 'profile': profile_dict(student)}

    def _get_attendance(self, req):
        email = self._require_session(req.session_token)
        rows = self.db.execute_query(
            "SELECT id, date, branch, marked_at FROM attendance "
            "WHERE student_email = ? ORDER BY date DESC",
            (email,)
        )
        attendance = [
            {
                'id': row['id'],
                'date': format_date(row['date']),
                'branch': row['branch'],
                'marked_at': format_timestamp(row['marked_at']),
            }
            for row in rows
        ]
        return {'success': True, 'attendance': attendance}

    def _add_points(self, req):
        email = self._require_session(req.session_token)
        points = points_for_score(req.score)
        if points <= 0:
            return {'success': True, 'pointsAdded': 0, 'message': 'Score too low to earn points'}

        # 加算はSQL側で行う
        self.db.execute_query(
            "UPDATE students SET points = points + ? WHERE email = ?", (points, email)
        )
        rows = self.db.execute_query("SELECT points FROM students WHERE email = ?", (email,))
        total = rows[0]['points'] if rows else points
        logger.info(f"Awarded {points} points to {email} (score {req.score})")
        return {'success': True, 'pointsAdded': points, 'totalPoints': total}

    def _get_logged_in_students(self, req):
        if not self.admin_sessions.is_active(req.admin_token):
            raise AuthenticationError('Unauthorized')

        emails = self.sessions.active_student_emails()
        if not emails:
            return {'success': True, 'students': {}}

        placeholders = ', '.join('?' for _ in emails)
        rows = self.db.execute_query(
            "SELECT email, username, branch, full_name, avatar_url, last_login, points, roll_no "
            f"FROM students WHERE email IN ({placeholders}) ORDER BY email",
            tuple(emails)
        )
        grouped = {}
        for student in rows:
            grouped.setdefault(student['branch'], []).append({
                'email': student['email'],
                'username': student['username'],
                'fullName': student['full_name'],
                'avatarUrl': student['avatar_url'],
                'lastLogin': format_timestamp(student['last_login']),
                'points': student['points'] or 0,
                'rollNo': student['roll_no'],
            })
        return {'success': True, 'students': grouped}
