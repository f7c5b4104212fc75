from datetime import timedelta

from conftest import Clock
from drawlab.core.sessions import AdminSessionManager, StudentSessionManager


def test_student_session_expiry(db):
    clock = Clock()
    sessions = StudentSessionManager(db, session_days=7, clock=clock)
    token = sessions.create_session("s@example.com")

    assert sessions.get_session(token)["student_email"] == "s@example.com"
    assert sessions.active_student_emails() == ["s@example.com"]

    clock.now += timedelta(days=7, seconds=1)
    # expired and unknown tokens look the same
    assert sessions.get_session(token) is None
    assert sessions.get_session("unknown") is None
    assert sessions.active_student_emails() == []

    assert sessions.cleanup_expired_sessions() == 1


def test_delete_student_sessions(db):
    sessions = StudentSessionManager(db, clock=Clock())
    first = sessions.create_session("s@example.com")
    second = sessions.create_session("s@example.com")
    other = sessions.create_session("o@example.com")

    sessions.delete_student_sessions("s@example.com")
    assert sessions.get_session(first) is None
    assert sessions.get_session(second) is None
    assert sessions.get_session(other) is not None


def test_admin_lock_takeover(db):
    clock = Clock()
    admins = AdminSessionManager(db, session_days=1, clock=clock)
    first, _ = admins.open_session()
    second, expires_at = admins.open_session()

    assert not admins.is_active(first)
    assert admins.is_active(second)
    assert admins.active_session() == {"session_id": second, "expires_at": expires_at}

    # closing a session that no longer holds the lock leaves the holder alone
    admins.close_session(first)
    assert admins.is_active(second)

    clock.now += timedelta(days=2)
    assert not admins.is_active(second)
    assert admins.active_session() is None


def test_init_database_is_idempotent(db):
    db.init_database()
    rows = db.execute_query("SELECT id FROM admin_lock")
    assert rows == [{"id": "main"}]
