import io

import pytest
from werkzeug.security import check_password_hash


def admin(client, **body):
    return client.post("/functions/admin-api", json=body)


def test_login_and_verify(client, admin_token):
    assert len(admin_token) == 64
    resp = admin(client, action="verify", adminToken=admin_token)
    assert resp.get_json() == {"valid": True}


def test_login_wrong_password(client):
    resp = admin(client, action="login", password="nope")
    assert resp.status_code == 401
    assert resp.get_json() == {"error": "Invalid password"}


def test_token_required_before_validation(client):
    # no token -> 401 even though the body is otherwise incomplete
    resp = admin(client, action="mark_attendance")
    assert resp.status_code == 401
    assert resp.get_json() == {"error": "Admin token required"}


def test_invalid_token(client):
    resp = admin(client, action="verify", adminToken="forged")
    assert resp.status_code == 401
    assert resp.get_json() == {"error": "Invalid or expired admin session"}


def test_unknown_action(client, admin_token):
    resp = admin(client, action="drop_tables", adminToken=admin_token)
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "Invalid action"}


def test_second_login_takes_over_lock(client, admin_token):
    second = admin(client, action="login", password="adminpass").get_json()["adminToken"]
    assert admin(client, action="verify", adminToken=second).status_code == 200
    assert admin(client, action="verify", adminToken=admin_token).status_code == 401


def test_logout_releases_lock(app, client, admin_token):
    assert admin(client, action="logout", adminToken=admin_token).get_json() == {"success": True}
    assert admin(client, action="verify", adminToken=admin_token).status_code == 401
    assert app.admin_api.admin_sessions.active_session() is None


def test_expired_admin_session(app, client, admin_token):
    app.db_manager.execute_query(
        "UPDATE admin_sessions SET expires_at = ? WHERE id = ?", ("2000-01-01 00:00:00", admin_token)
    )
    assert admin(client, action="verify", adminToken=admin_token).status_code == 401


def test_reset_password(client, admin_token):
    short = admin(client, action="reset_password", adminToken=admin_token, newPassword="abc")
    assert short.status_code == 400
    assert short.get_json() == {"error": "New password must be at least 4 characters"}

    resp = admin(client, action="reset_password", adminToken=admin_token, newPassword="drafting")
    assert resp.get_json()["success"] is True

    assert admin(client, action="login", password="adminpass").status_code == 401
    assert admin(client, action="login", password="drafting").status_code == 200


def test_reset_password_stores_werkzeug_hash(app, client, admin_token):
    admin(client, action="reset_password", adminToken=admin_token, newPassword="drafting")

    stored = app.db_manager.execute_query(
        "SELECT password_hash FROM admin_settings WHERE id = ?", ("main",)
    )[0]["password_hash"]
    assert stored != "drafting"
    assert "$" in stored
    assert check_password_hash(stored, "drafting")
    assert not check_password_hash(stored, "adminpass")


def test_students_by_branch(client, register, admin_token):
    register(email="b@example.com", branch="computer_engineering", rollNo=2)
    register(email="a@example.com", branch="computer_engineering", rollNo=1)
    register(email="c@example.com", branch="computer_engineering")
    register(email="d@example.com", branch="ai")

    data = admin(client, action="get_students_by_branch", adminToken=admin_token,
                 branch="computer_engineering").get_json()
    assert [s["email"] for s in data["students"]] == ["a@example.com", "b@example.com", "c@example.com"]


def test_students_by_branch_includes_legacy_computer(app, client, admin_token):
    app.db_manager.execute_query(
        "INSERT INTO students (email, password_hash, branch) VALUES (?, ?, ?)",
        ("old@example.com", "x", "computer")
    )
    data = admin(client, action="get_students_by_branch", adminToken=admin_token,
                 branch="computer_engineering").get_json()
    assert [s["email"] for s in data["students"]] == ["old@example.com"]


def test_branch_required(client, admin_token):
    resp = admin(client, action="get_students_by_branch", adminToken=admin_token)
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "branch is required"}


def test_logged_in_students_by_branch(client, register, admin_token):
    register(email="a@example.com", branch="cst")
    token = register(email="b@example.com", branch="cst").get_json()["sessionToken"]
    register(email="c@example.com", branch="ece")
    client.post("/functions/student-auth", json={"action": "logout", "sessionToken": token})

    data = admin(client, action="get_logged_in_students_by_branch", adminToken=admin_token,
                 branch="cst").get_json()
    assert [s["email"] for s in data["students"]] == ["a@example.com"]


def test_mark_attendance_duplicate_is_conflict(app, client, admin_token):
    body = dict(action="mark_attendance", adminToken=admin_token, branch="cst",
                date="2025-01-15", studentEmail="Student@Example.com")
    assert admin(client, **body).get_json() == {"success": True}

    dup = admin(client, **body)
    assert dup.status_code == 409
    assert dup.get_json() == {"error": "Attendance already marked for this date"}

    rows = app.db_manager.execute_query("SELECT student_email, date FROM attendance")
    assert rows == [{"student_email": "student@example.com", "date": "2025-01-15"}]


def test_attendance_by_month_and_unmark(client, admin_token):
    for day in ("2025-01-31", "2025-02-01", "2025-02-28", "2025-03-01"):
        admin(client, action="mark_attendance", adminToken=admin_token, branch="ai",
              date=day, studentEmail="s@example.com")

    query = dict(action="get_attendance_by_branch_month", adminToken=admin_token, branch="ai",
                 monthStart="2025-02-01", monthEnd="2025-02-28")
    data = admin(client, **query).get_json()
    assert [a["date"] for a in data["attendance"]] == ["2025-02-01", "2025-02-28"]

    admin(client, action="unmark_attendance", adminToken=admin_token, branch="ai",
          date="2025-02-01", studentEmail="s@example.com")
    data = admin(client, **query).get_json()
    assert [a["date"] for a in data["attendance"]] == ["2025-02-28"]


def test_attendance_bad_date(client, admin_token):
    resp = admin(client, action="mark_attendance", adminToken=admin_token, branch="ai",
                 date="yesterday", studentEmail="s@example.com")
    assert resp.status_code == 400


def test_remove_session_locks_and_unlock(client, register, admin_token):
    token = register().get_json()["sessionToken"]

    resp = admin(client, action="remove_student_session", adminToken=admin_token,
                 studentEmail="student@example.com")
    assert resp.get_json() == {"success": True}
    verify = client.post("/functions/student-auth", json={"action": "verify", "sessionToken": token})
    assert verify.get_json() == {"valid": False}

    login = {"action": "login", "email": "student@example.com", "password": "secret123"}
    locked = client.post("/functions/student-auth", json=login)
    assert locked.status_code == 403

    listed = admin(client, action="get_locked_students", adminToken=admin_token).get_json()
    assert [s["email"] for s in listed["students"]] == ["student@example.com"]

    admin(client, action="unlock_student", adminToken=admin_token, studentEmail="student@example.com")
    assert client.post("/functions/student-auth", json=login).status_code == 200
    assert admin(client, action="get_locked_students", adminToken=admin_token).get_json()["students"] == []


def test_insert_and_delete_content(client, admin_token):
    item = {
        "semester": 1,
        "drawing_type": "isometric",
        "content_type": "video",
        "title": "Isometric basics",
        "file_url": "https://youtu.be/dQw4w9WgXcQ",
    }
    resp = admin(client, action="insert_content", adminToken=admin_token, contentItem=item)
    assert resp.status_code == 200
    content_id = resp.get_json()["id"]

    listed = client.get("/api/content?semester=1&drawing_type=isometric").get_json()["content"]
    assert [c["id"] for c in listed] == [content_id]

    assert admin(client, action="delete_content", adminToken=admin_token,
                 contentId=content_id).get_json() == {"success": True}
    assert client.get("/api/content").get_json()["content"] == []

    missing = admin(client, action="delete_content", adminToken=admin_token, contentId=content_id)
    assert missing.status_code == 404


@pytest.mark.parametrize("item, message", [
    ({"semester": 1, "drawing_type": "perspective", "content_type": "pyq", "title": "x"},
     "drawing_type must be one of orthographic, isometric, sectional"),
    ({"semester": 1, "drawing_type": "sectional", "content_type": "pyq", "title": "x",
      "file_url": "javascript:alert(1)"},
     "file_url is not a valid link"),
    ({"semester": 1, "drawing_type": "sectional", "content_type": "reference", "title": "x",
      "file_url": "//evil.example/payload.png"},
     "file_url is not a valid link"),
    ({"semester": 1, "drawing_type": "sectional", "content_type": "reference", "title": "x",
      "file_url": "/static/bracket.png"},
     "file_url is not a valid link"),
])
def test_insert_content_rejects_bad_items(client, admin_token, item, message):
    resp = admin(client, action="insert_content", adminToken=admin_token, contentItem=item)
    assert resp.status_code == 400
    assert resp.get_json() == {"error": message}


def test_upload_reference_file(app, client, admin_token, tmp_path):
    data = {"adminToken": admin_token, "file": (io.BytesIO(b"\x89PNG fake"), "front view.png")}
    resp = client.post("/functions/admin-api/upload", data=data, content_type="multipart/form-data")
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["file_url"].startswith("/uploads/")
    assert body["filename"].endswith("_front_view.png")

    served = client.get(body["file_url"])
    assert served.status_code == 200
    assert served.data == b"\x89PNG fake"


def test_upload_requires_admin(client):
    data = {"file": (io.BytesIO(b"x"), "a.png")}
    resp = client.post("/functions/admin-api/upload", data=data, content_type="multipart/form-data")
    assert resp.status_code == 401


def test_upload_rejects_extension(client, admin_token):
    data = {"adminToken": admin_token, "file": (io.BytesIO(b"x"), "run.exe")}
    resp = client.post("/functions/admin-api/upload", data=data, content_type="multipart/form-data")
    assert resp.status_code == 400
