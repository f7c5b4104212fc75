"""
Database access layer (SQLite / PostgreSQL)
Queries are written with "?" placeholders and converted for PostgreSQL.
"""
import sqlite3
import logging
from datetime import datetime, timezone

# PostgreSQLライブラリのインポート（エラー時はSQLiteのみ使用）
try:
    import psycopg2
    import psycopg2.extras
    PSYCOPG2_AVAILABLE = True
except ImportError:
    PSYCOPG2_AVAILABLE = False

logger = logging.getLogger(__name__)

if PSYCOPG2_AVAILABLE:
    INTEGRITY_ERRORS = (sqlite3.IntegrityError, psycopg2.IntegrityError)
else:
    INTEGRITY_ERRORS = (sqlite3.IntegrityError,)

TIMESTAMP_FORMAT = '%Y-%m-%d %H:%M:%S'


def utcnow():
    """Current UTC time as a naive datetime"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_db_time(value):
    """Serialize a datetime the way both backends compare it"""
    return value.strftime(TIMESTAMP_FORMAT)


def format_timestamp(value):
    """Convert a DB timestamp (datetime or str) to an ISO-like string"""
    if value is None:
        return None
    if hasattr(value, 'strftime'):
        return value.strftime(TIMESTAMP_FORMAT)
    return str(value)[:19]


def format_date(value):
    """Convert a DB date (date or str) to YYYY-MM-DD"""
    if value is None:
        return None
    if hasattr(value, 'strftime'):
        return value.strftime('%Y-%m-%d')
    return str(value)[:10]


SQLITE_SCHEMA = [
    """CREATE TABLE IF NOT EXISTS students (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        email TEXT UNIQUE NOT NULL,
        username TEXT UNIQUE,
        password_hash TEXT NOT NULL,
        branch TEXT NOT NULL,
        full_name TEXT,
        avatar_url TEXT,
        interests TEXT,
        goals TEXT,
        extra_info TEXT,
        points INTEGER NOT NULL DEFAULT 0 CHECK (points >= 0),
        roll_no INTEGER,
        login_locked INTEGER NOT NULL DEFAULT 0,
        last_login DATETIME,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
    )""",
    """CREATE TABLE IF NOT EXISTS student_sessions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        student_email TEXT NOT NULL,
        session_token TEXT UNIQUE NOT NULL,
        expires_at DATETIME NOT NULL,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
    )""",
    """CREATE TABLE IF NOT EXISTS student_password_reset_tokens (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        student_email TEXT NOT NULL,
        token TEXT UNIQUE NOT NULL,
        used INTEGER NOT NULL DEFAULT 0,
        expires_at DATETIME NOT NULL,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
    )""",
    """CREATE TABLE IF NOT EXISTS admin_sessions (
        id TEXT PRIMARY KEY,
        user_email TEXT NOT NULL,
        expires_at DATETIME NOT NULL,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
    )""",
    """CREATE TABLE IF NOT EXISTS admin_lock (
        id TEXT PRIMARY KEY,
        session_id TEXT,
        expires_at DATETIME
    )""",
    """CREATE TABLE IF NOT EXISTS admin_settings (
        id TEXT PRIMARY KEY,
        password_hash TEXT,
        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
    )""",
    """CREATE TABLE IF NOT EXISTS attendance (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        student_email TEXT NOT NULL,
        branch TEXT NOT NULL,
        date DATE NOT NULL,
        marked_by TEXT NOT NULL DEFAULT 'admin',
        marked_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        UNIQUE (student_email, date)
    )""",
    """CREATE TABLE IF NOT EXISTS content (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        semester INTEGER NOT NULL,
        drawing_type TEXT NOT NULL,
        content_type TEXT NOT NULL,
        title TEXT NOT NULL,
        file_url TEXT,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
    )""",
    """CREATE TABLE IF NOT EXISTS test_history (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_identifier TEXT NOT NULL,
        drawing_type TEXT NOT NULL,
        duration_seconds INTEGER NOT NULL,
        score REAL NOT NULL,
        accuracy REAL NOT NULL,
        errors TEXT NOT NULL,
        feedback TEXT NOT NULL,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
    )""",
]

POSTGRESQL_SCHEMA = [
    """CREATE TABLE IF NOT EXISTS students (
        id SERIAL PRIMARY KEY,
        email VARCHAR(255) UNIQUE NOT NULL,
        username VARCHAR(20) UNIQUE,
        password_hash VARCHAR(64) NOT NULL,
        branch VARCHAR(50) NOT NULL,
        full_name VARCHAR(255),
        avatar_url TEXT,
        interests TEXT,
        goals TEXT,
        extra_info TEXT,
        points INTEGER NOT NULL DEFAULT 0 CHECK (points >= 0),
        roll_no INTEGER,
        login_locked INTEGER NOT NULL DEFAULT 0,
        last_login TIMESTAMP,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",
    """CREATE TABLE IF NOT EXISTS student_sessions (
        id SERIAL PRIMARY KEY,
        student_email VARCHAR(255) NOT NULL,
        session_token VARCHAR(64) UNIQUE NOT NULL,
        expires_at TIMESTAMP NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",
    """CREATE TABLE IF NOT EXISTS student_password_reset_tokens (
        id SERIAL PRIMARY KEY,
        student_email VARCHAR(255) NOT NULL,
        token VARCHAR(32) UNIQUE NOT NULL,
        used INTEGER NOT NULL DEFAULT 0,
        expires_at TIMESTAMP NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",
    """CREATE TABLE IF NOT EXISTS admin_sessions (
        id VARCHAR(64) PRIMARY KEY,
        user_email VARCHAR(255) NOT NULL,
        expires_at TIMESTAMP NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",
    """CREATE TABLE IF NOT EXISTS admin_lock (
        id VARCHAR(16) PRIMARY KEY,
        session_id VARCHAR(64),
        expires_at TIMESTAMP
    )""",
    """CREATE TABLE IF NOT EXISTS admin_settings (
        id VARCHAR(16) PRIMARY KEY,
        password_hash TEXT,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",
    """CREATE TABLE IF NOT EXISTS attendance (
        id SERIAL PRIMARY KEY,
        student_email VARCHAR(255) NOT NULL,
        branch VARCHAR(50) NOT NULL,
        date DATE NOT NULL,
        marked_by VARCHAR(255) NOT NULL DEFAULT 'admin',
        marked_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        UNIQUE (student_email, date)
    )""",
    """CREATE TABLE IF NOT EXISTS content (
        id SERIAL PRIMARY KEY,
        semester INTEGER NOT NULL,
        drawing_type VARCHAR(50) NOT NULL,
        content_type VARCHAR(50) NOT NULL,
        title VARCHAR(500) NOT NULL,
        file_url TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",
    """CREATE TABLE IF NOT EXISTS test_history (
        id SERIAL PRIMARY KEY,
        user_identifier VARCHAR(255) NOT NULL,
        drawing_type VARCHAR(50) NOT NULL,
        duration_seconds INTEGER NOT NULL,
        score REAL NOT NULL,
        accuracy REAL NOT NULL,
        errors TEXT NOT NULL,
        feedback TEXT NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",
]

INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_student_sessions_email ON student_sessions(student_email)",
    "CREATE INDEX IF NOT EXISTS idx_student_sessions_expires ON student_sessions(expires_at)",
    "CREATE INDEX IF NOT EXISTS idx_attendance_branch_date ON attendance(branch, date)",
    "CREATE INDEX IF NOT EXISTS idx_content_lookup ON content(semester, drawing_type, content_type)",
    "CREATE INDEX IF NOT EXISTS idx_test_history_user ON test_history(user_identifier)",
]


class DatabaseManager:
    def __init__(self, config):
        self.db_type = config['DATABASE_TYPE']
        self.config = config

        # PostgreSQLが利用できない場合はSQLiteにフォールバック
        if self.db_type == 'postgresql' and not PSYCOPG2_AVAILABLE:
            logger.warning("PostgreSQL requested but psycopg2 not available. Falling back to SQLite.")
            self.db_type = 'sqlite'
            self.config['DATABASE_TYPE'] = 'sqlite'

    def get_connection(self):
        if self.db_type == 'postgresql':
            conn = psycopg2.connect(
                host=self.config['DB_HOST'],
                database=self.config['DB_NAME'],
                user=self.config['DB_USER'],
                password=self.config['DB_PASSWORD'],
                port=self.config['DB_PORT']
            )
            conn.autocommit = False
            return conn
        else:
            db_path = self.config.get('DATABASE', 'drawing_lab.db')
            conn = sqlite3.connect(db_path)
            conn.row_factory = sqlite3.Row
            return conn

    def _prepare(self, query):
        if self.db_type == 'postgresql':
            return query.replace('?', '%s')
        return query

    def _cursor(self, conn):
        if self.db_type == 'postgresql':
            return conn.cursor(cursor_factory=psycopg2.extras.DictCursor)
        return conn.cursor()

    def execute_query(self, query, params=None):
        """Run a statement; SELECTs return a list of dicts, writes the row count"""
        conn = self.get_connection()
        try:
            cur = self._cursor(conn)
            cur.execute(self._prepare(query), params or ())
            if query.strip().upper().startswith(('SELECT', 'WITH')):
                result = [dict(row) for row in cur.fetchall()]
            else:
                result = cur.rowcount
                conn.commit()
            cur.close()
            return result
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def execute_insert(self, query, params=None):
        """Run an INSERT and return the generated id"""
        conn = self.get_connection()
        try:
            cur = self._cursor(conn)
            if self.db_type == 'postgresql':
                cur.execute(self._prepare(query) + ' RETURNING id', params or ())
                new_id = cur.fetchone()[0]
            else:
                cur.execute(query, params or ())
                new_id = cur.lastrowid
            conn.commit()
            cur.close()
            return new_id
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def init_database(self):
        schema = POSTGRESQL_SCHEMA if self.db_type == 'postgresql' else SQLITE_SCHEMA
        for query in schema + INDEXES:
            self.execute_query(query)

        # 管理者ロック行は常に1行だけ存在する
        self.execute_query(
            "INSERT INTO admin_lock (id, session_id, expires_at) VALUES ('main', NULL, NULL) "
            "ON CONFLICT (id) DO NOTHING"
        )
        logger.info("Database initialised (%s)", self.db_type)
