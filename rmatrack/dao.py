"""SQLite connection helpers, schema bootstrap and user accounts."""

from __future__ import annotations
import sqlite3
from pathlib import Path
from typing import Dict, Optional

from werkzeug.security import generate_password_hash, check_password_hash

SCHEMA_PATH = Path(__file__).resolve().parent / "schema.sql"

ROLES = ("admin", "rma_manager", "rma_handler", "technician")


def get_connection(db_path: str) -> sqlite3.Connection:
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_db(db_path: str):
    """Create all tables if they do not exist yet."""
    conn = get_connection(db_path)
    try:
        conn.executescript(SCHEMA_PATH.read_text())
        conn.commit()
    finally:
        conn.close()


def create_user(conn: sqlite3.Connection, name: str, username: str, password: str,
                role: str = "rma_handler", email: Optional[str] = None) -> int:
    """Insert a user with a PBKDF2 password hash and return its id."""
    if role not in ROLES:
        raise ValueError(f"Invalid role. Must be one of: {ROLES}")
    existing = conn.execute("SELECT id FROM user WHERE username = ?", (username,)).fetchone()
    if existing:
        raise ValueError(f"Username already exists: {username}")
    cursor = conn.execute(
        "INSERT INTO user (name, username, password, role, email) VALUES (?, ?, ?, ?, ?)",
        (name, username, generate_password_hash(password, method="pbkdf2:sha256"), role, email)
    )
    conn.commit()
    return cursor.lastrowid


def authenticate(conn: sqlite3.Connection, username: str, password: str) -> Optional[Dict]:
    """Return the user dict (without password) when the credentials match."""
    row = conn.execute("SELECT * FROM user WHERE username = ?", (username,)).fetchone()
    if not row or not check_password_hash(row["password"], password):
        return None
    user = dict(row)
    user.pop("password", None)
    return user


def get_user(conn: sqlite3.Connection, user_id: int) -> Optional[Dict]:
    row = conn.execute(
        "SELECT id, name, username, role, email FROM user WHERE id = ?", (user_id,)
    ).fetchone()
    return dict(row) if row else None


def next_document_number(conn: sqlite3.Connection, table: str, column: str, prefix: str) -> str:
    """PREFIX-NNNN, skipping numbers already taken."""
    count = conn.execute(
        f"SELECT COUNT(*) FROM {table} WHERE {column} LIKE ?", (f"{prefix}-%",)
    ).fetchone()[0]
    candidate = f"{prefix}-{count + 1:04d}"
    while conn.execute(f"SELECT 1 FROM {table} WHERE {column} = ?", (candidate,)).fetchone():
        count += 1
        candidate = f"{prefix}-{count + 1:04d}"
    return candidate
