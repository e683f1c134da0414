"""SQLite storage for users, refresh tokens and videos."""

from __future__ import annotations

import re
import sqlite3
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        password TEXT NOT NULL,
        email TEXT UNIQUE NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS refresh_tokens (
        token TEXT PRIMARY KEY,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        revoked_at TIMESTAMP,
        user_id TEXT NOT NULL,
        expires_at TIMESTAMP NOT NULL,
        FOREIGN KEY(user_id) REFERENCES users(id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS videos (
        id TEXT PRIMARY KEY,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        title TEXT NOT NULL,
        description TEXT,
        thumbnail_url TEXT,
        video_url TEXT,
        user_id INTEGER,
        FOREIGN KEY(user_id) REFERENCES users(id)
    )
    """,
)

_VIDEO_COLUMNS = (
    "id, created_at, updated_at, title, description, thumbnail_url, video_url, user_id"
)

_FRACTION = re.compile(r"\.(\d+)")


def _parse_time(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _store_time(value: datetime) -> str:
    return value.isoformat(sep=" ")


def _parse_uuid(value: Any) -> Optional[uuid.UUID]:
    if value is None:
        return None
    return uuid.UUID(str(value))


@dataclass
class User:
    """A registered user."""

    id: uuid.UUID
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    email: str
    password: str


@dataclass
class RefreshToken:
    """A stored refresh token."""

    token: str
    user_id: uuid.UUID
    expires_at: datetime
    created_at: datetime
    updated_at: datetime
    revoked_at: Optional[datetime]


@dataclass
class Video:
    """Video metadata."""

    id: uuid.UUID
    created_at: datetime
    updated_at: datetime
    thumbnail_url: Optional[str]
    video_url: Optional[str]
    title: str
    description: str
    user_id: Optional[uuid.UUID]


class Client:
    """A connection to the application's SQLite database."""

    def __init__(self, path):
        self._conn = sqlite3.connect(path, isolation_level=None, check_same_thread=False)
        self._lock = threading.RLock()
        try:
            for statement in _SCHEMA:
                self._conn.execute(statement)
        except Exception:
            self._conn.close()
            raise

    def __enter__(self) -> "Client":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        """Close the underlying connection."""
        with self._lock:
            self._conn.close()

    def _execute(self, query: str, params: tuple = ()) -> None:
        with self._lock:
            self._conn.execute(query, params)

    def _fetchone(self, query: str, params: tuple = ()):
        with self._lock:
            return self._conn.execute(query, params).fetchone()

    def _fetchall(self, query: str, params: tuple = ()):
        with self._lock:
            return self._conn.execute(query, params).fetchall()

    def reset(self) -> None:
        """Delete every row from every table."""
        for table in ("refresh_tokens", "users", "videos"):
            try:
                self._execute(f"DELETE FROM {table}")
            except sqlite3.Error as exc:
                raise sqlite3.DatabaseError(f"failed to reset table {table}: {exc}") from exc

    # Users

    def create_user(self, email: str, password: str) -> Optional[User]:
        """Insert a new user and return it as stored."""
        user_id = uuid.uuid4()
        self._execute(
            "INSERT INTO users (id, created_at, updated_at, email, password) "
            "VALUES (?, CURRENT_TIMESTAMP, CURRENT_TIMESTAMP, ?, ?)",
            (str(user_id), email, password),
        )
        return self.get_user(user_id)

    @staticmethod
    def _user_from_row(row) -> User:
        id_text, created_at, updated_at, email, password = row
        return User(
            id=uuid.UUID(id_text),
            created_at=_parse_time(created_at),
            updated_at=_parse_time(updated_at),
            email=email,
            password=password,
        )

    def get_user(self, user_id: uuid.UUID) -> Optional[User]:
        """Return the user with this id, or None."""
        row = self._fetchone(
            "SELECT id, created_at, updated_at, email, password FROM users WHERE id = ?",
            (str(user_id),),
        )
        return None if row is None else self._user_from_row(row)

    def get_user_by_email(self, email: str) -> Optional[User]:
        """Return the user with this e-mail address, or None."""
        row = self._fetchone(
            "SELECT id, created_at, updated_at, email, password FROM users WHERE email = ?",
            (email,),
        )
        return None if row is None else self._user_from_row(row)

    def get_user_by_refresh_token(self, token: str) -> Optional[User]:
        """Return the user who owns a refresh token, or None."""
        row = self._fetchone(
            "SELECT u.id, u.created_at, u.updated_at, u.email, u.password "
            "FROM users u JOIN refresh_tokens rt ON u.id = rt.user_id "
            "WHERE rt.token = ?",
            (token,),
        )
        return None if row is None else self._user_from_row(row)

    def get_users(self) -> list[User]:
        """Return every user with only id and e-mail filled in."""
        rows = self._fetchall("SELECT id, email FROM users")
        return [
            User(id=uuid.UUID(id_text), created_at=None, updated_at=None, email=email, password="")
            for id_text, email in rows
        ]

    def delete_user(self, user_id: uuid.UUID) -> None:
        """Delete a user."""
        self._execute("DELETE FROM users WHERE id = ?", (str(user_id),))

    # Refresh tokens

    def create_refresh_token(
        self, token: str, user_id: uuid.UUID, expires_at: datetime
    ) -> Optional[RefreshToken]:
        """Store a refresh token and return it as stored."""
        self._execute(
            "INSERT INTO refresh_tokens (token, created_at, updated_at, user_id, expires_at) "
            "VALUES (?, CURRENT_TIMESTAMP, CURRENT_TIMESTAMP, ?, ?)",
            (token, str(user_id), _store_time(expires_at)),
        )
        return self.get_refresh_token(token)

    def get_refresh_token(self, token: str) -> Optional[RefreshToken]:
        """Return a stored refresh token, or None."""
        row = self._fetchone(
            "SELECT token, created_at, updated_at, user_id, expires_at, revoked_at "
            "FROM refresh_tokens WHERE token = ?",
            (token,),
        )
        if row is None:
            return None
        stored, created_at, updated_at, user_id, expires_at, revoked_at = row
        return RefreshToken(
            token=stored,
            user_id=uuid.UUID(user_id),
            expires_at=_parse_time(expires_at),
            created_at=_parse_time(created_at),
            updated_at=_parse_time(updated_at),
            revoked_at=_parse_time(revoked_at),
        )

    def revoke_refresh_token(self, token: str) -> None:
        """Mark a refresh token as revoked now."""
        self._execute(
            "UPDATE refresh_tokens SET revoked_at = CURRENT_TIMESTAMP WHERE token = ?",
            (token,),
        )

    def delete_refresh_token(self, token: str) -> None:
        """Delete a refresh token."""
        self._execute("DELETE FROM refresh_tokens WHERE token = ?", (token,))

    # Videos

    @staticmethod
    def _video_from_row(row) -> Video:
        id_text, created_at, updated_at, title, description, thumb, video_url, user_id = row
        return Video(
            id=uuid.UUID(id_text),
            created_at=_parse_time(created_at),
            updated_at=_parse_time(updated_at),
            thumbnail_url=thumb,
            video_url=video_url,
            title=title,
            description=description or "",
            user_id=_parse_uuid(user_id),
        )

    def create_video(self, title: str, description: str, user_id: uuid.UUID) -> Optional[Video]:
        """Insert video metadata and return it as stored."""
        video_id = uuid.uuid4()
        self._execute(
            "INSERT INTO videos (id, created_at, updated_at, title, description, user_id) "
            "VALUES (?, CURRENT_TIMESTAMP, CURRENT_TIMESTAMP, ?, ?, ?)",
            (str(video_id), title, description, str(user_id)),
        )
        return self.get_video(video_id)

    def get_video(self, video_id: uuid.UUID) -> Optional[Video]:
        """Return a video, or None."""
        row = self._fetchone(
            f"SELECT {_VIDEO_COLUMNS} FROM videos WHERE id = ?", (str(video_id),)
        )
        return None if row is None else self._video_from_row(row)

    def get_videos(self, user_id: uuid.UUID) -> list[Video]:
        """Return a user's videos, newest first."""
        rows = self._fetchall(
            f"SELECT {_VIDEO_COLUMNS} FROM videos WHERE user_id = ? ORDER BY created_at DESC",
            (str(user_id),),
        )
        return [self._video_from_row(row) for row in rows]

    def update_video(self, video: Video) -> None:
        """Write back a video's editable fields."""
        self._execute(
            "UPDATE videos SET title = ?, description = ?, thumbnail_url = ?, "
            "video_url = ?, user_id = ? WHERE id = ?",
            (
                video.title,
                video.description,
                video.thumbnail_url,
                video.video_url,
                None if video.user_id is None else str(video.user_id),
                str(video.id),
            ),
        )

    def delete_video(self, video_id: uuid.UUID) -> None:
        """Delete a video."""
        self._execute("DELETE FROM videos WHERE id = ?", (str(video_id),))