"""SQLite blog store.

The relational store is the system of record for blog posts. The vector
collection is a derived projection of it (see app.rag.indexer).
"""
import sqlite3
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, List, Dict, Any
import structlog

from app import config

logger = structlog.get_logger()


@dataclass
class Blog:
    """A blog post row."""

    id: Optional[int] = None
    title: str = ""
    slug: str = ""
    author: Optional[str] = None
    category: Optional[str] = None
    thumbnail: Optional[str] = None
    content: str = ""
    status: str = "draft"
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _row_to_blog(row: sqlite3.Row) -> Blog:
    return Blog(**dict(row))


class BlogRepository:
    """CRUD access to the blog table."""

    def __init__(self, db_path: Path = None):
        """Initialize the repository.

        Args:
            db_path: SQLite database file (default: config.DB_PATH)
        """
        self.db_path = Path(db_path or config.DB_PATH)

    def get_connection(self) -> sqlite3.Connection:
        """Get a connection to the SQLite database.

        Returns:
            sqlite3.Connection with row_factory set to sqlite3.Row
        """
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_database(self) -> None:
        """Create the blog table and its indexes if they don't exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = self.get_connection()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS blog (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    slug TEXT NOT NULL,
                    author TEXT,
                    category TEXT,
                    thumbnail TEXT,
                    content TEXT NOT NULL DEFAULT '',
                    status TEXT NOT NULL DEFAULT 'draft',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_blog_slug
                ON blog(slug)
            """)

            conn.commit()
            logger.info("database_initialized", db_path=str(self.db_path))

        except Exception as e:
            conn.rollback()
            logger.error("database_init_failed", error=str(e))
            raise
        finally:
            conn.close()

    def create(self, blog: Blog) -> Blog:
        """Insert a blog and return it with id and timestamps set."""
        conn = self.get_connection()
        cursor = conn.cursor()

        try:
            now = _now()
            cursor.execute("""
                INSERT INTO blog (
                    title, slug, author, category, thumbnail,
                    content, status, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                blog.title,
                blog.slug,
                blog.author,
                blog.category,
                blog.thumbnail,
                blog.content or "",
                blog.status,
                now,
                now,
            ))

            conn.commit()
            blog.id = cursor.lastrowid
            blog.created_at = now
            blog.updated_at = now
            logger.info("blog_inserted", blog_id=blog.id)
            return blog

        except Exception as e:
            conn.rollback()
            logger.error("blog_insert_failed", error=str(e), title=blog.title)
            raise
        finally:
            conn.close()

    def update(self, blog: Blog) -> int:
        """Update every column of an existing blog.

        Returns:
            Number of rows updated (0 if the blog doesn't exist)
        """
        conn = self.get_connection()
        cursor = conn.cursor()

        try:
            blog.updated_at = _now()
            cursor.execute("""
                UPDATE blog SET
                    title = ?, slug = ?, author = ?, category = ?, thumbnail = ?,
                    content = ?, status = ?, updated_at = ?
                WHERE id = ?
            """, (
                blog.title,
                blog.slug,
                blog.author,
                blog.category,
                blog.thumbnail,
                blog.content or "",
                blog.status,
                blog.updated_at,
                blog.id,
            ))

            conn.commit()
            return cursor.rowcount

        except Exception as e:
            conn.rollback()
            logger.error("blog_update_failed", error=str(e), blog_id=blog.id)
            raise
        finally:
            conn.close()

    def delete(self, blog_id: int) -> int:
        """Delete a blog by id.

        Returns:
            Number of rows deleted
        """
        conn = self.get_connection()
        cursor = conn.cursor()

        try:
            cursor.execute("DELETE FROM blog WHERE id = ?", (blog_id,))
            conn.commit()
            return cursor.rowcount

        except Exception as e:
            conn.rollback()
            logger.error("blog_delete_failed", error=str(e), blog_id=blog_id)
            raise
        finally:
            conn.close()

    def find_by_id(self, blog_id: int) -> Optional[Blog]:
        conn = self.get_connection()
        try:
            row = conn.execute("SELECT * FROM blog WHERE id = ?", (blog_id,)).fetchone()
            return _row_to_blog(row) if row else None
        finally:
            conn.close()

    def find_by_slug(self, slug: str) -> Optional[Blog]:
        conn = self.get_connection()
        try:
            row = conn.execute(
                "SELECT * FROM blog WHERE slug = ? ORDER BY id LIMIT 1", (slug,)
            ).fetchone()
            return _row_to_blog(row) if row else None
        finally:
            conn.close()

    def find_all(self) -> List[Blog]:
        """Return every blog, newest first."""
        conn = self.get_connection()
        try:
            rows = conn.execute("SELECT * FROM blog ORDER BY id DESC").fetchall()
            return [_row_to_blog(row) for row in rows]
        finally:
            conn.close()

    def count(self) -> int:
        conn = self.get_connection()
        try:
            return conn.execute("SELECT COUNT(*) FROM blog").fetchone()[0]
        finally:
            conn.close()
