import logging
import sqlite3
from typing import Optional

from book import Book
from config import settings
from library import Library

logger = logging.getLogger(__name__)

# Default snapshot file; LIBRARY_DB_FILE overrides it (see config.py).
DATABASE_FILE = settings.data_file


def get_db_connection(db_file: Optional[str] = None) -> sqlite3.Connection:
    """Open a connection to the SQLite snapshot with dict-like rows."""
    conn = sqlite3.connect(db_file or DATABASE_FILE)
    conn.row_factory = sqlite3.Row
    return conn

def create_tables(db_file: Optional[str] = None) -> None:
    """Create the books table if it does not exist yet."""
    conn = get_db_connection(db_file)
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS books (
                id INTEGER PRIMARY KEY,
                title TEXT NOT NULL,
                author TEXT NOT NULL,
                normalized_title TEXT NOT NULL,
                copies_available INTEGER NOT NULL CHECK(copies_available >= 0)
            )
        """)
        conn.execute("CREATE INDEX IF NOT EXISTS idx_books_normalized_title ON books(normalized_title)")
        conn.commit()
    finally:
        conn.close()

def initialize_database(db_file: Optional[str] = None) -> None:
    create_tables(db_file)

def load_library(db_file: Optional[str] = None) -> Library:
    """Read the stored snapshot into a fresh catalog (empty if nothing is stored)."""
    initialize_database(db_file)
    conn = get_db_connection(db_file)
    try:
        rows = conn.execute(
            "SELECT id, title, author, copies_available FROM books ORDER BY id"
        ).fetchall()
    finally:
        conn.close()
    library = Library.from_records(Book.from_dict(dict(row)) for row in rows)
    logger.info(f"Loaded {len(rows)} books from {db_file or DATABASE_FILE}")
    return library

def save_library(library: Library, db_file: Optional[str] = None) -> int:
    """Replace the stored snapshot with the catalog's current contents.

    Runs in a single transaction, so a failed write leaves the previous
    snapshot in place. Returns the number of rows written.
    """
    initialize_database(db_file)
    rows = [
        (book.id, book.title, book.author, Library._normalize_title(book.title), book.copies_available)
        for book in library.list_books()
    ]
    conn = get_db_connection(db_file)
    try:
        with conn:
            conn.execute("DELETE FROM books")
            conn.executemany(
                "INSERT INTO books (id, title, author, normalized_title, copies_available) VALUES (?, ?, ?, ?, ?)",
                rows,
            )
    except sqlite3.Error as e:
        logger.error(f"Failed to save catalog to {db_file or DATABASE_FILE}: {e}")
        raise
    finally:
        conn.close()
    logger.info(f"Saved {len(rows)} books to {db_file or DATABASE_FILE}")
    return len(rows)
