import logging
import sqlite3
from typing import Optional

from library_api.config import settings

logger = logging.getLogger(__name__)

# Default database file. Can be overridden per call, which is how tests and the
# application factory point the repositories at their own file.
DATABASE_FILE = settings.database_file


def get_db_connection(db_file: Optional[str] = None) -> sqlite3.Connection:
    """Open a connection to the SQLite database.

    Rows are returned as ``sqlite3.Row`` so callers can read columns by name,
    and foreign keys are enforced (SQLite leaves them off by default).
    """
    conn = sqlite3.connect(db_file or DATABASE_FILE)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def create_tables(db_file: Optional[str] = None) -> None:
    """Create the tables and indexes if they do not exist yet."""
    conn = get_db_connection(db_file)
    try:
        cursor = conn.cursor()
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS books (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                title TEXT NOT NULL,
                author TEXT NOT NULL,
                isbn TEXT NOT NULL UNIQUE
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS loans (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                book_id INTEGER NOT NULL,
                customer TEXT NOT NULL,
                loan_date TEXT NOT NULL,
                returned INTEGER,
                FOREIGN KEY (book_id) REFERENCES books(id) ON DELETE CASCADE
            )
        """)

        # At most one unreturned loan per book. The service checks this first to
        # produce a friendly error; this index is what holds under concurrent writers.
        cursor.execute("""
            CREATE UNIQUE INDEX IF NOT EXISTS ux_loans_active_book
            ON loans(book_id) WHERE returned IS NULL OR returned = 0
        """)

        # Deleting a book cascades to its loan history, but never past an unreturned loan.
        cursor.execute("""
            CREATE TRIGGER IF NOT EXISTS trg_books_block_active_loan_delete
            BEFORE DELETE ON books
            WHEN EXISTS (
                SELECT 1 FROM loans WHERE book_id = OLD.id AND (returned IS NULL OR returned = 0)
            )
            BEGIN
                SELECT RAISE(ABORT, 'book has an active loan');
            END
        """)

        cursor.execute("CREATE INDEX IF NOT EXISTS idx_loans_book_id ON loans(book_id)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_loans_customer ON loans(customer)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_books_title ON books(title)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_books_author ON books(author)")
        conn.commit()
    finally:
        conn.close()


def initialize_database(db_file: Optional[str] = None) -> None:
    """Initialise the database, creating the schema when needed."""
    logger.info(f"Initialising database at {db_file or DATABASE_FILE}")
    create_tables(db_file)
