"""Persistence gateway for books and loans.

Each repository opens a short-lived SQLite connection per operation, commits
and closes it. Uniqueness of isbn and the single-active-loan rule are enforced
by the schema (see ``database.create_tables``); constraint violations raised by
SQLite are translated here into the same domain errors the services raise.
"""
import logging
import sqlite3
from typing import List, Optional, Tuple

from library_api.book import Book
from library_api.database import get_db_connection
from library_api.exceptions import BusinessRuleViolation, DuplicateIsbn
from library_api.loan import Loan
from library_api.page import Page, PageRequest

logger = logging.getLogger(__name__)

BOOK_FILTER_FIELDS = ("title", "author", "isbn")

_LOAN_SELECT = """
    SELECT l.id, l.customer, l.loan_date, l.returned,
           b.id AS book_id, b.title AS book_title, b.author AS book_author, b.isbn AS book_isbn
    FROM loans l JOIN books b ON b.id = l.book_id
"""


def _like_pattern(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class BookRepository:
    """Book storage: lookup by id/isbn, existence checks, save, delete and example search."""

    def __init__(self, db_file: Optional[str] = None) -> None:
        self.db_file = db_file

    def _connect(self) -> sqlite3.Connection:
        return get_db_connection(self.db_file)

    def exists_by_isbn(self, isbn: str) -> bool:
        conn = self._connect()
        try:
            row = conn.execute("SELECT 1 FROM books WHERE isbn = ? LIMIT 1", (isbn,)).fetchone()
            return row is not None
        finally:
            conn.close()

    def find_by_id(self, book_id: int) -> Optional[Book]:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT id, title, author, isbn FROM books WHERE id = ?", (book_id,)
            ).fetchone()
            return Book.from_dict(dict(row)) if row else None
        finally:
            conn.close()

    def find_by_isbn(self, isbn: str) -> Optional[Book]:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT id, title, author, isbn FROM books WHERE isbn = ?", (isbn,)
            ).fetchone()
            return Book.from_dict(dict(row)) if row else None
        finally:
            conn.close()

    def save(self, book: Book) -> Book:
        """Insert a new book (``id`` is None) or update title/author of an existing one."""
        conn = self._connect()
        try:
            cursor = conn.cursor()
            if book.id is None:
                cursor.execute(
                    "INSERT INTO books (title, author, isbn) VALUES (?, ?, ?)",
                    (book.title, book.author, book.isbn),
                )
                book.id = cursor.lastrowid
            else:
                cursor.execute(
                    "UPDATE books SET title = ?, author = ? WHERE id = ?",
                    (book.title, book.author, book.id),
                )
            conn.commit()
            return book
        except sqlite3.IntegrityError as e:
            if "UNIQUE" not in str(e):
                raise
            logger.warning(f"Unique constraint rejected isbn {book.isbn}: {e}")
            raise DuplicateIsbn() from e
        finally:
            conn.close()

    def delete(self, book: Book) -> bool:
        conn = self._connect()
        try:
            cursor = conn.execute("DELETE FROM books WHERE id = ?", (book.id,))
            conn.commit()
            return cursor.rowcount > 0
        except sqlite3.IntegrityError as e:
            logger.warning(f"Active loan blocked delete of book {book.id}: {e}")
            raise BusinessRuleViolation("Book has an active loan.") from e
        finally:
            conn.close()

    def find_matching(self, example: Book, page_request: PageRequest) -> Page:
        """Books matching every non-empty field of ``example`` (case-insensitive substring)."""
        clauses: List[str] = []
        params: List[str] = []
        for name in BOOK_FILTER_FIELDS:
            value = getattr(example, name, None)
            if value:
                clauses.append(f"{name} LIKE ? ESCAPE '\\'")
                params.append(_like_pattern(value))
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""

        conn = self._connect()
        try:
            total = conn.execute(f"SELECT COUNT(*) FROM books{where}", params).fetchone()[0]
            rows = conn.execute(
                f"SELECT id, title, author, isbn FROM books{where} ORDER BY id LIMIT ? OFFSET ?",
                (*params, page_request.size, page_request.offset),
            ).fetchall()
            return Page([Book.from_dict(dict(row)) for row in rows], page_request, total)
        finally:
            conn.close()


class LoanRepository:
    """Loan storage: active-loan check, save, lookup and isbn-or-customer search."""

    def __init__(self, db_file: Optional[str] = None) -> None:
        self.db_file = db_file

    def _connect(self) -> sqlite3.Connection:
        return get_db_connection(self.db_file)

    def exists_by_book_and_not_returned(self, book: Book) -> bool:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT 1 FROM loans WHERE book_id = ? AND (returned IS NULL OR returned = 0) LIMIT 1",
                (book.id,),
            ).fetchone()
            return row is not None
        finally:
            conn.close()

    def find_by_id(self, loan_id: int) -> Optional[Loan]:
        conn = self._connect()
        try:
            row = conn.execute(f"{_LOAN_SELECT} WHERE l.id = ?", (loan_id,)).fetchone()
            return Loan.from_row(dict(row)) if row else None
        finally:
            conn.close()

    def save(self, loan: Loan) -> Loan:
        """Insert a new loan or update ``customer``/``returned`` of an existing one."""
        returned = None if loan.returned is None else int(loan.returned)
        conn = self._connect()
        try:
            cursor = conn.cursor()
            if loan.id is None:
                cursor.execute(
                    "INSERT INTO loans (book_id, customer, loan_date, returned) VALUES (?, ?, ?, ?)",
                    (loan.book.id, loan.customer, loan.loan_date.isoformat(), returned),
                )
                loan.id = cursor.lastrowid
            else:
                cursor.execute(
                    "UPDATE loans SET customer = ?, returned = ? WHERE id = ?",
                    (loan.customer, returned, loan.id),
                )
            conn.commit()
            return loan
        except sqlite3.IntegrityError as e:
            if "FOREIGN KEY" in str(e):
                logger.warning(f"No book with id {loan.book.id} for loan: {e}")
                raise BusinessRuleViolation("Book not found for passed isbn") from e
            if "UNIQUE" in str(e):
                logger.warning(f"Active loan index rejected book {loan.book.id}: {e}")
                raise BusinessRuleViolation("Book already loaned") from e
            raise
        finally:
            conn.close()

    def find_by_book_isbn_or_customer(self, isbn: Optional[str], customer: Optional[str],
                                      page_request: PageRequest) -> Page:
        """Loans whose book has ``isbn`` OR whose customer is ``customer``.

        An empty criterion is ignored; with neither given, all loans match.
        """
        clauses, params = self._or_criteria(isbn, customer)
        where = f" WHERE {' OR '.join(clauses)}" if clauses else ""

        conn = self._connect()
        try:
            total = conn.execute(
                f"SELECT COUNT(*) FROM loans l JOIN books b ON b.id = l.book_id{where}", params
            ).fetchone()[0]
            rows = conn.execute(
                f"{_LOAN_SELECT}{where} ORDER BY l.id LIMIT ? OFFSET ?",
                (*params, page_request.size, page_request.offset),
            ).fetchall()
            return Page([Loan.from_row(dict(row)) for row in rows], page_request, total)
        finally:
            conn.close()

    @staticmethod
    def _or_criteria(isbn: Optional[str], customer: Optional[str]) -> Tuple[List[str], List[str]]:
        clauses: List[str] = []
        params: List[str] = []
        if isbn:
            clauses.append("b.isbn = ?")
            params.append(isbn)
        if customer:
            clauses.append("l.customer = ?")
            params.append(customer)
        return clauses, params
