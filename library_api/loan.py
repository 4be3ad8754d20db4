from __future__ import annotations

from datetime import date

from library_api.book import Book


class Loan:
    """A checkout of one book by one customer.

    ``returned`` is tri-state: ``None`` (never set) and ``False`` both mean the
    loan is still active, ``True`` means the book came back.
    """

    def __init__(self, book: Book, customer: str, loan_date: date | None = None,
                 returned: bool | None = None, id: int | None = None) -> None:
        self.id = id
        self.book = book
        self.customer = customer
        self.loan_date = loan_date
        self.returned = returned

    @property
    def is_active(self) -> bool:
        return self.returned is not True

    def __repr__(self) -> str:  # pragma: no cover
        return f"Loan(id={self.id!r}, isbn={self.book.isbn!r}, customer={self.customer!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Loan):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "isbn": self.book.isbn,
            "customer": self.customer,
            "loan_date": self.loan_date.isoformat() if self.loan_date else None,
            "returned": self.returned,
            "book": self.book.to_dict(),
        }

    @staticmethod
    def from_row(row: dict) -> "Loan":
        """Build a Loan from a joined loans/books row (book columns prefixed ``book_``)."""
        returned = row.get("returned")
        loan_date = row.get("loan_date")
        return Loan(
            id=row.get("id"),
            book=Book(
                id=row["book_id"],
                title=row["book_title"],
                author=row["book_author"],
                isbn=row["book_isbn"],
            ),
            customer=row["customer"],
            loan_date=date.fromisoformat(loan_date) if loan_date else None,
            returned=None if returned is None else bool(returned),
        )
