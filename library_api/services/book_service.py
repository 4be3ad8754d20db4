import logging
from typing import Optional

from library_api.book import Book
from library_api.exceptions import BusinessRuleViolation, DuplicateIsbn, InvalidArgument
from library_api.page import Page, PageRequest
from library_api.repository import BookRepository, LoanRepository

logger = logging.getLogger(__name__)


class BookService:
    """Catalog operations over books. Isbn must be unique across the catalog."""

    def __init__(self, repository: BookRepository, loan_repository: Optional[LoanRepository] = None) -> None:
        self.repository = repository
        self.loan_repository = loan_repository

    def save(self, book: Book) -> Book:
        """Persist a new book. Raises DuplicateIsbn if the isbn is already taken."""
        if self.repository.exists_by_isbn(book.isbn):
            logger.warning(f"Rejected book with duplicated isbn {book.isbn}")
            raise DuplicateIsbn()
        return self.repository.save(book)

    def get_by_id(self, book_id: int) -> Optional[Book]:
        return self.repository.find_by_id(book_id)

    def get_by_isbn(self, isbn: str) -> Optional[Book]:
        return self.repository.find_by_isbn(isbn)

    def update(self, book: Book) -> Book:
        if book is None or book.id is None:
            raise InvalidArgument("Book id can't be null.")
        return self.repository.save(book)

    def delete(self, book: Book) -> None:
        """Remove a book. Books currently on loan cannot be deleted."""
        if book is None or book.id is None:
            raise InvalidArgument("Book id can't be null.")
        if self.loan_repository is not None and self.loan_repository.exists_by_book_and_not_returned(book):
            logger.warning(f"Rejected delete of book {book.id}: active loan")
            raise BusinessRuleViolation("Book has an active loan.")
        self.repository.delete(book)

    def find(self, filter: Book, page_request: PageRequest) -> Page:
        return self.repository.find_matching(filter, page_request)
