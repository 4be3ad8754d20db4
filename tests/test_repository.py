import sqlite3
from datetime import date

import pytest

from library_api.book import Book
from library_api.database import get_db_connection
from library_api.exceptions import BusinessRuleViolation, DuplicateIsbn
from library_api.loan import Loan
from library_api.page import PageRequest


@pytest.fixture
def book(book_repository):
    return book_repository.save(Book(title="As aventuras", author="Fulano", isbn="123"))


def test_exists_by_isbn(book_repository, book):
    assert book_repository.exists_by_isbn("123") is True
    assert book_repository.exists_by_isbn("456") is False


def test_save_assigns_id_and_persists(book_repository, db_file):
    saved = book_repository.save(Book(title="Sapiens", author="Yuval Noah Harari", isbn="9780099590088"))

    conn = get_db_connection(db_file)
    try:
        row = conn.execute("SELECT title FROM books WHERE id = ?", (saved.id,)).fetchone()
    finally:
        conn.close()
    assert row["title"] == "Sapiens"


def test_unique_isbn_constraint(book_repository, book):
    with pytest.raises(DuplicateIsbn):
        book_repository.save(Book(title="Other", author="Other", isbn="123"))


def test_update_keeps_isbn(book_repository, book):
    book.title = "Novo"
    book.isbn = "changed"
    book_repository.save(book)

    found = book_repository.find_by_id(book.id)
    assert found.title == "Novo"
    assert found.isbn == "123"


def test_delete(book_repository, book):
    assert book_repository.delete(book) is True
    assert book_repository.delete(book) is False


def test_exists_by_book_and_not_returned(loan_repository, book):
    assert loan_repository.exists_by_book_and_not_returned(book) is False

    loan = loan_repository.save(Loan(book=book, customer="Fulano", loan_date=date.today()))
    assert loan_repository.exists_by_book_and_not_returned(book) is True

    loan.returned = False
    loan_repository.save(loan)
    assert loan_repository.exists_by_book_and_not_returned(book) is True

    loan.returned = True
    loan_repository.save(loan)
    assert loan_repository.exists_by_book_and_not_returned(book) is False


def test_partial_index_allows_history(loan_repository, book, db_file):
    for customer in ("Fulano", "Beltrano", "Ciclano"):
        loan = loan_repository.save(Loan(book=book, customer=customer, loan_date=date.today()))
        loan.returned = True
        loan_repository.save(loan)
    loan_repository.save(Loan(book=book, customer="Outro", loan_date=date.today()))

    conn = get_db_connection(db_file)
    try:
        count = conn.execute("SELECT COUNT(*) FROM loans WHERE book_id = ?", (book.id,)).fetchone()[0]
    finally:
        conn.close()
    assert count == 4


def test_partial_index_rejects_raw_second_active_loan(loan_repository, book, db_file):
    loan_repository.save(Loan(book=book, customer="Fulano", loan_date=date.today()))

    conn = get_db_connection(db_file)
    try:
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute(
                "INSERT INTO loans (book_id, customer, loan_date, returned) VALUES (?, ?, ?, 0)",
                (book.id, "Beltrano", date.today().isoformat()),
            )
    finally:
        conn.close()


def test_second_active_loan_maps_to_business_error(loan_repository, book):
    loan_repository.save(Loan(book=book, customer="Fulano", loan_date=date.today()))

    with pytest.raises(BusinessRuleViolation, match="Book already loaned"):
        loan_repository.save(Loan(book=book, customer="Beltrano", loan_date=date.today()))



def test_loan_for_missing_book_maps_to_business_error(loan_repository):
    missing = Book(id=999, title="Fantasma", author="Ninguem", isbn="999")

    with pytest.raises(BusinessRuleViolation, match="Book not found for passed isbn"):
        loan_repository.save(Loan(book=missing, customer="Fulano", loan_date=date.today()))

def test_find_by_book_isbn_or_customer(loan_repository, book):
    loan = loan_repository.save(Loan(book=book, customer="Fulano", loan_date=date.today()))

    result = loan_repository.find_by_book_isbn_or_customer("123", "Fulano", PageRequest(0, 10))

    assert result.content == [loan]
    assert result.request.size == 10
    assert result.request.page == 0
    assert result.total_elements == 1


def test_find_by_customer_only(loan_repository, book):
    loan_repository.save(Loan(book=book, customer="Fulano", loan_date=date.today()))

    assert loan_repository.find_by_book_isbn_or_customer(None, "Fulano", PageRequest()).total_elements == 1
    assert loan_repository.find_by_book_isbn_or_customer(None, "Outro", PageRequest()).total_elements == 0


def test_page_request_validation():
    with pytest.raises(ValueError):
        PageRequest(page=-1)
    with pytest.raises(ValueError):
        PageRequest(size=0)
    with pytest.raises(ValueError, match="Page offset is too large."):
        PageRequest(page=2 ** 62, size=10)
    assert PageRequest(page=2 ** 62, size=1).offset == 2 ** 62
