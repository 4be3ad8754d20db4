import pytest
from fastapi.testclient import TestClient

from library_api.api import create_app
from library_api.database import initialize_database
from library_api.repository import BookRepository, LoanRepository
from library_api.services import BookService, LoanService


@pytest.fixture
def db_file(tmp_path, request):
    # Unique database file per test
    path = str(tmp_path / f"test_{request.node.name}.db")
    initialize_database(path)
    return path


@pytest.fixture
def book_repository(db_file):
    return BookRepository(db_file)


@pytest.fixture
def loan_repository(db_file):
    return LoanRepository(db_file)


@pytest.fixture
def book_service(book_repository, loan_repository):
    return BookService(book_repository, loan_repository)


@pytest.fixture
def loan_service(loan_repository):
    return LoanService(loan_repository)


@pytest.fixture
def client(db_file):
    with TestClient(create_app(db_file)) as test_client:
        yield test_client
