from datetime import date

import pytest

LOAN_API = "/api/loans"


@pytest.fixture
def book(client):
    response = client.post("/api/books", json={"title": "As aventuras", "author": "Fulano", "isbn": "123"})
    return response.json()


def create_loan(client, isbn="123", customer="Fulano"):
    return client.post(LOAN_API, json={"isbn": isbn, "customer": customer})


def test_create_loan(client, book):
    response = create_loan(client)

    assert response.status_code == 201
    loan_id = response.json()
    assert isinstance(loan_id, int)

    loan = client.get(f"{LOAN_API}/{loan_id}").json()
    assert loan["customer"] == "Fulano"
    assert loan["isbn"] == "123"
    assert loan["loan_date"] == date.today().isoformat()
    assert loan["returned"] is None
    assert loan["book"] == book


def test_invalid_isbn_loan(client):
    response = create_loan(client, isbn="999")

    assert response.status_code == 400
    assert response.json()["errors"] == ["Book not found for passed isbn"]


def test_loaned_book_error_on_create_loan(client, book):
    create_loan(client)

    response = create_loan(client, customer="Beltrano")

    assert response.status_code == 400
    assert response.json()["errors"] == ["Book already loaned"]


def test_create_loan_missing_customer(client, book):
    response = client.post(LOAN_API, json={"isbn": "123"})

    assert response.status_code == 400
    assert response.json()["errors"] == ["customer: Field required"]


def test_return_book(client, book):
    loan_id = create_loan(client).json()

    response = client.patch(f"{LOAN_API}/{loan_id}", json={"returned": True})

    assert response.status_code == 200
    assert client.get(f"{LOAN_API}/{loan_id}").json()["returned"] is True


def test_return_releases_book(client, book):
    loan_id = create_loan(client).json()
    client.patch(f"{LOAN_API}/{loan_id}", json={"returned": True})

    response = create_loan(client, customer="Beltrano")

    assert response.status_code == 201


def test_dont_exist_loan_to_return_book(client):
    response = client.patch(f"{LOAN_API}/1", json={"returned": True})

    assert response.status_code == 404


def test_get_loan_not_found(client):
    assert client.get(f"{LOAN_API}/1").status_code == 404


def test_find_loans(client, book):
    create_loan(client)

    response = client.get(f"{LOAN_API}?isbn=123&customer=Fulano&page=0&size=10")

    assert response.status_code == 200
    data = response.json()
    assert len(data["content"]) == 1
    assert data["total_elements"] == 1
    assert data["size"] == 10
    assert data["page"] == 0
    assert data["content"][0]["book"]["title"] == "As aventuras"


def test_find_loans_by_isbn_or_customer(client, book):
    client.post("/api/books", json={"title": "Dom Casmurro", "author": "Machado", "isbn": "456"})
    client.post("/api/books", json={"title": "Iracema", "author": "Alencar", "isbn": "789"})
    create_loan(client, isbn="123", customer="Ciclano")
    create_loan(client, isbn="456", customer="Fulano")
    create_loan(client, isbn="789", customer="Beltrano")

    data = client.get(f"{LOAN_API}?isbn=123&customer=Fulano").json()

    assert data["total_elements"] == 2
    assert sorted(loan["isbn"] for loan in data["content"]) == ["123", "456"]


def test_find_loans_page_beyond_storage_offset(client):
    response = client.get(f"{LOAN_API}?page=100000000000000000&size=100")

    assert response.status_code == 400
    assert response.json()["errors"] == ["page: Page offset is too large."]
