"""Command line interface for the library.

Runs the same services as the HTTP API against the configured database file,
plus ``serve`` to start the API under uvicorn.
"""
import json
import logging
import os
import subprocess
import sys
from typing import Any, Dict, List, Optional, Tuple

import typer
from rich.console import Console
from rich.table import Table

from library_api.book import Book
from library_api.config import settings
from library_api.database import initialize_database
from library_api.exceptions import BusinessRuleViolation
from library_api.loan import Loan
from library_api.page import Page, PageRequest
from library_api.repository import BookRepository, LoanRepository
from library_api.services import BookService, LoanFilter, LoanService

# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LIBRARY_CLI_OUTPUT"

console = Console()
app = typer.Typer(help="Library CLI")

_state: Dict[str, Any] = {"db_file": None}


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def _services() -> Tuple[BookService, LoanService]:
    db_file = _state["db_file"] or settings.database_file
    initialize_database(db_file)
    loan_repository = LoanRepository(db_file)
    return BookService(BookRepository(db_file), loan_repository), LoanService(loan_repository)


def _page_request(page: int, size: int) -> PageRequest:
    try:
        return PageRequest(page, size)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--page") from e


def _print_rows(title: str, columns: List[str], rows: List[Dict[str, Any]], page: Page) -> None:
    mode = get_output_mode()
    if mode == "json":
        payload = page.to_dict()
        payload["content"] = rows
        print(json.dumps(payload, ensure_ascii=False, default=str))
        return
    if not rows:
        print(f"No {title.lower()} found.")
        return
    if mode == "rich":
        table = Table(title=title, show_lines=True, header_style="bold cyan")
        for column in columns:
            table.add_column(column.upper(), no_wrap=column in ("id", "isbn"))
        for row in rows:
            table.add_row(*(str(row.get(column, "")) for column in columns))
        console.print(table)
    else:
        for row in rows:
            print(" - ".join(str(row.get(column, "")) for column in columns))
    print(f"Page {page.request.page + 1}/{max(page.total_pages, 1)} ({page.total_elements} total)")


@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(None, "--output", "-o", help="Output format: plain | json | rich"),
    db: Optional[str] = typer.Option(None, "--db", help="SQLite database file (default: LIBRARY_DB_FILE)"),
):
    """Global options for the CLI."""
    logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
    if output:
        set_output_mode(output)
    _state["db_file"] = db


@app.command("init-db")
def cli_init_db():
    """Create the database schema."""
    db_file = _state["db_file"] or settings.database_file
    initialize_database(db_file)
    print(f"Database ready: {db_file}")


@app.command("serve")
def cli_serve(
    host: str = typer.Option(settings.api_host, help="Bind address"),
    port: int = typer.Option(settings.api_port, help="Bind port"),
):
    """Start the HTTP API with uvicorn."""
    print(f"Starting API on http://{host}:{port}")
    env = dict(os.environ)
    if _state["db_file"]:
        env["LIBRARY_DB_FILE"] = _state["db_file"]
    subprocess.run(
        [sys.executable, "-m", "uvicorn", "library_api.api:app", "--host", host, "--port", str(port)],
        env=env,
    )


@app.command("add")
def cli_add(title: str, author: str, isbn: str):
    """Add a book to the catalog."""
    book_service, _ = _services()
    try:
        book = book_service.save(Book(title=title, author=author, isbn=isbn))
    except BusinessRuleViolation as e:
        print(f"Error: {e.message}")
        raise typer.Exit(code=1)
    print(f"Successfully added: {book.title} by {book.author} (id {book.id})")


@app.command("books")
def cli_books(
    title: Optional[str] = typer.Option(None, help="Filter by title (substring)"),
    author: Optional[str] = typer.Option(None, help="Filter by author (substring)"),
    isbn: Optional[str] = typer.Option(None, help="Filter by isbn (substring)"),
    page: int = typer.Option(0, min=0, help="Zero-based page"),
    size: int = typer.Option(settings.default_page_size, min=1, help="Page size"),
):
    """List books, optionally filtered."""
    book_service, _ = _services()
    result = book_service.find(Book(title=title, author=author, isbn=isbn), _page_request(page, size))
    rows = [b.to_dict() for b in result.content]
    _print_rows("Books", ["id", "isbn", "title", "author"], rows, result)


@app.command("lend")
def cli_lend(isbn: str, customer: str):
    """Lend the book with ISBN to CUSTOMER."""
    book_service, loan_service = _services()
    book = book_service.get_by_isbn(isbn)
    if not book:
        print("Error: Book not found for passed isbn")
        raise typer.Exit(code=1)
    try:
        loan = loan_service.save(Loan(book=book, customer=customer))
    except BusinessRuleViolation as e:
        print(f"Error: {e.message}")
        raise typer.Exit(code=1)
    print(f"Loan {loan.id} created: {book.title} to {customer}")


@app.command("return")
def cli_return(loan_id: int):
    """Mark a loan as returned."""
    _, loan_service = _services()
    loan = loan_service.get_by_id(loan_id)
    if not loan:
        print(f"Loan {loan_id} not found.")
        raise typer.Exit(code=1)
    loan_service.return_loan(loan)
    print(f"Loan {loan_id} returned: {loan.book.title}")


@app.command("loans")
def cli_loans(
    isbn: Optional[str] = typer.Option(None, help="Book isbn"),
    customer: Optional[str] = typer.Option(None, help="Customer"),
    page: int = typer.Option(0, min=0, help="Zero-based page"),
    size: int = typer.Option(settings.default_page_size, min=1, help="Page size"),
):
    """List loans matching isbn OR customer."""
    _, loan_service = _services()
    result = loan_service.find(LoanFilter(isbn=isbn, customer=customer), _page_request(page, size))
    rows = []
    for loan in result.content:
        row = loan.to_dict()
        row["title"] = loan.book.title
        row["status"] = "active" if loan.is_active else "returned"
        rows.append(row)
    _print_rows("Loans", ["id", "isbn", "title", "customer", "loan_date", "status"], rows, result)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
