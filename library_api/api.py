import logging
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, field_validator

from library_api.book import Book
from library_api.config import settings
from library_api.database import get_db_connection, initialize_database
from library_api.exceptions import BusinessRuleViolation, InvalidArgument
from library_api.loan import Loan
from library_api.page import Page, PageRequest
from library_api.repository import BookRepository, LoanRepository
from library_api.services import BookService, LoanFilter, LoanService

logger = logging.getLogger(__name__)


# --- Models ---
class BookModel(BaseModel):
    id: int
    title: str
    author: str
    isbn: str


class BookCreateModel(BaseModel):
    title: str
    author: str
    isbn: str

    @field_validator("title", "author", "isbn")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value.strip()


class UpdateBookModel(BaseModel):
    title: str | None = None
    author: str | None = None


class LoanCreateModel(BaseModel):
    isbn: str
    customer: str

    @field_validator("isbn", "customer")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value.strip()


class ReturnedLoanModel(BaseModel):
    returned: bool


class LoanModel(BaseModel):
    id: int
    isbn: str
    customer: str
    loan_date: date | None = None
    returned: bool | None = None
    book: BookModel


class BookPageModel(BaseModel):
    content: List[BookModel]
    page: int
    size: int
    total_elements: int
    total_pages: int


class LoanPageModel(BaseModel):
    content: List[LoanModel]
    page: int
    size: int
    total_elements: int
    total_pages: int


# --- Helpers ---
def get_book_service(request: Request) -> BookService:
    return request.app.state.book_service


def get_loan_service(request: Request) -> LoanService:
    return request.app.state.loan_service


def page_request(
    page: int = Query(0, ge=0, description="Zero-based page number"),
    size: Optional[int] = Query(None, ge=1, description="Items per page"),
) -> PageRequest:
    """Build a PageRequest from query parameters, capping the size at the configured maximum."""
    size = size or settings.default_page_size
    try:
        return PageRequest(page=page, size=min(size, settings.max_page_size))
    except ValueError as e:
        raise InvalidArgument(f"page: {e}") from e


def _book_page(result: Page) -> BookPageModel:
    page = result.map(lambda b: BookModel(**b.to_dict())).to_dict()
    return BookPageModel(**page)


def _loan_page(result: Page) -> LoanPageModel:
    page = result.map(lambda loan: LoanModel(**loan.to_dict())).to_dict()
    return LoanPageModel(**page)


def _not_found() -> HTTPException:
    return HTTPException(status_code=404)


# --- Book endpoints ---
books_router = APIRouter(prefix="/api/books", tags=["books"])


@books_router.post("", response_model=BookModel, status_code=201)
def create_book(payload: BookCreateModel, service: BookService = Depends(get_book_service)):
    """Add a book to the catalog."""
    logger.info(f"creating a book for isbn: {payload.isbn}")
    book = service.save(Book(title=payload.title, author=payload.author, isbn=payload.isbn))
    return BookModel(**book.to_dict())


@books_router.get("/{book_id}", response_model=BookModel)
def get_book(book_id: int, service: BookService = Depends(get_book_service)):
    logger.info(f"obtaining details for book id: {book_id}")
    book = service.get_by_id(book_id)
    if not book:
        raise _not_found()
    return BookModel(**book.to_dict())


@books_router.get("", response_model=BookPageModel)
def find_books(
    title: Optional[str] = Query(None),
    author: Optional[str] = Query(None),
    isbn: Optional[str] = Query(None),
    pageable: PageRequest = Depends(page_request),
    service: BookService = Depends(get_book_service),
):
    """Paginated search; every given field must match (case-insensitive substring)."""
    logger.info(f"obtaining books from params: title={title} author={author} isbn={isbn}")
    # Book() strips values; None fields stay None and are ignored by the search.
    example = Book(title=title, author=author, isbn=isbn)
    return _book_page(service.find(example, pageable))


@books_router.put("/{book_id}", response_model=BookModel)
def update_book(book_id: int, update: UpdateBookModel, service: BookService = Depends(get_book_service)):
    """Update title and/or author of a book. The isbn never changes."""
    logger.info(f"updating book: {book_id}")
    book = service.get_by_id(book_id)
    if not book:
        raise _not_found()
    if update.title is not None and update.title.strip():
        book.title = update.title.strip()
    if update.author is not None and update.author.strip():
        book.author = update.author.strip()
    book = service.update(book)
    return BookModel(**book.to_dict())


@books_router.delete("/{book_id}", status_code=204)
def delete_book(book_id: int, service: BookService = Depends(get_book_service)):
    logger.info(f"deleting book from id: {book_id}")
    book = service.get_by_id(book_id)
    if not book:
        raise _not_found()
    service.delete(book)
    return Response(status_code=204)


# --- Loan endpoints ---
loans_router = APIRouter(prefix="/api/loans", tags=["loans"])


@loans_router.post("", response_model=int, status_code=201)
def create_loan(
    payload: LoanCreateModel,
    service: LoanService = Depends(get_loan_service),
    book_service: BookService = Depends(get_book_service),
):
    """Lend the book with the given isbn to a customer. Returns the new loan id."""
    logger.info(f"creating a loan for isbn: {payload.isbn} customer: {payload.customer}")
    book = book_service.get_by_isbn(payload.isbn)
    if not book:
        raise BusinessRuleViolation("Book not found for passed isbn")
    loan = service.save(Loan(book=book, customer=payload.customer, loan_date=date.today()))
    return loan.id


@loans_router.get("/{loan_id}", response_model=LoanModel)
def get_loan(loan_id: int, service: LoanService = Depends(get_loan_service)):
    loan = service.get_by_id(loan_id)
    if not loan:
        raise _not_found()
    return LoanModel(**loan.to_dict())


@loans_router.patch("/{loan_id}")
def return_loan(loan_id: int, payload: ReturnedLoanModel, service: LoanService = Depends(get_loan_service)):
    """Set the returned flag of a loan."""
    logger.info(f"update loan returned value from id: {loan_id}")
    loan = service.get_by_id(loan_id)
    if not loan:
        raise _not_found()
    loan.returned = payload.returned
    service.update(loan)
    return Response(status_code=200)


@loans_router.get("", response_model=LoanPageModel)
def find_loans(
    isbn: Optional[str] = Query(None),
    customer: Optional[str] = Query(None),
    pageable: PageRequest = Depends(page_request),
    service: LoanService = Depends(get_loan_service),
):
    """Paginated search of loans by book isbn OR customer."""
    logger.info(f"obtaining loans from params: isbn={isbn} customer={customer}")
    return _loan_page(service.find(LoanFilter(isbn=isbn, customer=customer), pageable))


# --- Error handlers ---
def _errors(status_code: int, messages: List[str]) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"errors": messages})


async def business_rule_handler(request: Request, exc: BusinessRuleViolation) -> JSONResponse:
    return _errors(400, [exc.message])


async def invalid_argument_handler(request: Request, exc: InvalidArgument) -> JSONResponse:
    return _errors(400, [str(exc)])


async def validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """One message per violated field, returned as 400 instead of FastAPI's 422."""
    messages = []
    for error in exc.errors():
        field = error.get("loc", ["body"])[-1]
        messages.append(f"{field}: {error.get('msg')}")
    return _errors(400, messages)


# --- Application ---
def create_app(db_file: Optional[str] = None) -> FastAPI:
    """Build the application and wire repositories and services for ``db_file``."""
    logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
    db_file = db_file or settings.database_file

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        initialize_database(db_file)
        yield

    app = FastAPI(title=settings.app_name, version=settings.app_version, debug=settings.debug, lifespan=lifespan)

    loan_repository = LoanRepository(db_file)
    app.state.db_file = db_file
    app.state.book_service = BookService(BookRepository(db_file), loan_repository)
    app.state.loan_service = LoanService(loan_repository)

    app.add_exception_handler(BusinessRuleViolation, business_rule_handler)
    app.add_exception_handler(InvalidArgument, invalid_argument_handler)
    app.add_exception_handler(RequestValidationError, validation_handler)

    @app.get("/health")
    def health(request: Request):
        """Lightweight health check with a quick database round trip."""
        db_ok = True
        try:
            conn = get_db_connection(request.app.state.db_file)
            conn.execute("SELECT 1")
            conn.close()
        except Exception:
            logger.exception("Health check could not reach the database")
            db_ok = False
        return {
            "status": "healthy" if db_ok else "degraded",
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "db": db_ok,
        }

    app.include_router(books_router)
    app.include_router(loans_router)
    return app


app = create_app()
