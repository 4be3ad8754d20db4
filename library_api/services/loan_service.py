import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from library_api.exceptions import BusinessRuleViolation
from library_api.loan import Loan
from library_api.page import Page, PageRequest
from library_api.repository import LoanRepository

logger = logging.getLogger(__name__)


@dataclass
class LoanFilter:
    isbn: Optional[str] = None
    customer: Optional[str] = None


class LoanService:
    """Loan lifecycle: ACTIVE (returned unset/False) -> RETURNED (returned True).

    A book may have at most one active loan. ``save`` checks it up front; the
    storage index on active loans backs the check when two requests race.
    """

    def __init__(self, repository: LoanRepository) -> None:
        self.repository = repository

    def save(self, loan: Loan) -> Loan:
        if self.repository.exists_by_book_and_not_returned(loan.book):
            logger.warning(f"Rejected loan for isbn {loan.book.isbn}: book already loaned")
            raise BusinessRuleViolation("Book already loaned")
        if loan.loan_date is None:
            loan.loan_date = date.today()
        return self.repository.save(loan)

    def get_by_id(self, loan_id: int) -> Optional[Loan]:
        return self.repository.find_by_id(loan_id)

    def update(self, loan: Loan) -> Loan:
        # No transition checks here; callers load the loan and set `returned`.
        return self.repository.save(loan)

    def return_loan(self, loan: Loan) -> Loan:
        loan.returned = True
        return self.update(loan)

    def find(self, filter: LoanFilter, page_request: PageRequest) -> Page:
        """Loans matching ``filter.isbn`` OR ``filter.customer``, paginated."""
        return self.repository.find_by_book_isbn_or_customer(filter.isbn, filter.customer, page_request)
