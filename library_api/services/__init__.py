"""Library API - Services Package

Business rules on top of the repositories:
- Book catalog service (isbn uniqueness, CRUD)
- Loan lifecycle service (single active loan per book, returns, search)
"""
from library_api.services.book_service import BookService
from library_api.services.loan_service import LoanFilter, LoanService

__all__ = ["BookService", "LoanFilter", "LoanService"]
