"""Library API - Core Application Package

This package contains the core application modules including:
- HTTP API endpoints (api.py)
- Book and loan services (services/)
- Persistence gateway (repository.py)
- Data models (book.py, loan.py)
- Database layer (database.py)
- CLI interface (cli.py)
"""
__version__ = "1.0.0"
