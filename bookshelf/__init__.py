"""Bookshelf - Core Application Package

This package contains the core application modules including:
- API endpoints (api.py)
- Library management logic (library.py)
- CLI interface (main.py)
- Data models (book.py)
- Database layer (database.py)
- AI assistant orchestration (agent/)
"""

__version__ = "1.0.0"
