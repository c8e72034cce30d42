"""Bookshelf - Services Package

This package contains service modules for external integrations:
- Pooled HTTP client shared by outbound calls
- Google Books metadata lookup
- Book metadata enrichment (Google Books plus an LLM summary)
"""
