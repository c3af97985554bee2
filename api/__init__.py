"""
CRM Duplicate Scrubber API.

FastAPI backend exposing the admin duplicate preview/merge endpoints.

Run with:
    uvicorn api.main:app --reload --port 8000
"""

from api.main import app

__version__ = "1.0.0"

__all__ = ["app"]
