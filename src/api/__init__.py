"""
FastAPI archive service.

Provides:
- GET /search - Full-text search with thread expansion
- GET /home - Latest items across platforms
- POST /sync, POST /backfill - Scheduler-triggered archiving
- GET /health - Service health check
"""

from src.api.app import create_app

__all__ = ["create_app"]
