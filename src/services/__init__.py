"""Services that orchestrate archiving."""

from src.services.sync_service import SyncError, SyncReport, SyncService

__all__ = ["SyncError", "SyncReport", "SyncService"]
