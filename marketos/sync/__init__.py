"""
Marketplace synchronization
"""
from .orchestrator import SyncOrchestrator, SyncReport, SyncResult, SyncStatus

__all__ = ["SyncOrchestrator", "SyncReport", "SyncResult", "SyncStatus"]
