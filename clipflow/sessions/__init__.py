"""
Session records for generation runs.

SQLite is the source of truth for what was requested; the orchestrator's
in-memory state is what a client observes while a run is live.
"""

from .models import Segment, Session, SessionSummary
from .store import SessionStore

__all__ = ["Segment", "Session", "SessionSummary", "SessionStore"]
