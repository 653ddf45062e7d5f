from services.discovery.swipes.engine import (
    LogEntry,
    SessionState,
    SessionStatus,
    SwipeFeedbackEngine,
)
from services.discovery.swipes.log import InMemorySwipeLog, PgSwipeLog, SwipeLogRepository

__all__ = [
    "InMemorySwipeLog",
    "LogEntry",
    "PgSwipeLog",
    "SessionState",
    "SessionStatus",
    "SwipeFeedbackEngine",
    "SwipeLogRepository",
]
