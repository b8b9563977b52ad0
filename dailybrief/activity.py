import logging
from typing import Optional

from dailybrief.models import Action, ActivityLog
from dailybrief.storage.base import StorageAdapter

logger = logging.getLogger(__name__)


def record_activity(
    storage: StorageAdapter,
    action: Action | str,
    target_id: str,
    metadata: Optional[dict] = None,
    user_agent: Optional[str] = None,
    ip: Optional[str] = None,
) -> ActivityLog:
    """Append an activity entry; raises ValueError for unknown actions."""
    entry = ActivityLog(
        action=Action(action),
        target_id=target_id,
        metadata=metadata,
        user_agent=user_agent,
        ip=ip,
    )
    storage.save_log(entry)
    logger.debug(f"[Activity] {entry.action.value} {target_id}")
    return entry


def recent_activity(storage: StorageAdapter, limit: int = 100) -> list[ActivityLog]:
    return storage.get_logs(limit)
