"""
Activity notifications

Lifecycle events are posted here after the response has been sent
(FastAPI BackgroundTasks). Delivery failures are logged and never
propagate back into the operation that raised the event.
"""

import logging
from typing import Callable, Optional

from sqlalchemy.orm import Session

from ..database import SessionLocal
from ..models import Notification

logger = logging.getLogger(__name__)

RECURRING_SERIES_STARTED = "recurring_series_started"


class Notifications:
    """Notification sink backed by the notifications table"""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory

    async def create(self, event_type: str, team_id: str, payload: Optional[dict] = None) -> bool:
        """
        Record a notification in its own session.

        Returns:
            True if stored, False if it failed (the error is only logged)
        """
        db = self.session_factory()
        try:
            db.add(Notification(team_id=team_id, event_type=event_type, payload=payload or {}))
            db.commit()
            logger.info(f"📧 Notification {event_type} stored for team {team_id}")
            return True
        except Exception as e:
            db.rollback()
            logger.error(f"❌ Failed to store notification {event_type} for team {team_id}: {str(e)}")
            return False
        finally:
            db.close()


def get_notifications() -> Notifications:
    """Dependency injection for Notifications"""
    return Notifications()
