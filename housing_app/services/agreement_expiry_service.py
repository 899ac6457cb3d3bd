import logging
from datetime import date
from typing import Optional

from core.date_helper import utc_today
from core.get_db import AsyncSessionLocal
from core.lifecycle_errors import LifecycleError
from repos.agreement_repo import AgreementRepo
from services.lifecycle_coordinator import LifecycleCoordinator

logger = logging.getLogger(__name__)


class AgreementExpiryRunner:
    """Expires every due agreement, each in its own session."""

    def __init__(self, session_factory=None, notifier=None):
        self.session_factory = session_factory or AsyncSessionLocal
        self.notifier = notifier

    async def run(self, today: Optional[date] = None) -> int:
        today = today or utc_today()
        async with self.session_factory() as session:
            due = await AgreementRepo(session).due_for_expiry(today)

        expired = 0
        for agreement_id in due:
            async with self.session_factory() as session:
                coordinator = LifecycleCoordinator(session, notifier=self.notifier)
                try:
                    await coordinator.expire_agreement(agreement_id, today=today)
                except LifecycleError as e:
                    await session.rollback()
                    logger.warning(
                        f"Skipping expiry of agreement {agreement_id}: {e.detail}"
                    )
                    continue
            expired += 1

        logger.info(f"Agreement expiry sweep finished: {expired} expired")
        return expired
