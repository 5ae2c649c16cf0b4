"""Batch expiry sweep for an external cron; the service never schedules itself."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from ..core.database import transactional
from ..services.ledger_service import sweep_all_expired

logger = logging.getLogger(__name__)


def run_sweep_once(
    current_time: datetime | None = None,
    *,
    session_factory: Optional[Callable[[], Session]] = None,
) -> dict[str, int]:
    """Expire stale grants for every user in one committed unit of work."""

    try:
        summary = transactional(
            lambda session: sweep_all_expired(session, now=current_time),
            session_factory=session_factory,
        )
    except Exception:
        logger.exception("expiry sweep failed")
        raise
    logger.info("expiry sweep completed: %s", summary)
    return summary
