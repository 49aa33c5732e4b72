"""
Sliding-window rate limiting for abuse-sensitive endpoints.

Each (user_id, action) pair owns one rate_limit_windows row holding the
millisecond timestamps of its admitted requests. On every check, entries
outside the trailing window are pruned; rejected attempts are not recorded
and do not extend the window.

Known race: the check is a read-modify-write without a transaction guard.
Two concurrent requests for the same (user, action) can both read the same
count and both be admitted. This is an abuse deterrent, not a hard quota.
When two first requests both try to create the row, the loser of the unique
constraint rolls back and is counted against the winner's row.
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from adlink.models.rate_limit_window import RateLimitWindow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitConfig:
    max_requests: int = 10
    window_ms: int = 60_000


DEFAULT_RATE_LIMIT = RateLimitConfig()

# OAuth initiation endpoints
OAUTH_INITIATE_LIMIT = RateLimitConfig(max_requests=5, window_ms=60_000)


def current_time_ms() -> int:
    return int(time.time() * 1000)


def check_rate_limit(
    db: Session,
    user_id: str,
    action: str,
    config: Optional[RateLimitConfig] = None,
    now_ms: Optional[int] = None,
) -> bool:
    """
    Check whether a user may perform an action and record it if so.

    Args:
        db: Database session
        user_id: Authenticated user identifier
        action: Action identifier (e.g. "meta_oauth_initiate")
        config: Limit configuration (default: 10 requests / 60s)
        now_ms: Evaluation instant in epoch milliseconds (default: now)

    Returns:
        True if the request is allowed, False if the limit is exceeded
    """
    config = config or DEFAULT_RATE_LIMIT
    now = current_time_ms() if now_ms is None else now_ms
    window_start = now - config.window_ms

    window = _find_window(db, user_id, action)

    if window is None:
        db.add(
            RateLimitWindow(
                user_id=user_id,
                action=action,
                requests=[now],
                last_reset=now,
            )
        )
        try:
            db.commit()
            return True
        except IntegrityError:
            # A concurrent first request created the row; count against it
            db.rollback()
            logger.info(
                "Rate limit window created concurrently",
                extra={"user_id": user_id, "action": action},
            )
            window = _find_window(db, user_id, action)
            if window is None:
                raise

    recent = [t for t in (window.requests or []) if t > window_start]

    if len(recent) >= config.max_requests:
        logger.warning(
            "Rate limit exceeded",
            extra={
                "user_id": user_id,
                "action": action,
                "count": len(recent),
                "max_requests": config.max_requests,
                "window_ms": config.window_ms,
            },
        )
        return False

    # Reassign rather than mutate so the JSON column is flagged dirty
    window.requests = recent + [now]
    if not recent:
        window.last_reset = now
    db.commit()
    return True


def _find_window(db: Session, user_id: str, action: str) -> Optional[RateLimitWindow]:
    return db.execute(
        select(RateLimitWindow)
        .where(RateLimitWindow.user_id == user_id)
        .where(RateLimitWindow.action == action)
    ).scalar_one_or_none()
