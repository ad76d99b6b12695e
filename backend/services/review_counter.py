"""Daily review-count incrementer for stores showing a custom review counter."""
import random
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from database import database
from models import ReviewCountMode, ReviewCountSettings
import logging

logger = logging.getLogger(__name__)

UPDATE_INTERVAL = timedelta(hours=24)
DEFAULT_DAILY_MIN = 1
DEFAULT_DAILY_MAX = 5


def _as_utc(value: Any) -> Optional[datetime]:
    """Mongo returns naive UTC datetimes; older records may hold ISO strings."""
    if value is None:
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def is_due(last_update: Any, now: datetime) -> bool:
    last = _as_utc(last_update)
    if last is None:
        return True
    return now - last >= UPDATE_INTERVAL


def daily_increase(settings: ReviewCountSettings, rng=random) -> int:
    low = settings.daily_increase_min or DEFAULT_DAILY_MIN
    high = settings.daily_increase_max or DEFAULT_DAILY_MAX
    if low > high:
        low, high = high, low
    return rng.randint(low, high)


async def increment_review_counts(now: Optional[datetime] = None, rng=random) -> int:
    """
    Add a random daily increase to every enabled custom-mode counter that was
    last bumped at least 24 hours ago. Returns the number of stores updated.
    A failure on one store is logged and does not stop the others.
    """
    db = database.get_db()
    now = now or datetime.now(timezone.utc)

    cursor = db.review_count_settings.find(
        {"enabled": True, "mode": ReviewCountMode.CUSTOM.value},
        {"_id": 0},
    )
    candidates = await cursor.to_list(length=None)
    logger.info(f"Review count job: {len(candidates)} custom counter(s) enabled")

    updated = 0
    for doc in candidates:
        store_id = doc.get("store_id")
        try:
            settings = ReviewCountSettings.model_validate(doc)
            if not is_due(settings.last_update_date, now):
                logger.debug(f"Review count for store {store_id} updated less than 24h ago, skipping")
                continue

            increase = daily_increase(settings, rng)
            current = settings.current_count
            await db.review_count_settings.update_one(
                {"store_id": store_id},
                {"$set": {"current_count": current + increase, "last_update_date": now}},
            )
            updated += 1
            logger.info(f"Review count for store {store_id}: {current} -> {current + increase} (+{increase})")
        except Exception as e:
            logger.error(f"Failed to update review count for store {store_id}: {e}")

    return updated
