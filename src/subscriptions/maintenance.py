"""Background maintenance: monthly and quarterly subscription counter resets."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from database import DocumentStore, parse_iso_utc, utc_now
from subscriptions.models import (
    LEVEL1_COLLECTION,
    LEVEL1_MONTHLY_COUNTERS,
    LEVEL2_COLLECTION,
    LEVEL2_MONTHLY_COUNTERS,
    QUARTERLY_COUNTERS,
)

logger = logging.getLogger(__name__)

SUBSCRIPTION_RESET_INTERVAL_SEC = 3600
MIN_RESET_INTERVAL_SEC = 60
QUARTER_LENGTH = timedelta(days=3 * 30)

MONTHLY_COUNTERS_BY_COLLECTION: dict[str, tuple[str, ...]] = {
    LEVEL1_COLLECTION: LEVEL1_MONTHLY_COUNTERS,
    LEVEL2_COLLECTION: LEVEL2_MONTHLY_COUNTERS,
}


@dataclass(slots=True)
class ResetReport:
    level1_updated: int = 0
    level2_updated: int = 0
    quarterly_resets: int = 0

    @property
    def total_updated(self) -> int:
        return self.level1_updated + self.level2_updated

    def to_dict(self) -> dict[str, int]:
        return {
            "level1Updated": self.level1_updated,
            "level2Updated": self.level2_updated,
            "quarterlyResets": self.quarterly_resets,
        }


def is_monthly_reset_due(last_reset: Any, now: datetime) -> bool:
    """Due on the first run in a calendar month other than the last reset's."""
    last = parse_iso_utc(last_reset)
    if last is None:
        return True
    return (last.year, last.month) != (now.year, now.month)


def is_quarterly_reset_due(last_reset: Any, now: datetime) -> bool:
    last = parse_iso_utc(last_reset)
    if last is None:
        return True
    return now - last >= QUARTER_LENGTH


def build_reset_update(
    collection: str,
    data: dict[str, Any],
    now: datetime,
    *,
    force: bool = False,
    only_due: bool = False,
) -> dict[str, Any] | None:
    """Fields to write for one subscription, or None when nothing is due.

    ``force`` zeroes every counter and stamps both reset dates. Otherwise the
    monthly counters are zeroed (only when a new month started, with
    ``only_due``) and quarterly counters follow when a quarter has passed.
    """
    now_iso = now.isoformat()
    monthly_counters = MONTHLY_COUNTERS_BY_COLLECTION[collection]
    if force:
        update: dict[str, Any] = {name: 0 for name in monthly_counters + QUARTERLY_COUNTERS}
        update["lastMonthlyReset"] = now_iso
        update["lastQuarterlyReset"] = now_iso
        return update

    if only_due and not is_monthly_reset_due(data.get("lastMonthlyReset"), now):
        return None

    update = {name: 0 for name in monthly_counters}
    update["lastMonthlyReset"] = now_iso
    if is_quarterly_reset_due(data.get("lastQuarterlyReset"), now):
        update.update({name: 0 for name in QUARTERLY_COUNTERS})
        update["lastQuarterlyReset"] = now_iso
    return update


async def reset_subscription_counters(
    store: DocumentStore,
    *,
    now: datetime | None = None,
    force: bool = False,
    only_due: bool = False,
) -> ResetReport:
    """Reset usage counters of every Level 1 and Level 2 subscription."""
    ref_now = now or utc_now()
    report = ResetReport()
    for collection in (LEVEL1_COLLECTION, LEVEL2_COLLECTION):
        updates: dict[str, dict[str, Any]] = {}
        for doc in await store.query(collection):
            update = build_reset_update(collection, doc.data, ref_now, force=force, only_due=only_due)
            if update is None:
                continue
            if "lastQuarterlyReset" in update:
                report.quarterly_resets += 1
            updates[doc.id] = update
        changed = await store.batch_update(collection, updates) if updates else 0
        if collection == LEVEL1_COLLECTION:
            report.level1_updated = changed
        else:
            report.level2_updated = changed
    return report


async def subscription_reset_loop(
    store: DocumentStore,
    *,
    interval_sec: int = SUBSCRIPTION_RESET_INTERVAL_SEC,
) -> None:
    """Periodically apply the counter resets that are due."""
    sleep_for = max(MIN_RESET_INTERVAL_SEC, int(interval_sec))

    while True:
        try:
            report = await reset_subscription_counters(store, only_due=True)
            if report.total_updated > 0:
                logger.info(
                    "Subscription counters reset: level1=%s level2=%s quarterly=%s",
                    report.level1_updated,
                    report.level2_updated,
                    report.quarterly_resets,
                )
        except Exception:
            logger.exception("Subscription counter reset loop failed")
        await asyncio.sleep(sleep_for)
