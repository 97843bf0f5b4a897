"""
Read-only analytics folded from the event log and the current projection.

Everything is recomputed per query; nothing here appends or mutates.
"""
from collections import Counter, defaultdict
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Optional

from equiptrack.events import EventRecord
from equiptrack.ledger.issuance import days_overdue, is_overdue, whole_days
from equiptrack.ledger.projector import LedgerProjector
from equiptrack.models import (
    DiscrepancyRate,
    HoldDuration,
    IssuanceStatus,
    ItemFrequency,
    OverdueIssuance,
)
from equiptrack.utils.dates import ensure_utc


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def mean_days(samples: List[int]) -> int:
    """Arithmetic mean of whole-day samples, rounded half up."""
    return round_half_up(Decimal(sum(samples)) / Decimal(len(samples)))


class AnalyticsAggregator:
    def __init__(self, records: Iterable[EventRecord], projector: LedgerProjector):
        self.records = list(records)
        self.projector = projector

    def item_frequency(self, top_n: Optional[int] = None) -> List[ItemFrequency]:
        """
        Issuance events per item, descending, ties by item id ascending.
        Live items with no issuances are listed with zero.
        """
        counts = Counter(r.item_id for r in self.records if r.kind == "item_issued")
        for item in self.projector.items():
            counts.setdefault(item.item_id, 0)

        ranked = sorted(counts.items(), key=lambda pair: (-pair[1], pair[0]))
        if top_n is not None:
            ranked = ranked[:top_n]
        return [
            ItemFrequency(item_id=item_id, name=self.projector.item_name(item_id), issuances=count)
            for item_id, count in ranked
        ]

    def average_hold_durations(self) -> List[HoldDuration]:
        """
        Mean days between issue and return for returned temporary issuances.
        Each sample is floored to whole days; the mean is rounded half up.
        Items without samples are omitted.
        """
        issued: Dict[int, EventRecord] = {}
        samples: Dict[int, List[int]] = defaultdict(list)

        for record in self.records:
            event = record.event
            if record.kind == "item_issued" and event.status == IssuanceStatus.TEMPORARY:
                issued[event.issuance_id] = record
            elif record.kind == "issuance_returned" and event.issuance_id in issued:
                opened = issued[event.issuance_id].event
                samples[opened.item_id].append(whole_days(opened.issue_date, event.returned_date))

        return [
            HoldDuration(
                item_id=item_id,
                name=self.projector.item_name(item_id),
                average_days=mean_days(days),
                samples=len(days),
            )
            for item_id, days in sorted(samples.items())
        ]

    def discrepancy_rate(self, now: datetime, window_days: Optional[int] = None) -> DiscrepancyRate:
        """Count of forced count adjustments per item, optionally over a trailing window."""
        since = ensure_utc(now) - timedelta(days=window_days) if window_days is not None else None
        per_item: Counter = Counter()

        for record in self.records:
            if record.kind != "count_adjusted":
                continue
            if since is not None and ensure_utc(record.timestamp) < since:
                continue
            per_item[record.item_id] += 1

        return DiscrepancyRate(
            window_days=window_days,
            since=since,
            total=sum(per_item.values()),
            per_item=dict(sorted(per_item.items())),
        )

    def overdue(self, now: datetime) -> List[OverdueIssuance]:
        """Open temporary issuances past due, most overdue first."""
        rows = [
            OverdueIssuance(
                issuance=issuance,
                item_name=self.projector.item_name(issuance.item_id),
                days_overdue=days_overdue(issuance, now),
            )
            for issuance in self.projector.issuances()
            if is_overdue(issuance, now)
        ]
        rows.sort(key=lambda row: (-row.days_overdue, row.issuance.issuance_id))
        return rows
