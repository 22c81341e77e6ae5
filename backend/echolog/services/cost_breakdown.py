"""
EchoLog Backend — Cost Breakdown (Service Aggregator + Percentage Normalizer)
===============================================================================

What:  Turns raw billing-export rows into the per-service breakdown shown in
       the billing report: rows are merged under a canonical service name,
       then each service gets an integer percentage share of the total.
Who:   Called by BillingService; pure functions with no I/O.

Normalization rules:
    - total <= 0 or no entries         → percentages stay None
    - exactly one entry                → 100
    - otherwise raw share = floor(cost / total * 100), clamped at 0
    - any entry with cost > 0 gets at least 1
    - sum > 100 → take 1 from the largest share above 1 until the sum is 100
    - sum < 100 → give 1 to the smallest share until the sum is 100
      (only entries with cost > 0 receive, when there are any)
    Ties go to the entry that comes first in descending-cost order.
    The result is always returned in descending-cost order.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Iterable, List, NamedTuple, Optional, Sequence

logger = logging.getLogger(__name__)


# ── Canonical Service Names ──────────────────────────────────────────────
# Matched case-insensitively as substrings of the export's service
# description, then of the SKU description. Order matters: the first hit wins.
SERVICE_NAME_FRAGMENTS = (
    ("speech", "Speech-to-Text"),
    ("generative language", "Gemini API"),
    ("gemini", "Gemini API"),
    ("vertex ai", "Vertex AI"),
    ("bigquery", "BigQuery"),
    ("cloud run", "Cloud Run"),
    ("compute engine", "Compute Engine"),
    ("cloud storage", "Cloud Storage"),
    ("cloud logging", "Cloud Logging"),
    ("secret manager", "Secret Manager"),
    ("networking", "Networking"),
)

CANONICAL_SERVICE_NAMES = frozenset(name for _, name in SERVICE_NAME_FRAGMENTS)


class BillingRow(NamedTuple):
    """One aggregate row from the billing warehouse."""

    service_description: str
    sku_description: str
    cost: float
    credits: float = 0.0


@dataclass
class CostEntry:
    """
    Cost of one logical service over the report window.

    `credits` is usually <= 0 (credits reduce the bill), so
    `net_cost == cost + credits`.
    """

    service: str
    cost: float
    credits: float = 0.0
    percentage: Optional[int] = field(default=None)

    @property
    def net_cost(self) -> float:
        return round(self.cost + self.credits, 2)


def canonical_service_name(service_description: str, sku_description: str = "") -> str:
    """Maps a billing description to its canonical service name, or returns it unchanged."""
    if service_description in CANONICAL_SERVICE_NAMES:
        return service_description

    for candidate in (service_description, sku_description):
        lowered = (candidate or "").lower()
        if not lowered:
            continue
        for fragment, name in SERVICE_NAME_FRAGMENTS:
            if fragment in lowered:
                return name

    return service_description


def merge_entries(entries: Iterable[CostEntry]) -> List[CostEntry]:
    """
    Sums entries whose services share a canonical name.

    Amounts are rounded to cents and the result is ordered by cost, highest
    first (stable for equal costs). Merging an already merged list returns
    an equal list.
    """
    merged: dict = {}
    for entry in entries:
        name = canonical_service_name(entry.service)
        if name in merged:
            target = merged[name]
            target.cost += entry.cost
            target.credits += entry.credits
        else:
            merged[name] = CostEntry(service=name, cost=entry.cost, credits=entry.credits)

    result = []
    for entry in merged.values():
        entry.cost = round(entry.cost, 2)
        entry.credits = round(entry.credits, 2)
        result.append(entry)

    result.sort(key=lambda e: e.cost, reverse=True)
    return result


def aggregate_by_service(rows: Iterable[BillingRow]) -> List[CostEntry]:
    """Groups warehouse rows under canonical service names."""
    entries = [
        CostEntry(
            service=canonical_service_name(row.service_description, row.sku_description),
            cost=float(row.cost or 0.0),
            credits=float(row.credits or 0.0),
        )
        for row in rows
    ]
    return merge_entries(entries)


def _raw_share(cost: float, total: float) -> int:
    # round() first so 0.29 / 1 * 100 == 28.999999999999996 floors to 29
    share = math.floor(round(cost / total * 100, 9))
    return max(share, 0)


def normalize_percentages(
    entries: Sequence[CostEntry],
    total_cost: Optional[float] = None,
) -> List[CostEntry]:
    """
    Assigns integer percentages that sum to exactly 100.

    Args:
        entries:    Cost entries in any order.
        total_cost: Denominator for the shares. Defaults to the sum of the
                    entries' costs; callers may pass a grand total computed
                    over a different window.

    Returns:
        The same entry objects, ordered by descending cost, with
        `percentage` set (or left None when there is nothing to share).
    """
    ordered = sorted(entries, key=lambda e: e.cost, reverse=True)
    total = sum(e.cost for e in ordered) if total_cost is None else total_cost

    if not ordered or total is None or total <= 0:
        for entry in ordered:
            entry.percentage = None
        return ordered

    if len(ordered) == 1:
        ordered[0].percentage = 100
        return ordered

    shares = []
    for entry in ordered:
        share = _raw_share(entry.cost, total)
        if entry.cost > 0 and share == 0:
            share = 1
        shares.append(share)

    while sum(shares) > 100:
        candidates = [i for i, share in enumerate(shares) if share > 1]
        if not candidates:
            # More billed services than percentage points; nothing left to take.
            logger.warning(
                "Cannot reduce cost shares to 100: %d services already at 1%%",
                len(shares),
            )
            break
        largest = max(candidates, key=lambda i: (shares[i], -i))
        shares[largest] -= 1

    # Missing points go only to billed services; a zero-cost entry stays at 0%
    # unless nothing was billed at all.
    receivers = [i for i, entry in enumerate(ordered) if entry.cost > 0] or list(
        range(len(ordered))
    )
    while sum(shares) < 100:
        smallest = min(receivers, key=lambda i: (shares[i], i))
        shares[smallest] += 1

    for entry, share in zip(ordered, shares):
        entry.percentage = share
    return ordered


def build_service_breakdown(
    rows: Iterable[BillingRow],
    total_cost: Optional[float] = None,
) -> List[CostEntry]:
    """Aggregates warehouse rows by service, then normalizes their shares."""
    return normalize_percentages(aggregate_by_service(rows), total_cost)
