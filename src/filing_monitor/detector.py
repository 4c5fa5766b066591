"""Holdings change detection."""
from __future__ import annotations

from decimal import Decimal
from typing import Dict, Iterable, List, Sequence

from .models import ChangeClassification, ChangeRecord, FilingCategory, FilingReference, Holding


def filter_noise_holdings(holdings: Iterable[Holding], category: FilingCategory) -> List[Holding]:
    """Drop zero-share rows unless a zero balance is meaningful for ``category``."""

    if category.is_ownership_disclosure:
        return list(holdings)
    return [holding for holding in holdings if holding.share_count > 0]


def _classify(previous: int | None, current: int) -> ChangeClassification | None:
    if current == 0:
        if previous == 0:
            return None
        return ChangeClassification.EXITED
    if previous is None:
        return ChangeClassification.NEW
    if current > previous:
        return ChangeClassification.INCREASED
    if current < previous:
        return ChangeClassification.REDUCED
    return None


def detect_changes(
    previous: Sequence[Holding],
    current: Sequence[Holding],
    source: FilingReference,
) -> List[ChangeRecord]:
    """Classify every difference between two holdings snapshots.

    Issuers are matched by exact name, the first previous holding with the
    name wins. Holdings present before but missing now are reported as exits.
    The result depends only on the arguments.
    """

    first_previous: Dict[str, Holding] = {}
    for holding in previous:
        first_previous.setdefault(holding.issuer_name, holding)

    changes: List[ChangeRecord] = []
    seen_now = set()
    for holding in current:
        seen_now.add(holding.issuer_name)
        match = first_previous.get(holding.issuer_name)
        previous_count = match.share_count if match is not None else None
        classification = _classify(previous_count, holding.share_count)
        if classification is None:
            continue
        changes.append(
            ChangeRecord(
                issuer_name=holding.issuer_name,
                previous_share_count=previous_count,
                current_share_count=holding.share_count,
                reported_value=holding.reported_value,
                classification=classification,
                source=source,
            )
        )

    for name, holding in first_previous.items():
        if name in seen_now or holding.share_count == 0:
            continue
        changes.append(
            ChangeRecord(
                issuer_name=name,
                previous_share_count=holding.share_count,
                current_share_count=0,
                reported_value=Decimal(0),
                classification=ChangeClassification.EXITED,
                source=source,
            )
        )

    return changes


__all__ = ["detect_changes", "filter_noise_holdings"]
