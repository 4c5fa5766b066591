from __future__ import annotations

from decimal import Decimal

from filing_monitor.detector import detect_changes, filter_noise_holdings
from filing_monitor.models import ChangeClassification, FilingCategory, FilingReference, Holding

SOURCE = FilingReference(
    FilingCategory.HOLDINGS_REPORT,
    "2024-02-14",
    "https://www.sec.gov/Archives/edgar/data/1045810/000104581024000003/0001045810-24-000003-index.htm",
)
OWNERSHIP = FilingReference(
    FilingCategory.PASSIVE_OWNERSHIP,
    "2024-02-20",
    "https://www.sec.gov/Archives/edgar/data/1045810/000095017024000101/0000950170-24-000101-index.htm",
)


def holding(name: str, shares: int, value: str = "0") -> Holding:
    return Holding(issuer_name=name, share_count=shares, reported_value=Decimal(value))


def test_increase_is_reported_with_both_counts():
    changes = detect_changes([holding("A", 100)], [holding("A", 150, "900")], SOURCE)

    assert len(changes) == 1
    change = changes[0]
    assert change.issuer_name == "A"
    assert change.classification is ChangeClassification.INCREASED
    assert change.previous_share_count == 100
    assert change.current_share_count == 150
    assert change.reported_value == Decimal("900")
    assert change.source == SOURCE


def test_unchanged_holding_emits_nothing():
    assert detect_changes([holding("A", 100)], [holding("A", 100)], SOURCE) == []


def test_missing_holding_is_an_exit():
    changes = detect_changes([holding("A", 100)], [], SOURCE)

    assert [(c.issuer_name, c.classification, c.previous_share_count, c.current_share_count) for c in changes] == [
        ("A", ChangeClassification.EXITED, 100, 0)
    ]


def test_unknown_issuer_is_new():
    changes = detect_changes([], [holding("B", 50)], SOURCE)

    assert len(changes) == 1
    assert changes[0].classification is ChangeClassification.NEW
    assert changes[0].previous_share_count is None


def test_reduction():
    changes = detect_changes([holding("A", 100)], [holding("A", 40)], SOURCE)

    assert changes[0].classification is ChangeClassification.REDUCED


def test_explicit_zero_is_an_exit_even_without_history():
    changes = detect_changes([], [holding("C", 0)], OWNERSHIP)

    assert changes[0].classification is ChangeClassification.EXITED
    assert changes[0].previous_share_count is None


def test_zero_after_nonzero_is_an_exit_not_a_reduction():
    changes = detect_changes([holding("A", 100)], [holding("A", 0)], OWNERSHIP)

    assert [c.classification for c in changes] == [ChangeClassification.EXITED]


def test_zero_after_zero_is_not_reported():
    assert detect_changes([holding("A", 0)], [holding("A", 0)], OWNERSHIP) == []
    assert detect_changes([holding("A", 0)], [], OWNERSHIP) == []


def test_matching_is_case_sensitive_and_first_match_wins():
    previous = [holding("Acme", 10), holding("Acme", 500)]
    current = [holding("ACME", 10), holding("Acme", 20)]

    changes = detect_changes(previous, current, SOURCE)

    assert [(c.issuer_name, c.classification, c.previous_share_count) for c in changes] == [
        ("ACME", ChangeClassification.NEW, None),
        ("Acme", ChangeClassification.INCREASED, 10),
    ]


def test_detection_is_deterministic():
    previous = [holding("A", 100), holding("B", 10), holding("C", 5)]
    current = [holding("B", 20), holding("A", 90), holding("D", 1)]

    first = detect_changes(previous, current, SOURCE)
    second = detect_changes(previous, current, SOURCE)

    assert first == second
    assert [c.issuer_name for c in first] == ["B", "A", "D", "C"]


def test_zero_rows_are_noise_outside_ownership_disclosures():
    rows = [holding("A", 0), holding("B", 5)]

    assert filter_noise_holdings(rows, FilingCategory.HOLDINGS_REPORT) == [holding("B", 5)]
    assert filter_noise_holdings(rows, FilingCategory.ACTIVIST_OWNERSHIP) == rows
