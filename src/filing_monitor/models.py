"""Domain models representing filings, holdings and detected changes."""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Optional


class FilingCategory(str, Enum):
    """Disclosure types tracked on the registry."""

    HOLDINGS_REPORT = "13F-HR"
    ACTIVIST_OWNERSHIP = "SC 13D"
    PASSIVE_OWNERSHIP = "SC 13G"
    CURRENT_REPORT = "8-K"
    ANNUAL_REPORT = "10-K"
    QUARTERLY_REPORT = "10-Q"

    @property
    def is_ownership_disclosure(self) -> bool:
        """A zero balance in these filings means the holder fell below the threshold."""

        return self in (FilingCategory.ACTIVIST_OWNERSHIP, FilingCategory.PASSIVE_OWNERSHIP)

    @property
    def carries_holdings(self) -> bool:
        return self is FilingCategory.HOLDINGS_REPORT or self.is_ownership_disclosure

    @classmethod
    def parse(cls, value: str | None) -> Optional["FilingCategory"]:
        """Match listing or configuration text to a category, ignoring case and spacing."""

        if not value:
            return None
        normalized = " ".join(value.split()).upper()
        for category in cls:
            if category.value == normalized:
                return category
        return None


@dataclass(frozen=True)
class FilingReference:
    """A filing as announced on the registry listing page."""

    category: FilingCategory
    published_date: str
    document_link: str

    @property
    def identity(self) -> tuple[str, str, str]:
        return (self.category.value, self.published_date, self.document_link)


@dataclass(frozen=True)
class Holding:
    """One position reported within a filing."""

    issuer_name: str
    share_count: int
    reported_value: Decimal = Decimal(0)


class ChangeClassification(str, Enum):
    NEW = "New"
    INCREASED = "Increased"
    REDUCED = "Reduced"
    EXITED = "Exited"


@dataclass(frozen=True)
class ChangeRecord:
    """A classified difference between two holdings snapshots."""

    issuer_name: str
    previous_share_count: Optional[int]
    current_share_count: int
    reported_value: Decimal
    classification: ChangeClassification
    source: FilingReference

    def to_dict(self) -> dict[str, object]:
        return {
            "issuer": self.issuer_name,
            "previous_shares": self.previous_share_count,
            "current_shares": self.current_share_count,
            "value": str(self.reported_value),
            "classification": self.classification.value,
            "category": self.source.category.value,
            "published_date": self.source.published_date,
            "link": self.source.document_link,
        }


@dataclass(frozen=True)
class HistoryEntry:
    """A persisted record of a filing (and optionally one holding) already seen."""

    published_date: str
    category: FilingCategory
    document_link: str
    issuer_name: Optional[str] = None
    share_count: Optional[int] = None
    reported_value: Optional[Decimal] = None

    @classmethod
    def from_reference(cls, reference: FilingReference) -> "HistoryEntry":
        return cls(
            published_date=reference.published_date,
            category=reference.category,
            document_link=reference.document_link,
        )


@dataclass(slots=True)
class CycleResult:
    """Aggregated outcome of one monitoring cycle."""

    categories: list[FilingCategory] = field(default_factory=list)
    new_filings: list[FilingReference] = field(default_factory=list)
    changes: list[ChangeRecord] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)
    notified: bool = False

    @property
    def status(self) -> str:
        return "partial" if self.failures else "success"

    def to_summary(self) -> dict[str, object]:
        summary: dict[str, object] = {
            "status": self.status,
            "changesFound": len(self.changes),
            "changes": [change.to_dict() for change in self.changes],
            "newFilings": [
                {
                    "category": reference.category.value,
                    "published_date": reference.published_date,
                    "link": reference.document_link,
                }
                for reference in self.new_filings
            ],
            "notified": self.notified,
        }
        if self.failures:
            summary["failures"] = dict(self.failures)
        return summary


__all__ = [
    "ChangeClassification",
    "ChangeRecord",
    "CycleResult",
    "FilingCategory",
    "FilingReference",
    "HistoryEntry",
    "Holding",
]
