"""Monitoring cycle: listings to extraction to detection to notification."""
from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence

from .config import Settings
from .detector import detect_changes, filter_noise_holdings
from .errors import FetchCancelledError, FetchError, FetchExhaustedError, NotificationError
from .extractor import DocumentExtractor
from .fetcher import Fetcher
from .history import HistoryStore
from .models import ChangeRecord, CycleResult, FilingCategory, FilingReference, Holding
from .notifier import Notifier, compose_notification
from .parsers.listing import build_listing_url, parse_listing

LOGGER = logging.getLogger(__name__)


class CycleState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    EXTRACTING = "extracting"
    DETECTING = "detecting"
    NOTIFYING = "notifying"


class FilingMonitor:
    """Run monitoring cycles for the tracked entity.

    Categories are processed one after another. A failure while fetching or
    extracting one category is recorded on the cycle result and the next
    category is still checked. Per category, the baseline read, the
    comparison and the commit run under the store's category lock, and a
    filing only contributes changes when this cycle wins the
    ``record_filing`` claim. Overlapping cycles therefore never report the
    same filing twice nor diff against a snapshot that is about to change.
    """

    def __init__(
        self,
        settings: Settings,
        fetcher: Fetcher,
        store: HistoryStore,
        notifier: Notifier,
        extractor: DocumentExtractor | None = None,
    ) -> None:
        self.settings = settings
        self.fetcher = fetcher
        self.store = store
        self.notifier = notifier
        self.extractor = extractor or DocumentExtractor(fetcher)
        if fetcher.cancel_event is None:
            fetcher.cancel_event = threading.Event()
        self.stop_event = fetcher.cancel_event

    def request_stop(self) -> None:
        """Interrupt retry backoff and skip the categories not yet started."""

        LOGGER.info("Stop requested for filing monitor")
        self.stop_event.set()

    def _transition(self, state: CycleState, detail: str = "") -> None:
        LOGGER.debug("Cycle state -> %s %s", state.value, detail)

    def _fetch_listing(self, category: FilingCategory) -> List[FilingReference]:
        url = build_listing_url(self.settings.entity_cik, category, self.settings.listing_count)
        document = self.fetcher.fetch(url)
        return parse_listing(document, category)

    def _fetch_combined_listing(
        self, categories: Sequence[FilingCategory]
    ) -> Dict[FilingCategory, List[FilingReference]]:
        url = build_listing_url(self.settings.entity_cik, None, self.settings.listing_count)
        document = self.fetcher.fetch(url)
        grouped: Dict[FilingCategory, List[FilingReference]] = {category: [] for category in categories}
        for reference in parse_listing(document, categories):
            grouped[reference.category].append(reference)
        return grouped

    def _holdings_for(self, reference: FilingReference) -> List[Holding]:
        holdings = self.extractor.extract_holdings(reference)
        return filter_noise_holdings(holdings, reference.category)

    def _baseline(
        self, reference: FilingReference, listing: Sequence[FilingReference]
    ) -> List[Holding]:
        snapshot = self.store.last_holding_snapshot(reference.category)
        if snapshot is not None:
            return snapshot
        position = listing.index(reference)
        if position + 1 < len(listing):
            older = listing[position + 1]
            LOGGER.info(
                "No stored snapshot for %s, comparing against filing from %s",
                reference.category.value,
                older.published_date,
            )
            return self._holdings_for(older)
        return []

    def _process_category(
        self,
        category: FilingCategory,
        listing: Sequence[FilingReference],
        result: CycleResult,
    ) -> None:
        window = self.store.tracking_window
        candidates = listing[:window] if window else listing
        unseen = [reference for reference in candidates if not self.store.has(reference.identity)]
        if not unseen:
            LOGGER.info("No new %s filings", category.value)
            return
        LOGGER.info("Found %d unseen %s filing(s)", len(unseen), category.value)

        # Oldest first so each filing is compared with the one before it.
        for reference in reversed(unseen):
            self._transition(CycleState.EXTRACTING, reference.document_link)
            holdings: Optional[List[Holding]] = None
            if category.carries_holdings:
                holdings = self._holdings_for(reference)

            # Baseline read, comparison and commit must not interleave with
            # another cycle working on the same category.
            with self.store.category_lock(category):
                if self.store.has(reference.identity):
                    LOGGER.info("Filing %s was already claimed by another cycle", reference.document_link)
                    continue
                changes: List[ChangeRecord] = []
                if holdings:
                    baseline = self._baseline(reference, listing)
                    self._transition(CycleState.DETECTING, reference.document_link)
                    changes = detect_changes(baseline, holdings, reference)
                elif category.carries_holdings:
                    LOGGER.warning(
                        "No holdings extracted from %s filing %s, skipping comparison",
                        category.value,
                        reference.document_link,
                    )
                if not self.store.record_filing(reference, holdings or None, changes):
                    LOGGER.info("Filing %s was already claimed by another cycle", reference.document_link)
                    continue

            result.new_filings.append(reference)
            if changes:
                result.changes.extend(changes)
                LOGGER.info(
                    "Detected %d change(s) in %s filing from %s",
                    len(changes),
                    category.value,
                    reference.published_date,
                )

    def _notify(self, result: CycleResult) -> None:
        self._transition(CycleState.NOTIFYING)
        notification = compose_notification(result, self.settings.entity_name)
        try:
            self.notifier.send(notification)
        except NotificationError as exc:
            # History is already recorded; these filings will not be re-sent.
            LOGGER.error("Notification delivery failed: %s", exc)
            return
        result.notified = True

    def run_cycle(self, categories: Iterable[FilingCategory] | None = None) -> CycleResult:
        """Check ``categories`` (all configured ones by default) and notify on changes."""

        selected = list(dict.fromkeys(categories)) if categories else list(self.settings.all_categories)
        result = CycleResult(categories=selected)
        LOGGER.info(
            "Checking %s filings for %s",
            ", ".join(category.value for category in selected),
            self.settings.entity_name,
        )

        listings: Dict[FilingCategory, List[FilingReference]] = {}
        if self.settings.listing_mode == "combined":
            self._transition(CycleState.FETCHING, "combined listing")
            try:
                listings = self._fetch_combined_listing(selected)
            except (FetchError, FetchExhaustedError, FetchCancelledError) as exc:
                LOGGER.warning("Could not fetch combined listing: %s", exc)
                for category in selected:
                    result.failures[category.value] = str(exc)
                selected = []

        for category in selected:
            if self.stop_event.is_set():
                LOGGER.warning("Stopping cycle before checking %s", category.value)
                result.failures[category.value] = "cycle stopped"
                continue
            try:
                if category in listings:
                    listing = listings[category]
                else:
                    self._transition(CycleState.FETCHING, category.value)
                    listing = self._fetch_listing(category)
                self._process_category(category, listing, result)
            except (FetchError, FetchExhaustedError, FetchCancelledError) as exc:
                LOGGER.warning("Skipping %s this cycle: %s", category.value, exc)
                result.failures[category.value] = str(exc)
            except Exception as exc:
                LOGGER.exception("Unexpected failure while checking %s", category.value)
                result.failures[category.value] = f"unexpected error: {exc}"

        should_notify = bool(result.changes) or (
            self.settings.notify_on_new_filings and bool(result.new_filings)
        )
        if should_notify:
            self._notify(result)
        else:
            LOGGER.info("No changes detected, nothing to notify")
        self._transition(CycleState.IDLE)
        LOGGER.info(
            "Cycle finished: %d new filing(s), %d change(s), %d failed categories",
            len(result.new_filings),
            len(result.changes),
            len(result.failures),
        )
        return result


__all__ = ["CycleState", "FilingMonitor"]
