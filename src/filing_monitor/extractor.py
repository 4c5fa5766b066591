"""Holdings extraction for a single filing."""
from __future__ import annotations

import logging
from enum import Enum
from typing import List, Optional, Tuple

from .errors import ParseError
from .fetcher import REGISTRY_BASE_URL, Fetcher
from .models import FilingReference, Holding
from .parsers.holdings import find_structured_links, parse_holdings_table, parse_information_table

LOGGER = logging.getLogger(__name__)


class ExtractionPath(str, Enum):
    STRUCTURED = "structured"
    TABULAR = "tabular"


def probe_extraction_path(
    document: str, base_url: str = REGISTRY_BASE_URL
) -> Tuple[ExtractionPath, Optional[str]]:
    """Decide once which path applies to a filing landing page."""

    links = find_structured_links(document, base_url)
    if links:
        return ExtractionPath.STRUCTURED, links[0]
    return ExtractionPath.TABULAR, None


class DocumentExtractor:
    """Fetch a filing and turn it into a list of holdings."""

    def __init__(self, fetcher: Fetcher, base_url: str = REGISTRY_BASE_URL) -> None:
        self.fetcher = fetcher
        self.base_url = base_url

    def extract_holdings(self, reference: FilingReference) -> List[Holding]:
        """Return the holdings reported by ``reference``.

        Narrative categories never carry a holdings table and yield an empty
        list without any request. Linked information tables are tried in page
        order; when none of them parses the result is empty. Fetch failures
        propagate.
        """

        if not reference.category.carries_holdings:
            LOGGER.debug(
                "Skipping holdings extraction for narrative %s filing %s",
                reference.category.value,
                reference.document_link,
            )
            return []

        document = self.fetcher.fetch(reference.document_link)
        links = find_structured_links(document, self.base_url)
        path = ExtractionPath.STRUCTURED if links else ExtractionPath.TABULAR
        LOGGER.info(
            "Extracting %s filing from %s using %s path",
            reference.category.value,
            reference.published_date,
            path.value,
        )

        if links:
            return self._extract_structured(links)
        return parse_holdings_table(document)

    def _extract_structured(self, links: List[str]) -> List[Holding]:
        for link in links:
            xml_text = self.fetcher.fetch(link)
            try:
                return parse_information_table(xml_text)
            except ParseError as exc:
                LOGGER.warning("Could not parse information table %s: %s", link, exc)
        return []


__all__ = ["DocumentExtractor", "ExtractionPath", "probe_extraction_path"]
