"""Registry listing page parser."""
from __future__ import annotations

import logging
import re
from typing import Collection, List, Optional, Union
from urllib.parse import urlencode, urljoin

from bs4 import BeautifulSoup

from ..fetcher import REGISTRY_BASE_URL
from ..models import FilingCategory, FilingReference
from .utils import normalize_text, parse_date

LOGGER = logging.getLogger(__name__)

ARCHIVE_PATH_MARKER = "Archives/edgar/data"
DATE_COLUMN = 3
DATE_TEXT = re.compile(r"^(\d{4}-\d{2}-\d{2}|\d{1,2}/\d{1,2}/\d{2,4})$")

CategorySelector = Union[FilingCategory, Collection[FilingCategory]]


def build_listing_url(
    cik: str,
    category: FilingCategory | None = None,
    count: int = 40,
    base_url: str = REGISTRY_BASE_URL,
) -> str:
    """Return the company browse URL, optionally narrowed to a single category."""

    query = {
        "action": "getcompany",
        "CIK": cik,
        "type": category.value if category else "",
        "dateb": "",
        "owner": "exclude",
        "count": str(count),
    }
    return f"{base_url}/cgi-bin/browse-edgar?{urlencode(query)}"


def _row_date(cells) -> Optional[str]:
    if len(cells) > DATE_COLUMN:
        candidate = normalize_text(cells[DATE_COLUMN].get_text())
        if candidate:
            return candidate
    for cell in cells:
        text = normalize_text(cell.get_text())
        if DATE_TEXT.match(text) and parse_date(text) is not None:
            return text
    return None


def parse_listing(
    document: str,
    categories: CategorySelector,
    base_url: str = REGISTRY_BASE_URL,
) -> List[FilingReference]:
    """Extract filing references from a listing page, keeping source order.

    With a single category every qualifying row is attributed to it (the page
    was already requested for that category). With a collection the first
    column is read as the filing type and compared against the wanted set.
    """

    if isinstance(categories, FilingCategory):
        implicit: Optional[FilingCategory] = categories
        wanted: frozenset[FilingCategory] = frozenset({categories})
    else:
        implicit = None
        wanted = frozenset(categories)

    soup = BeautifulSoup(document or "", "html.parser")
    references: List[FilingReference] = []
    for row in soup.find_all("tr"):
        anchor = row.find("a", href=lambda href: bool(href) and ARCHIVE_PATH_MARKER in href)
        if anchor is None:
            continue
        cells = row.find_all("td")
        if not cells:
            continue
        published = _row_date(cells)
        if not published:
            continue
        if implicit is not None:
            category = implicit
        else:
            category = FilingCategory.parse(cells[0].get_text())
            if category is None or category not in wanted:
                continue
        link = urljoin(base_url + "/", anchor["href"].strip())
        references.append(
            FilingReference(category=category, published_date=published, document_link=link)
        )

    LOGGER.debug(
        "Parsed %d filing references for %s",
        len(references),
        ", ".join(sorted(category.value for category in wanted)),
    )
    return references


__all__ = ["build_listing_url", "parse_listing", "ARCHIVE_PATH_MARKER"]
