"""Holdings parsers for the two shapes a filing document can take."""
from __future__ import annotations

import logging
import re
from decimal import Decimal
from typing import List, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from ..errors import ParseError
from ..fetcher import REGISTRY_BASE_URL
from ..models import Holding
from .utils import normalize_text, parse_decimal, parse_int

LOGGER = logging.getLogger(__name__)

STRUCTURED_LINK = re.compile(r"(information_?table|infotable)[^/]*\.xml$", re.IGNORECASE)
# Stylesheet-rendered copies (e.g. xslForm13F_X02/) serve HTML under the same file name.
RENDERED_VIEW_SEGMENT = re.compile(r"/xsl[^/]*/", re.IGNORECASE)

MIN_ISSUER_NAME_LENGTH = 3
NOISE_MARKERS = (
    "SUBMISSION TEXT FILE",
    "COMPLETE SUBMISSION",
    "PRIMARY DOCUMENT",
    "INFORMATION TABLE",
)

UNKNOWN_ISSUER = "Unknown"


def find_structured_links(document: str, base_url: str = REGISTRY_BASE_URL) -> List[str]:
    """Return absolute URLs of the raw information table files, in page order."""

    soup = BeautifulSoup(document or "", "html.parser")
    links: List[str] = []
    for anchor in soup.find_all("a", href=True):
        href = anchor["href"].strip()
        if not STRUCTURED_LINK.search(href) or RENDERED_VIEW_SEGMENT.search(href):
            continue
        link = urljoin(base_url + "/", href)
        if link not in links:
            links.append(link)
    return links


def find_structured_link(document: str, base_url: str = REGISTRY_BASE_URL) -> Optional[str]:
    """Return the absolute URL of the embedded information table, if linked."""

    links = find_structured_links(document, base_url)
    return links[0] if links else None


def _local_name(tag: Tag) -> str:
    return (tag.name or "").rsplit(":", 1)[-1].lower()


def _child(entry: Tag, name: str) -> Optional[Tag]:
    for node in entry.find_all(True):
        if _local_name(node) == name:
            return node
    return None


def _child_text(entry: Tag, name: str) -> Optional[str]:
    node = _child(entry, name)
    if node is None:
        return None
    text = normalize_text(node.get_text())
    return text or None


def parse_information_table(xml_text: str) -> List[Holding]:
    """Parse a 13F information table without requiring well formed XML.

    Tag case and namespace prefixes are ignored. Missing fields fall back to
    ``"Unknown"``, ``0`` shares and a ``0`` value; option positions (rows
    with ``putCall``) are skipped.
    """

    soup = BeautifulSoup(xml_text or "", "html.parser")
    root = soup.find(lambda tag: _local_name(tag) == "informationtable")
    entries = soup.find_all(lambda tag: _local_name(tag) == "infotable")
    if root is None and not entries:
        raise ParseError("Document does not contain an information table")

    holdings: List[Holding] = []
    for entry in entries:
        if _child_text(entry, "putcall"):
            continue
        name = _child_text(entry, "nameofissuer") or UNKNOWN_ISSUER
        amount = _child(entry, "shrsorprnamt")
        shares_text = _child_text(amount, "sshprnamt") if amount is not None else None
        shares = parse_int(shares_text) or 0
        value = parse_decimal(_child_text(entry, "value")) or Decimal(0)
        holdings.append(Holding(issuer_name=name, share_count=shares, reported_value=value))

    LOGGER.debug("Parsed %d holdings from information table", len(holdings))
    return holdings


def is_noise_row(name: str) -> bool:
    """Rows from document indexes and headers rather than actual positions."""

    if len(name) < MIN_ISSUER_NAME_LENGTH:
        return True
    upper = name.upper()
    return any(marker in upper for marker in NOISE_MARKERS)


def parse_holdings_table(document: str) -> List[Holding]:
    """Read issuer, shares and value from the first three cells of each row."""

    soup = BeautifulSoup(document or "", "html.parser")
    holdings: List[Holding] = []
    for row in soup.find_all("tr"):
        cells = row.find_all("td")
        if len(cells) < 3:
            continue
        name = normalize_text(cells[0].get_text())
        if is_noise_row(name):
            continue
        shares = parse_int(cells[1].get_text()) or 0
        value = parse_decimal(cells[2].get_text()) or Decimal(0)
        holdings.append(Holding(issuer_name=name, share_count=shares, reported_value=value))

    LOGGER.debug("Parsed %d holdings from tabular document", len(holdings))
    return holdings


__all__ = [
    "MIN_ISSUER_NAME_LENGTH",
    "NOISE_MARKERS",
    "find_structured_link",
    "find_structured_links",
    "is_noise_row",
    "parse_holdings_table",
    "parse_information_table",
]
