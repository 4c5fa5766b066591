"""Parsers for registry listing pages and filing documents."""
from __future__ import annotations

from .holdings import find_structured_link, find_structured_links, parse_holdings_table, parse_information_table
from .listing import build_listing_url, parse_listing

__all__ = [
    "build_listing_url",
    "find_structured_link",
    "find_structured_links",
    "parse_holdings_table",
    "parse_information_table",
    "parse_listing",
]
