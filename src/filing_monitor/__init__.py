"""Monitor a registry for new filings of one entity and report holding changes."""

__version__ = "0.1.0"
