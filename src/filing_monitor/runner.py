"""Command line entry point running a single monitoring cycle."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Iterable, List

from .config import Settings, parse_categories
from .errors import ConfigurationError
from .extractor import DocumentExtractor
from .fetcher import Fetcher
from .history import create_history_store
from .logging_utils import configure_logging
from .models import CycleResult
from .monitor import FilingMonitor
from .notifier import EmailNotifier, LoggingNotifier, Notifier

LOGGER = logging.getLogger(__name__)


def build_notifier(settings: Settings) -> Notifier:
    """Use email when SMTP credentials and recipients are configured."""

    if settings.email_enabled:
        return EmailNotifier(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username or "",
            password=settings.smtp_password or "",
            sender=settings.email_sender or settings.smtp_username or "",
            recipients=settings.email_recipients,
            timeout=settings.request_timeout,
        )
    LOGGER.warning("Email delivery not configured, notifications will only be logged")
    return LoggingNotifier()


def build_monitor(settings: Settings) -> FilingMonitor:
    """Wire the fetcher, extractor, history store and notifier together."""

    fetcher = Fetcher(
        settings.user_agent,
        max_attempts=settings.max_attempts,
        backoff_delay=settings.backoff_delay,
        timeout=settings.request_timeout,
    )
    return FilingMonitor(
        settings=settings,
        fetcher=fetcher,
        store=create_history_store(settings),
        notifier=build_notifier(settings),
        extractor=DocumentExtractor(fetcher),
    )


def run_once(settings: Settings, categories: List[str] | None = None) -> CycleResult:
    """Run one cycle, optionally limited to the given filing types."""

    selected = parse_categories(",".join(categories)) if categories else None
    monitor = build_monitor(settings)
    return monitor.run_cycle(selected)


def parse_args(args: Iterable[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging output",
    )
    parser.add_argument(
        "--category",
        action="append",
        metavar="TYPE",
        help="Filing type to check (repeatable), e.g. '13F-HR' or 'SC 13G'",
    )
    return parser.parse_args(args=args)


def main(argv: Iterable[str] | None = None) -> int:
    options = parse_args(argv)
    configure_logging(logging.DEBUG if options.verbose else None)
    try:
        settings = Settings.load()
        result = run_once(settings, options.category)
    except ConfigurationError as exc:
        LOGGER.error("Invalid configuration: %s", exc)
        return 2
    json.dump(result.to_summary(), sys.stdout, indent=2)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
