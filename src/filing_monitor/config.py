"""Application configuration helpers."""
from __future__ import annotations

from dataclasses import dataclass, field
import os
from pathlib import Path
from typing import Mapping, Tuple

from .errors import ConfigurationError
from .models import FilingCategory


ENV_PREFIX = "FILING_MONITOR_"

HIGH_PRIORITY_CATEGORIES: Tuple[FilingCategory, ...] = (
    FilingCategory.HOLDINGS_REPORT,
    FilingCategory.CURRENT_REPORT,
    FilingCategory.ACTIVIST_OWNERSHIP,
    FilingCategory.PASSIVE_OWNERSHIP,
)
LONG_TERM_CATEGORIES: Tuple[FilingCategory, ...] = (
    FilingCategory.ANNUAL_REPORT,
    FilingCategory.QUARTERLY_REPORT,
)


@dataclass(frozen=True)
class Schedule:
    """A cron expression and the categories it checks."""

    name: str
    cron: str
    categories: Tuple[FilingCategory, ...]


DEFAULT_SCHEDULES: Tuple[Schedule, ...] = (
    Schedule("hourly-high-priority", "0 * * * *", HIGH_PRIORITY_CATEGORIES),
    Schedule("peak-windows", "0 10,13,16,20 * * *", HIGH_PRIORITY_CATEGORIES),
    Schedule("long-term-reports", "0 6,12,18,23 * * *", LONG_TERM_CATEGORIES),
)


def _resolve_env_file(candidate: str) -> Path | None:
    """Return the first matching environment file path if it exists."""

    path = Path(candidate)
    if path.is_absolute() and path.exists():
        return path

    search_roots = [Path.cwd(), Path(__file__).resolve().parent]
    search_roots.extend(Path(__file__).resolve().parents)

    seen: set[Path] = set()
    for root in search_roots:
        root = root.resolve()
        if root in seen:
            continue
        seen.add(root)
        potential = root / candidate
        if potential.exists():
            return potential
    return None


def _parse_env_file(path: Path) -> dict[str, str]:
    """Parse a dotenv-style file into a mapping."""

    variables: dict[str, str] = {}
    for raw_line in path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :].strip()
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        variables[key] = value
    return variables


def _load_profile_env(env: Mapping[str, str]) -> dict[str, str]:
    """Load environment variables from the selected profile file."""

    explicit_file = env.get(f"{ENV_PREFIX}ENV_FILE")
    profile = env.get(f"{ENV_PREFIX}ENV", "local")
    candidates = [explicit_file] if explicit_file else [f".env.{profile}"]

    for candidate in candidates:
        if not candidate:
            continue
        path = _resolve_env_file(candidate)
        if path is not None:
            return _parse_env_file(path)
    return {}


def parse_categories(value: str) -> Tuple[FilingCategory, ...]:
    """Parse a comma separated list of filing types."""

    categories = []
    for chunk in value.split(","):
        if not chunk.strip():
            continue
        category = FilingCategory.parse(chunk)
        if category is None:
            raise ConfigurationError(f"Unknown filing category: {chunk.strip()!r}")
        if category not in categories:
            categories.append(category)
    return tuple(categories)


def _parse_schedules(value: str) -> Tuple[Schedule, ...]:
    schedules = []
    for index, chunk in enumerate(value.split("\n")):
        if not chunk.strip():
            continue
        parts = [part.strip() for part in chunk.split("|")]
        if len(parts) == 2:
            name = f"schedule-{index + 1}"
            cron, categories = parts
        elif len(parts) == 3:
            name, cron, categories = parts
        else:
            raise ConfigurationError(
                "Each schedule definition must be of the form '[name|]cron|CATEGORY,CATEGORY'"
            )
        if len(cron.split()) != 5:
            raise ConfigurationError(f"Schedule {name!r} needs a five field cron expression")
        schedules.append(Schedule(name=name, cron=cron, categories=parse_categories(categories)))
    return tuple(schedules)


def _int(env: Mapping[str, str], key: str, default: int, minimum: int = 0) -> int:
    raw = env.get(f"{ENV_PREFIX}{key}")
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{ENV_PREFIX}{key} must be an integer") from exc
    if value < minimum:
        raise ConfigurationError(f"{ENV_PREFIX}{key} must be at least {minimum}")
    return value


def _float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(f"{ENV_PREFIX}{key}")
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{ENV_PREFIX}{key} must be a number") from exc
    if value < 0:
        raise ConfigurationError(f"{ENV_PREFIX}{key} must not be negative")
    return value


def _bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    raw = env.get(f"{ENV_PREFIX}{key}")
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    """Runtime configuration."""

    entity_cik: str = "0001045810"
    entity_name: str = "NVIDIA"
    user_agent: str = "filing-monitor admin@example.com"
    schedules: Tuple[Schedule, ...] = DEFAULT_SCHEDULES
    timezone: str = "America/New_York"
    listing_mode: str = "per-category"
    listing_count: int = 10
    max_attempts: int = 3
    backoff_delay: float = 3.0
    request_timeout: float = 30.0
    history_backend: str = "sql"
    database_url: str = "sqlite:///filing_monitor.db"
    memory_retention: int = 2
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_username: str | None = None
    smtp_password: str | None = None
    email_sender: str | None = None
    email_recipients: Tuple[str, ...] = field(default_factory=tuple)
    notify_on_new_filings: bool = False
    run_on_startup: bool = True

    @property
    def all_categories(self) -> Tuple[FilingCategory, ...]:
        """Every category named by at least one schedule, in first-seen order."""

        ordered: list[FilingCategory] = []
        for schedule in self.schedules:
            for category in schedule.categories:
                if category not in ordered:
                    ordered.append(category)
        return tuple(ordered)

    @property
    def email_enabled(self) -> bool:
        return bool(self.smtp_username and self.smtp_password and self.email_recipients)

    @staticmethod
    def load(env: Mapping[str, str] | None = None) -> "Settings":
        """Load settings from environment variables."""

        base_env = dict(os.environ if env is None else env)
        file_env = _load_profile_env(base_env)
        # Environment variables set in the shell take precedence over the file.
        merged_env = {**file_env, **base_env}

        def text(key: str, default: str | None = None) -> str | None:
            raw = merged_env.get(f"{ENV_PREFIX}{key}")
            if raw is None or not raw.strip():
                return default
            return raw.strip()

        defaults = Settings()

        schedules_env = text("SCHEDULES")
        schedules = _parse_schedules(schedules_env) if schedules_env else DEFAULT_SCHEDULES

        history_backend = (text("HISTORY_BACKEND", defaults.history_backend) or "").lower()
        if history_backend not in {"sql", "memory"}:
            raise ConfigurationError(f"{ENV_PREFIX}HISTORY_BACKEND must be 'sql' or 'memory'")

        listing_mode = (text("LISTING_MODE", defaults.listing_mode) or "").lower()
        if listing_mode not in {"per-category", "combined"}:
            raise ConfigurationError(
                f"{ENV_PREFIX}LISTING_MODE must be 'per-category' or 'combined'"
            )

        user_agent = text("USER_AGENT", defaults.user_agent)
        if not user_agent:
            raise ConfigurationError(f"{ENV_PREFIX}USER_AGENT must not be empty")

        recipients_env = text("EMAIL_RECIPIENTS", "") or ""
        recipients = tuple(
            address.strip() for address in recipients_env.split(",") if address.strip()
        )
        smtp_username = text("SMTP_USERNAME")

        return Settings(
            entity_cik=text("ENTITY_CIK", defaults.entity_cik),
            entity_name=text("ENTITY_NAME", defaults.entity_name),
            user_agent=user_agent,
            schedules=schedules,
            timezone=text("TIMEZONE", defaults.timezone),
            listing_mode=listing_mode,
            listing_count=_int(merged_env, "LISTING_COUNT", defaults.listing_count, minimum=1),
            max_attempts=_int(merged_env, "MAX_ATTEMPTS", defaults.max_attempts, minimum=1),
            backoff_delay=_float(merged_env, "BACKOFF_DELAY", defaults.backoff_delay),
            request_timeout=_float(merged_env, "REQUEST_TIMEOUT", defaults.request_timeout),
            history_backend=history_backend,
            database_url=text("DATABASE_URL", defaults.database_url),
            memory_retention=_int(
                merged_env, "MEMORY_RETENTION", defaults.memory_retention, minimum=1
            ),
            smtp_host=text("SMTP_HOST", defaults.smtp_host),
            smtp_port=_int(merged_env, "SMTP_PORT", defaults.smtp_port, minimum=1),
            smtp_username=smtp_username,
            smtp_password=text("SMTP_PASSWORD"),
            email_sender=text("EMAIL_SENDER", smtp_username),
            email_recipients=recipients,
            notify_on_new_filings=_bool(
                merged_env, "NOTIFY_ON_NEW_FILINGS", defaults.notify_on_new_filings
            ),
            run_on_startup=_bool(merged_env, "RUN_ON_STARTUP", defaults.run_on_startup),
        )


__all__ = [
    "DEFAULT_SCHEDULES",
    "HIGH_PRIORITY_CATEGORIES",
    "LONG_TERM_CATEGORIES",
    "Schedule",
    "Settings",
    "parse_categories",
]
