from __future__ import annotations

from dataclasses import dataclass
import os

from casebundle_api.schemas import CompositionMode, ExhibitLabelStyle, PersistedRowType


_HARDENED_ENVIRONMENTS = frozenset({"production", "prod", "ci"})
_COMPOSITION_MODES: tuple[CompositionMode, ...] = ("bundle", "affidavit")
_EXHIBIT_LABEL_STYLES: tuple[ExhibitLabelStyle, ...] = ("alphabetical", "tab", "initials")
_PERSISTED_ROW_TYPES: tuple[PersistedRowType, ...] = ("file", "component", "artifact")


@dataclass(frozen=True)
class Settings:
    app_name: str
    environment: str
    redis_url: str | None
    entry_store_ttl_seconds: int
    undo_window_seconds: float
    strict_invariants: bool
    reorder_tracked_row_types: tuple[PersistedRowType, ...]
    composition_mode: CompositionMode
    exhibit_label_style: ExhibitLabelStyle
    exhibit_label_prefix: str
    max_notices: int


def is_hardened_environment(environment: str) -> bool:
    return environment.strip().lower() in _HARDENED_ENVIRONMENTS


def parse_str_env(name: str, default: str | None = None) -> str | None:
    raw = os.getenv(name)
    if raw is None:
        return default
    normalized = raw.strip()
    if not normalized:
        return default
    return normalized


def parse_float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a numeric value, got {raw!r}") from exc


def parse_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer value, got {raw!r}") from exc


def parse_bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def parse_csv_env(
    name: str,
    default: tuple[str, ...],
    *,
    choices: tuple[str, ...] | None = None,
) -> tuple[str, ...]:
    """Comma-separated values, de-duplicated in order.

    With ``choices`` the values are lower-cased and each must be one of them.
    """
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    values: list[str] = []
    for item in raw.split(","):
        value = item.strip()
        if not value:
            continue
        if choices is not None:
            value = value.lower()
            if value not in choices:
                raise ValueError(f"{name} must only contain: {', '.join(choices)}")
        if value not in values:
            values.append(value)
    if not values:
        return default
    return tuple(values)


def load_settings() -> Settings:
    environment = parse_str_env("ENVIRONMENT", "development") or "development"
    hardened_environment = is_hardened_environment(environment)

    entry_store_ttl_seconds = parse_int_env("ENTRY_STORE_TTL_SECONDS", 30 * 24 * 60 * 60)
    if entry_store_ttl_seconds < 1:
        raise ValueError("ENTRY_STORE_TTL_SECONDS must be >= 1")

    undo_window_seconds = parse_float_env("UNDO_WINDOW_SECONDS", 5.0)
    if undo_window_seconds <= 0:
        raise ValueError("UNDO_WINDOW_SECONDS must be > 0")

    strict_invariants = parse_bool_env("STRICT_INVARIANTS", not hardened_environment)
    if hardened_environment and strict_invariants:
        raise ValueError(
            "STRICT_INVARIANTS must be false when ENVIRONMENT is production/prod/ci"
        )

    composition_mode = (parse_str_env("COMPOSITION_MODE", "bundle") or "bundle").lower()
    if composition_mode not in _COMPOSITION_MODES:
        raise ValueError("COMPOSITION_MODE must be one of: bundle, affidavit")

    exhibit_label_style = (
        parse_str_env("EXHIBIT_LABEL_STYLE", "alphabetical") or "alphabetical"
    ).lower()
    if exhibit_label_style not in _EXHIBIT_LABEL_STYLES:
        raise ValueError("EXHIBIT_LABEL_STYLE must be one of: alphabetical, tab, initials")
    exhibit_label_prefix = parse_str_env("EXHIBIT_LABEL_PREFIX", "") or ""
    if exhibit_label_style == "initials" and not exhibit_label_prefix:
        raise ValueError("EXHIBIT_LABEL_PREFIX is required when EXHIBIT_LABEL_STYLE=initials")

    max_notices = parse_int_env("MAX_NOTICES", 50)
    if max_notices < 1:
        raise ValueError("MAX_NOTICES must be >= 1")

    return Settings(
        app_name=parse_str_env("API_APP_NAME", "CaseBundle API") or "CaseBundle API",
        environment=environment,
        redis_url=parse_str_env("REDIS_URL"),
        entry_store_ttl_seconds=entry_store_ttl_seconds,
        undo_window_seconds=undo_window_seconds,
        strict_invariants=strict_invariants,
        reorder_tracked_row_types=parse_csv_env(  # type: ignore[arg-type]
            "REORDER_TRACKED_ROW_TYPES",
            ("file", "component"),
            choices=_PERSISTED_ROW_TYPES,
        ),
        composition_mode=composition_mode,  # type: ignore[arg-type]
        exhibit_label_style=exhibit_label_style,  # type: ignore[arg-type]
        exhibit_label_prefix=exhibit_label_prefix,
        max_notices=max_notices,
    )
