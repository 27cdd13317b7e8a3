from __future__ import annotations

import tomllib
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from .errors import PRReviewError
from .render import resolve_format

DEFAULT_CONFIG_NAME = ".prdiffreview.toml"


@dataclass(frozen=True)
class ExportConfig:
    output_dir: str = "."
    format: str = "txt"
    context_lines: int = 3
    max_workers: int = 4
    remote: str = "origin"


def _positive_int(data: dict[str, Any], key: str, default: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise PRReviewError(f"config [export].{key} must be a positive integer, got {value!r}")
    return value


def load_export_config(path: Path) -> ExportConfig:
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as error:
        raise PRReviewError(f"Config file not found: {path}") from error
    except tomllib.TOMLDecodeError as error:
        raise PRReviewError(f"Invalid TOML in {path}: {error}") from error

    export = data.get("export") or {}
    if not isinstance(export, dict):
        raise PRReviewError("config [export] must be a table")

    fmt = str(export.get("format") or "txt")
    # Validated here so a bad config fails before any git or network work.
    resolve_format(fmt)
    return ExportConfig(
        output_dir=str(export.get("output_dir") or "."),
        format=fmt,
        context_lines=_positive_int(export, "context_lines", 3),
        max_workers=_positive_int(export, "max_workers", 4),
        remote=str(export.get("remote") or "origin"),
    )


def resolve_config(explicit: str | None, *, cwd: Path | None = None) -> ExportConfig:
    if explicit:
        return load_export_config(Path(explicit))
    candidate = (cwd or Path.cwd()) / DEFAULT_CONFIG_NAME
    if candidate.is_file():
        return load_export_config(candidate)
    return ExportConfig()


def apply_overrides(config: ExportConfig, **overrides: Any) -> ExportConfig:
    values = {key: value for key, value in overrides.items() if value is not None}
    return replace(config, **values)
