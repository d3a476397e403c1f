"""Render option layering: persisted defaults under per-document frontmatter."""

from __future__ import annotations

import json
from typing import Any, Mapping

from mdmindmap.log import get_logger

logger = get_logger(__name__)

FRONTMATTER_OPTIONS_KEY = "markmap"
EMBED_ASSETS_KEY = "embedAssets"


class ConfigParseError(ValueError):
    """Persisted default options are not a JSON object."""


def parse_default_options(raw: str | None) -> dict[str, Any] | None:
    """Decode the persisted defaults blob, raising on malformed input."""
    if raw is None or not raw.strip():
        return None
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigParseError(f"default options are not valid JSON: {exc}") from exc
    if value is None:
        return None
    if not isinstance(value, dict):
        raise ConfigParseError(f"default options must be a JSON object, got {type(value).__name__}")
    return value


def load_default_options(raw: str | None) -> dict[str, Any] | None:
    """Recovering variant of parse_default_options: a bad blob means no defaults."""
    try:
        return parse_default_options(raw)
    except ConfigParseError as exc:
        logger.warning("Ignoring default options: %s", exc)
        return None


def frontmatter_options(frontmatter: Mapping[str, Any] | None) -> dict[str, Any] | None:
    if not frontmatter:
        return None
    value = frontmatter.get(FRONTMATTER_OPTIONS_KEY)
    if isinstance(value, dict):
        return value
    return None


def merge_options(
    defaults: Mapping[str, Any] | None,
    overrides: Mapping[str, Any] | None,
) -> dict[str, Any]:
    """Shallow right-biased merge; a missing side behaves as an empty object."""
    merged: dict[str, Any] = dict(defaults or {})
    merged.update(overrides or {})
    return merged


def embed_assets_enabled(options: Mapping[str, Any]) -> bool:
    return bool(options.get(EMBED_ASSETS_KEY))
