"""PageConfig validation, migration and default builders."""

from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from typing import Any, Callable

from pydantic import ValidationError as SchemaError

from .errors import MigrationError, ValidationError
from .page_config import (
    CURRENT_SCHEMA_VERSION,
    PAGE_CONFIG_LIMITS,
    PageConfig,
    is_accessible_color,
)
from .utils import collapse_whitespace

logger = logging.getLogger("uvicorn.error")

DEFAULT_PRESET = "modern"
DEFAULT_PRIMARY_COLOR = "#2563EB"
DEFAULT_FONT_PAIR = "modern"
UNTITLED_EVENT = "Untitled event"

_PRESETS = {"classic", "modern", "romantic"}

Document = dict[str, Any]


def _legacy_section(raw: Mapping[str, Any]) -> Document:
    section = dict(raw)
    section.setdefault("enabled", True)
    section.setdefault("data", {})
    return section


def _migrate_v0_to_v1(document: Document) -> Document:
    """Nest the flat, unversioned document into theme/hero blocks."""
    hero: Document = {
        "title": _clean_title(document.get("title")),
        "align": document.get("align") or "center",
        "overlay": document.get("overlay") or "soft",
    }
    if document.get("subtitle"):
        hero["subtitle"] = document["subtitle"]
    if document.get("heroImageAssetId"):
        hero["heroImageAssetId"] = document["heroImageAssetId"]
    theme = {
        "preset": document.get("preset") or DEFAULT_PRESET,
        "primaryColor": document.get("primaryColor") or DEFAULT_PRIMARY_COLOR,
        "fontPair": document.get("fontPair") or DEFAULT_FONT_PAIR,
    }
    return {
        "schemaVersion": 1,
        "theme": theme,
        "hero": hero,
        "sections": [_legacy_section(s) for s in document.get("sections") or []],
    }


def _migrate_v1_to_v2(document: Document) -> Document:
    """Rename the short FAQ keys ``q``/``a`` to ``question``/``answer``."""
    migrated = dict(document)
    migrated["schemaVersion"] = 2
    sections = []
    for raw_section in document.get("sections") or []:
        section = dict(raw_section)
        if section.get("type") == "faq":
            data = dict(section.get("data") or {})
            data["items"] = [
                {
                    "question": item.get("q", item.get("question", "")),
                    "answer": item.get("a", item.get("answer", "")),
                }
                for item in data.get("items") or []
            ]
            section["data"] = data
        sections.append(section)
    migrated["sections"] = sections
    return migrated


# Keyed by the version a step upgrades *from*.
MIGRATIONS: Mapping[int, Callable[[Document], Document]] = {
    0: _migrate_v0_to_v1,
    1: _migrate_v1_to_v2,
}


def apparent_version(raw: Mapping[str, Any]) -> int:
    """Guess the schema version of a stored document.

    Documents without ``schemaVersion`` predate versioning: they are version 1
    when they already have a ``hero`` block and the flat version 0 otherwise.
    """
    version = raw.get("schemaVersion")
    if version is None:
        return 1 if "hero" in raw else 0
    if isinstance(version, bool) or not isinstance(version, int):
        raise MigrationError(f"Unsupported config version: {version!r}")
    return version


def validate_and_migrate(raw: Any) -> PageConfig:
    """Return ``raw`` as a valid current-version PageConfig.

    Current documents are validated and returned untouched. Anything else is
    walked through the migration steps in ascending version order, validating
    after each step. Raises :class:`MigrationError` when no path works.
    """
    if isinstance(raw, PageConfig):
        return raw
    if not isinstance(raw, Mapping):
        raise MigrationError("Invalid config: must be an object")

    try:
        return PageConfig.model_validate(raw)
    except SchemaError as exc:
        current_error = exc

    version = apparent_version(raw)
    if version >= CURRENT_SCHEMA_VERSION or version < 0:
        raise MigrationError(
            f"Config version {version} cannot be migrated",
            details=current_error.errors(
                include_url=False, include_context=False, include_input=False
            ),
        )

    document: Document = copy.deepcopy(dict(raw))
    last_error: SchemaError | None = None
    for step in range(version, CURRENT_SCHEMA_VERSION):
        migrate = MIGRATIONS.get(step)
        if migrate is None:
            raise MigrationError(f"No migration from config version {step}")
        try:
            document = migrate(document)
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise MigrationError(
                f"Config version {step} could not be migrated"
            ) from exc
        try:
            return PageConfig.model_validate(document)
        except SchemaError as exc:
            last_error = exc

    raise MigrationError(
        f"Config version {version} did not validate after migration",
        details=last_error.errors(
            include_url=False, include_context=False, include_input=False
        )
        if last_error
        else None,
    )


def parse_page_config(raw: Any) -> PageConfig:
    """Strict current-version validation for write paths."""
    try:
        return PageConfig.model_validate(raw)
    except SchemaError as exc:
        raise ValidationError(
            "Invalid page config",
            details=exc.errors(
                include_url=False, include_context=False, include_input=False
            ),
        ) from exc


def _clean_title(title: Any) -> str:
    cleaned = collapse_whitespace(str(title) if title is not None else "")
    cleaned = cleaned[: PAGE_CONFIG_LIMITS["hero_title_length"]].strip()
    return cleaned or UNTITLED_EVENT


def create_minimal_config(
    title: str | None,
    *,
    subtitle: str | None = None,
    preset: str = DEFAULT_PRESET,
    primary_color: str = DEFAULT_PRIMARY_COLOR,
) -> PageConfig:
    """Build the smallest valid config: a hero made from ``title``, no sections.

    Used as the fallback whenever a stored config is missing or unusable, so
    every input is coerced into something valid instead of being rejected.
    """
    hero: Document = {
        "title": _clean_title(title),
        "align": "center",
        "overlay": "soft",
    }
    cleaned_subtitle = collapse_whitespace(subtitle)[
        : PAGE_CONFIG_LIMITS["hero_subtitle_length"]
    ].strip()
    if cleaned_subtitle:
        hero["subtitle"] = cleaned_subtitle
    return PageConfig.model_validate(
        {
            "schemaVersion": CURRENT_SCHEMA_VERSION,
            "theme": {
                "preset": preset if preset in _PRESETS else DEFAULT_PRESET,
                "primaryColor": primary_color
                if is_accessible_color(primary_color)
                else DEFAULT_PRIMARY_COLOR,
                "fontPair": DEFAULT_FONT_PAIR,
            },
            "hero": hero,
            "sections": [],
        }
    )


def load_page_config(raw: Any, *, fallback_title: str | None) -> PageConfig:
    """Read-path helper: migrate ``raw`` or fall back to the minimal config."""
    if raw is None:
        return create_minimal_config(fallback_title)
    try:
        return validate_and_migrate(raw)
    except MigrationError as exc:
        logger.warning("Stored page config unusable, using minimal config: %s", exc)
        return create_minimal_config(fallback_title)


def configs_are_different(first: PageConfig, second: PageConfig) -> bool:
    return first.to_document() != second.to_document()


def config_change_summary(old: PageConfig, new: PageConfig) -> list[str]:
    """Describe what changed between two configs, for version history views."""
    changes: list[str] = []

    if old.theme.preset != new.theme.preset:
        changes.append(f"Theme preset changed to {new.theme.preset}")
    if old.theme.primary_color != new.theme.primary_color:
        changes.append(f"Primary color changed to {new.theme.primary_color}")
    if old.theme.font_pair != new.theme.font_pair:
        changes.append(f"Font pair changed to {new.theme.font_pair}")

    if old.hero.title != new.hero.title:
        changes.append("Hero title updated")
    if old.hero.subtitle != new.hero.subtitle:
        changes.append("Hero subtitle updated")
    if old.hero.hero_image_asset_id != new.hero.hero_image_asset_id:
        changes.append("Hero image changed")

    old_count = len(old.sections)
    new_count = len(new.sections)
    if new_count > old_count:
        changes.append(f"{new_count - old_count} section(s) added")
    elif old_count > new_count:
        changes.append(f"{old_count - new_count} section(s) removed")

    for old_section, new_section in zip(old.sections, new.sections):
        if old_section.model_dump() != new_section.model_dump():
            changes.append(f'Section "{new_section.type}" updated')

    return changes or ["No changes detected"]
