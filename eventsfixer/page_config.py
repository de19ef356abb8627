"""PageConfig document schema.

A PageConfig is the JSON document that drives an event's public page: a theme,
a hero block and an ordered list of typed sections that can be switched on and
off independently. Stored documents use camelCase keys; the models expose
snake_case attributes with aliases.

These models describe the *current* schema version only. Older shapes are
upgraded by :mod:`eventsfixer.config_migrations` before they get here.
"""

from __future__ import annotations

import re
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, field_validator

CURRENT_SCHEMA_VERSION = 2

PAGE_CONFIG_LIMITS = {
    "max_sections": 12,
    "max_gallery_images": 20,
    "max_faq_items": 10,
    "max_schedule_items": 20,
    "max_speakers": 12,
    "max_sponsors": 20,
    "hero_title_length": 80,
    "hero_subtitle_length": 120,
}

SECTION_TYPES = (
    "details",
    "schedule",
    "faq",
    "gallery",
    "rsvp",
    "speakers",
    "sponsors",
    "map",
)

_hex_color = re.compile(r"^#[0-9A-Fa-f]{6}$")

AssetId = Annotated[str, Field(min_length=1, max_length=64)]
ThemePreset = Literal["classic", "modern", "romantic"]
FontPair = Literal["serif_sans", "modern", "classic"]
SponsorTier = Literal["platinum", "gold", "silver", "bronze", "partner"]


def _relative_luminance(hex_color: str) -> float:
    channels = []
    for index in (1, 3, 5):
        value = int(hex_color[index : index + 2], 16) / 255
        if value <= 0.03928:
            channels.append(value / 12.92)
        else:
            channels.append(((value + 0.055) / 1.055) ** 2.4)
    red, green, blue = channels
    return 0.2126 * red + 0.7152 * green + 0.0722 * blue


def contrast_ratio(first: str, second: str) -> float:
    lighter, darker = sorted(
        (_relative_luminance(first), _relative_luminance(second)), reverse=True
    )
    return (lighter + 0.05) / (darker + 0.05)


def is_accessible_color(color: str) -> bool:
    """Return True when ``color`` meets WCAG AA (4.5:1) against white."""
    if not _hex_color.match(color or ""):
        return False
    return contrast_ratio(color, "#FFFFFF") >= 4.5


class _Document(BaseModel):
    model_config = {"extra": "forbid", "populate_by_name": True}


class ThemeConfig(_Document):
    preset: ThemePreset
    primary_color: str = Field(alias="primaryColor")
    font_pair: FontPair = Field(alias="fontPair")

    @field_validator("primary_color")
    @classmethod
    def _check_color(cls, value: str) -> str:
        if not _hex_color.match(value):
            raise ValueError("Must be a valid hex color (e.g., #FF5733)")
        if not is_accessible_color(value):
            raise ValueError(
                "Color must meet WCAG AA contrast requirements (4.5:1 ratio)"
            )
        return value


class HeroConfig(_Document):
    title: str = Field(min_length=1, max_length=PAGE_CONFIG_LIMITS["hero_title_length"])
    subtitle: str | None = Field(
        None, max_length=PAGE_CONFIG_LIMITS["hero_subtitle_length"]
    )
    hero_image_asset_id: AssetId | None = Field(None, alias="heroImageAssetId")
    align: Literal["left", "center"]
    overlay: Literal["none", "soft", "strong"]


class DetailsData(_Document):
    date_text: str = Field(max_length=100, alias="dateText")
    location_text: str = Field(max_length=200, alias="locationText")


class ScheduleItem(_Document):
    time: str = Field(max_length=20)
    title: str = Field(max_length=100)
    description: str | None = Field(None, max_length=500)


class ScheduleData(_Document):
    items: list[ScheduleItem] = Field(
        default_factory=list, max_length=PAGE_CONFIG_LIMITS["max_schedule_items"]
    )


class FAQItem(_Document):
    question: str = Field(max_length=200)
    answer: str = Field(max_length=1000)


class FAQData(_Document):
    items: list[FAQItem] = Field(
        default_factory=list, max_length=PAGE_CONFIG_LIMITS["max_faq_items"]
    )


class GalleryData(_Document):
    asset_ids: list[AssetId] = Field(
        default_factory=list,
        max_length=PAGE_CONFIG_LIMITS["max_gallery_images"],
        alias="assetIds",
    )


class RSVPData(_Document):
    heading: str | None = Field(None, max_length=100)
    description: str | None = Field(None, max_length=500)
    show_maybe_option: bool = Field(True, alias="showMaybeOption")


class SpeakerLink(_Document):
    label: str = Field(max_length=50)
    url: str = Field(max_length=500)


class SpeakerItem(_Document):
    name: str = Field(min_length=1, max_length=100)
    role: str | None = Field(None, max_length=100)
    bio: str | None = Field(None, max_length=1000)
    image_asset_id: AssetId | None = Field(None, alias="imageAssetId")
    links: list[SpeakerLink] = Field(default_factory=list, max_length=5)


class SpeakersData(_Document):
    heading: str = Field(max_length=100)
    description: str | None = Field(None, max_length=500)
    items: list[SpeakerItem] = Field(
        default_factory=list, max_length=PAGE_CONFIG_LIMITS["max_speakers"]
    )


class SponsorItem(_Document):
    name: str = Field(min_length=1, max_length=100)
    tier: SponsorTier | None = None
    logo_asset_id: AssetId | None = Field(None, alias="logoAssetId")
    website_url: str | None = Field(None, max_length=500, alias="websiteUrl")
    description: str | None = Field(None, max_length=300)


class SponsorsData(_Document):
    heading: str = Field(max_length=100)
    description: str | None = Field(None, max_length=500)
    show_tiers: bool = Field(False, alias="showTiers")
    items: list[SponsorItem] = Field(
        default_factory=list, max_length=PAGE_CONFIG_LIMITS["max_sponsors"]
    )


class MapData(_Document):
    heading: str = Field(max_length=100)
    venue_name: str | None = Field(None, max_length=200, alias="venueName")
    address: str = Field(max_length=300)
    latitude: float | None = Field(None, ge=-90, le=90)
    longitude: float | None = Field(None, ge=-180, le=180)
    zoom: int = Field(15, ge=1, le=20)
    show_directions_link: bool = Field(True, alias="showDirectionsLink")


class DetailsSection(_Document):
    type: Literal["details"]
    enabled: bool
    data: DetailsData


class ScheduleSection(_Document):
    type: Literal["schedule"]
    enabled: bool
    data: ScheduleData


class FAQSection(_Document):
    type: Literal["faq"]
    enabled: bool
    data: FAQData


class GallerySection(_Document):
    type: Literal["gallery"]
    enabled: bool
    data: GalleryData


class RSVPSection(_Document):
    type: Literal["rsvp"]
    enabled: bool
    data: RSVPData


class SpeakersSection(_Document):
    type: Literal["speakers"]
    enabled: bool
    data: SpeakersData


class SponsorsSection(_Document):
    type: Literal["sponsors"]
    enabled: bool
    data: SponsorsData


class MapSection(_Document):
    type: Literal["map"]
    enabled: bool
    data: MapData


Section = Annotated[
    Union[
        DetailsSection,
        ScheduleSection,
        FAQSection,
        GallerySection,
        RSVPSection,
        SpeakersSection,
        SponsorsSection,
        MapSection,
    ],
    Field(discriminator="type"),
]


class PageConfig(_Document):
    schema_version: Literal[2] = Field(alias="schemaVersion")
    theme: ThemeConfig
    hero: HeroConfig
    sections: list[Section] = Field(
        default_factory=list, max_length=PAGE_CONFIG_LIMITS["max_sections"]
    )

    def to_document(self) -> dict[str, Any]:
        """Return the JSON-ready stored form (camelCase, ``None`` omitted)."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def enabled_sections(self) -> list[Any]:
        return [section for section in self.sections if section.enabled]
