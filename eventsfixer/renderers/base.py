"""Shared machinery for page template renderers.

A renderer turns a validated :class:`~eventsfixer.page_config.PageConfig` and
the event's media assets into a :class:`PageTree`: plain data that the Jinja2
partials in ``eventsfixer/templates`` turn into markup. Renderers differ in
which section types they support and how they present them, but they all walk
``config.sections`` in order and drop disabled entries the same way.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote_plus

from ..page_config import PageConfig, ThemeConfig
from ..utils import render_paragraphs, sanitize_href

SPONSOR_TIER_ORDER = ("platinum", "gold", "silver", "bronze", "partner")


@dataclass(frozen=True)
class AssetView:
    id: str
    url: str
    alt: str = ""
    width: int | None = None
    height: int | None = None


class AssetIndex:
    """Lookup of media assets by id; unknown ids resolve to ``None``."""

    def __init__(self, assets: Iterable[Any] | None):
        self._by_id: dict[str, AssetView] = {}
        for asset in assets or ():
            view = self._view(asset)
            if view is not None:
                self._by_id[view.id] = view

    @staticmethod
    def _view(asset: Any) -> AssetView | None:
        if isinstance(asset, Mapping):
            asset_id = asset.get("id")
            url = asset.get("publicUrl") or asset.get("public_url")
            alt = asset.get("alt")
            width = asset.get("width")
            height = asset.get("height")
        else:
            asset_id = getattr(asset, "id", None)
            url = getattr(asset, "public_url", None)
            alt = getattr(asset, "alt", None)
            width = getattr(asset, "width", None)
            height = getattr(asset, "height", None)
        if not asset_id or not url:
            return None
        return AssetView(
            id=str(asset_id), url=str(url), alt=alt or "", width=width, height=height
        )

    def get(self, asset_id: str | None) -> AssetView | None:
        if not asset_id:
            return None
        return self._by_id.get(asset_id)

    def __len__(self) -> int:
        return len(self._by_id)


@dataclass
class RenderedSection:
    type: str
    position: int
    templates: list[str]
    context: dict[str, Any]


@dataclass
class PageTree:
    template_id: str
    template_name: str
    theme: ThemeConfig
    hero: dict[str, Any]
    event_id: str | None = None
    sections: list[RenderedSection] = field(default_factory=list)

    @property
    def section_types(self) -> list[str]:
        return [section.type for section in self.sections]


class TemplateRenderer:
    """Base renderer. Subclasses set ids, names and the handler table."""

    template_id = ""
    name = ""
    category = ""
    description = ""

    # Section type -> handler method name. Types missing here are skipped.
    section_handlers: Mapping[str, str] = {}

    rsvp_heading = "RSVP"
    speakers_heading = "Speakers"

    def render(
        self,
        config: PageConfig,
        assets: Iterable[Any] | None = None,
        event_id: str | None = None,
    ) -> PageTree:
        index = AssetIndex(assets)
        tree = PageTree(
            template_id=self.template_id,
            template_name=self.name,
            theme=config.theme,
            hero=self.hero_context(config, index),
            event_id=event_id,
        )
        for position, section in enumerate(config.sections):
            if not section.enabled:
                continue
            handler_name = self.section_handlers.get(section.type)
            if handler_name is None:
                continue
            context = getattr(self, handler_name)(section.data, index, event_id)
            if context is None:
                continue
            tree.sections.append(
                RenderedSection(
                    type=section.type,
                    position=position,
                    templates=self.templates_for(section.type),
                    context=context,
                )
            )
        return tree

    def templates_for(self, section_type: str) -> list[str]:
        return [f"{self.template_id}/{section_type}.html", f"sections/{section_type}.html"]

    def hero_context(self, config: PageConfig, index: AssetIndex) -> dict[str, Any]:
        hero = config.hero
        return {
            "title": hero.title,
            "subtitle": hero.subtitle,
            "image": index.get(hero.hero_image_asset_id),
            "align": hero.align,
            "overlay": hero.overlay,
            "templates": [f"{self.template_id}/hero.html", "sections/hero.html"],
        }

    def render_details(self, data, index, event_id):
        if not data.date_text and not data.location_text:
            return None
        return {"date_text": data.date_text, "location_text": data.location_text}

    def render_schedule(self, data, index, event_id):
        if not data.items:
            return None
        return {
            "heading": "Schedule",
            "items": [
                {
                    "time": item.time,
                    "title": item.title,
                    "description": item.description,
                }
                for item in data.items
            ],
        }

    def render_faq(self, data, index, event_id):
        if not data.items:
            return None
        return {
            "heading": "Questions & Answers",
            "items": [
                {"question": item.question, "answer": render_paragraphs(item.answer)}
                for item in data.items
            ],
        }

    def render_gallery(self, data, index, event_id):
        images = [
            image for image in (index.get(asset_id) for asset_id in data.asset_ids) if image
        ]
        if not images:
            return None
        return {"heading": "Gallery", "images": images}

    def render_rsvp(self, data, index, event_id):
        if not event_id:
            return None
        statuses = ["yes", "maybe", "no"] if data.show_maybe_option else ["yes", "no"]
        return {
            "heading": data.heading or self.rsvp_heading,
            "description": data.description,
            "statuses": statuses,
            "event_id": event_id,
        }

    def render_speakers(self, data, index, event_id):
        if not data.items:
            return None
        speakers = []
        for item in data.items:
            speakers.append(
                {
                    "name": item.name,
                    "role": item.role,
                    "bio": render_paragraphs(item.bio),
                    "image": index.get(item.image_asset_id),
                    "links": [
                        {"label": link.label, "url": href}
                        for link in item.links
                        if (href := sanitize_href(link.url))
                    ],
                }
            )
        return {
            "heading": data.heading or self.speakers_heading,
            "description": data.description,
            "speakers": speakers,
        }

    def _sponsor_view(self, item, index: AssetIndex) -> dict[str, Any]:
        return {
            "name": item.name,
            "tier": item.tier,
            "logo": index.get(item.logo_asset_id),
            "url": sanitize_href(item.website_url),
            "description": item.description,
        }

    def render_sponsors(self, data, index, event_id):
        if not data.items:
            return None
        sponsors = [self._sponsor_view(item, index) for item in data.items]
        groups: list[dict[str, Any]] = []
        if data.show_tiers:
            for tier in SPONSOR_TIER_ORDER:
                members = [s for s in sponsors if s["tier"] == tier]
                if members:
                    groups.append({"tier": tier, "label": tier.title(), "sponsors": members})
            untiered = [s for s in sponsors if s["tier"] is None]
            if untiered:
                groups.append({"tier": None, "label": "Sponsors", "sponsors": untiered})
        else:
            groups.append({"tier": None, "label": None, "sponsors": sponsors})
        return {"heading": data.heading, "description": data.description, "groups": groups}

    def render_map(self, data, index, event_id):
        embed_url = None
        if data.latitude is not None and data.longitude is not None:
            lat, lng = data.latitude, data.longitude
            embed_url = (
                "https://www.openstreetmap.org/export/embed.html"
                f"?bbox={lng - 0.01},{lat - 0.01},{lng + 0.01},{lat + 0.01}"
                f"&layer=mapnik&marker={lat},{lng}"
            )
        directions_url = None
        if data.show_directions_link and data.address:
            directions_url = (
                "https://www.openstreetmap.org/search?query=" + quote_plus(data.address)
            )
        return {
            "heading": data.heading,
            "venue_name": data.venue_name,
            "address": data.address,
            "embed_url": embed_url,
            "directions_url": directions_url,
            "zoom": data.zoom,
        }


ALL_SECTION_HANDLERS: Mapping[str, str] = {
    "details": "render_details",
    "schedule": "render_schedule",
    "faq": "render_faq",
    "gallery": "render_gallery",
    "rsvp": "render_rsvp",
    "speakers": "render_speakers",
    "sponsors": "render_sponsors",
    "map": "render_map",
}
