"""Template registry for event pages."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from types import MappingProxyType
from typing import Any

from ..config import settings
from .base import AssetIndex, AssetView, PageTree, RenderedSection, TemplateRenderer
from .conference import ConferenceTemplate
from .html import page_env, render_page_html
from .party import PartyTemplate
from .wedding import WeddingTemplate

logger = logging.getLogger("uvicorn.error")

__all__ = [
    "AssetIndex",
    "AssetView",
    "PageTree",
    "RenderedSection",
    "TemplateRegistry",
    "TemplateRenderer",
    "page_env",
    "registry",
    "render_page_html",
    "resolve",
]


class TemplateRegistry:
    """Read-only lookup of renderers by template id."""

    def __init__(self, renderers: Iterable[TemplateRenderer], default_id: str):
        table = {renderer.template_id: renderer for renderer in renderers}
        if default_id not in table:
            raise ValueError(f"Default template {default_id!r} is not registered")
        self._renderers = MappingProxyType(table)
        self.default_id = default_id

    def resolve(self, template_id: str | None) -> TemplateRenderer:
        """Return the renderer for ``template_id``, or the default one."""
        renderer = self._renderers.get(template_id or "")
        if renderer is None:
            if template_id:
                logger.warning(
                    "Unknown template %r, falling back to %s",
                    template_id,
                    self.default_id,
                )
            return self._renderers[self.default_id]
        return renderer

    @property
    def default(self) -> TemplateRenderer:
        return self._renderers[self.default_id]

    def template_ids(self) -> list[str]:
        return list(self._renderers)

    def describe(self) -> list[dict[str, Any]]:
        return [
            {
                "id": renderer.template_id,
                "name": renderer.name,
                "category": renderer.category,
                "description": renderer.description,
                "sections": list(renderer.section_handlers),
                "default": renderer.template_id == self.default_id,
            }
            for renderer in self._renderers.values()
        ]

    def __contains__(self, template_id: object) -> bool:
        return template_id in self._renderers

    def __len__(self) -> int:
        return len(self._renderers)


registry = TemplateRegistry(
    [WeddingTemplate(), ConferenceTemplate(), PartyTemplate()],
    default_id=settings.default_template_id,
)


def resolve(template_id: str | None) -> TemplateRenderer:
    return registry.resolve(template_id)
