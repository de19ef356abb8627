"""Elegant wedding page template.

Guests reply through their invite link, so the page itself carries no RSVP
form, map or sponsor blocks.
"""

from __future__ import annotations

from .base import ALL_SECTION_HANDLERS, TemplateRenderer


class WeddingTemplate(TemplateRenderer):
    template_id = "wedding_v1"
    name = "Elegant Wedding"
    category = "wedding"
    description = "Romantic serif layout with a timeline schedule and photo gallery."

    section_handlers = {
        key: ALL_SECTION_HANDLERS[key]
        for key in ("details", "schedule", "faq", "gallery")
    }

    def render_schedule(self, data, index, event_id):
        context = super().render_schedule(data, index, event_id)
        if context is not None:
            context["heading"] = "Order of the Day"
        return context
