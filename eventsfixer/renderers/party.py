"""Celebration party page template."""

from __future__ import annotations

from .base import ALL_SECTION_HANDLERS, TemplateRenderer


class PartyTemplate(TemplateRenderer):
    template_id = "party_v1"
    name = "Celebration Party"
    category = "party"
    description = "Playful layout for birthdays, anniversaries and casual get-togethers."

    section_handlers = dict(ALL_SECTION_HANDLERS)

    rsvp_heading = "Join the Party!"
    speakers_heading = "Special Guests"

    def render_faq(self, data, index, event_id):
        context = super().render_faq(data, index, event_id)
        if context is not None:
            context["heading"] = "Good to Know"
        return context

    def render_sponsors(self, data, index, event_id):
        context = super().render_sponsors(data, index, event_id)
        if context is not None and not context["heading"]:
            context["heading"] = "Made Possible By"
        return context

    def render_map(self, data, index, event_id):
        context = super().render_map(data, index, event_id)
        context["heading"] = context["heading"] or "Find the Party!"
        return context
