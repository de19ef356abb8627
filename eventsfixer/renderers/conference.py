"""Professional conference page template.

Schedule entries are shown as an agenda table.
"""

from __future__ import annotations

from .base import ALL_SECTION_HANDLERS, TemplateRenderer


class ConferenceTemplate(TemplateRenderer):
    template_id = "conference_v1"
    name = "Professional Conference"
    category = "conference"
    description = "Agenda-first layout with speaker cards and tiered sponsors."

    section_handlers = dict(ALL_SECTION_HANDLERS)

    rsvp_heading = "Register Your Attendance"
    speakers_heading = "Speakers"

    def render_schedule(self, data, index, event_id):
        context = super().render_schedule(data, index, event_id)
        if context is not None:
            context["heading"] = "Agenda"
        return context

    def render_sponsors(self, data, index, event_id):
        context = super().render_sponsors(data, index, event_id)
        if context is None:
            return None
        context["heading"] = context["heading"] or "Our Sponsors"
        return context

    def render_map(self, data, index, event_id):
        context = super().render_map(data, index, event_id)
        context["heading"] = context["heading"] or "Venue"
        return context
