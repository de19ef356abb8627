from __future__ import annotations

import pytest

from eventsfixer.config_migrations import create_minimal_config, parse_page_config
from eventsfixer.renderers import (
    AssetIndex,
    TemplateRegistry,
    registry,
    render_page_html,
    resolve,
)
from eventsfixer.renderers.conference import ConferenceTemplate
from eventsfixer.renderers.party import PartyTemplate
from eventsfixer.renderers.wedding import WeddingTemplate


def _with_sections(page_document, *sections):
    document = page_document()
    document["sections"].extend(sections)
    return parse_page_config(document)


SPEAKERS = {
    "type": "speakers",
    "enabled": True,
    "data": {
        "heading": "",
        "items": [
            {
                "name": "Grace Hopper",
                "role": "Keynote",
                "links": [
                    {"label": "Site", "url": "https://example.com"},
                    {"label": "Bad", "url": "javascript:alert(1)"},
                ],
            }
        ],
    },
}

SPONSORS = {
    "type": "sponsors",
    "enabled": True,
    "data": {
        "heading": "",
        "showTiers": True,
        "items": [
            {"name": "Acme", "tier": "silver"},
            {"name": "Globex", "tier": "platinum"},
            {"name": "Friends"},
        ],
    },
}


def test_registry_resolves_known_and_unknown_ids():
    assert resolve("conference_v1").template_id == "conference_v1"
    assert resolve("nope_v9") is registry.default
    assert resolve(None) is registry.default
    assert set(registry.template_ids()) == {"wedding_v1", "conference_v1", "party_v1"}
    assert len(registry) == 3 and "party_v1" in registry


def test_registry_requires_registered_default():
    with pytest.raises(ValueError):
        TemplateRegistry([PartyTemplate()], default_id="wedding_v1")


def test_describe_lists_supported_sections():
    described = {entry["id"]: entry for entry in registry.describe()}
    assert set(described["wedding_v1"]["sections"]) == {
        "details",
        "schedule",
        "faq",
        "gallery",
    }
    for template_id in ("conference_v1", "party_v1"):
        assert "speakers" in described[template_id]["sections"]
        assert "rsvp" in described[template_id]["sections"]
    assert sum(1 for entry in described.values() if entry["default"]) == 1


def test_disabled_sections_are_skipped_in_order(page_document):
    config = parse_page_config(page_document())
    tree = PartyTemplate().render(config, event_id="evt-1")
    assert tree.section_types == ["details", "schedule", "rsvp"]
    assert [section.position for section in tree.sections] == [0, 1, 3]

    document = page_document()
    document["sections"][2]["enabled"] = True
    tree = PartyTemplate().render(parse_page_config(document), event_id="evt-1")
    assert tree.section_types == ["details", "schedule", "faq", "rsvp"]


def test_wedding_page_has_no_rsvp_form(page_document):
    tree = WeddingTemplate().render(parse_page_config(page_document()), event_id="evt-1")
    assert tree.section_types == ["details", "schedule"]


def test_template_specific_headings(page_document):
    config = parse_page_config(page_document())
    wedding = WeddingTemplate().render(config, event_id="evt-1")
    conference = ConferenceTemplate().render(config, event_id="evt-1")
    assert wedding.sections[1].context["heading"] == "Order of the Day"
    assert conference.sections[1].context["heading"] == "Agenda"
    assert conference.sections[2].context["heading"] == "Will you join us?"
    assert conference.sections[2].context["statuses"] == ["yes", "no"]


def test_rsvp_requires_event_id(page_document):
    tree = PartyTemplate().render(parse_page_config(page_document()))
    assert "rsvp" not in tree.section_types


def test_speakers_render_for_conference_and_party(page_document):
    config = _with_sections(page_document, SPEAKERS)
    assert "speakers" not in WeddingTemplate().render(config).section_types

    party = PartyTemplate().render(config, event_id="evt-1")
    assert party.section_types == ["details", "schedule", "rsvp", "speakers"]
    assert party.sections[-1].context["heading"] == "Special Guests"

    tree = ConferenceTemplate().render(config)
    speakers = tree.sections[-1]
    assert speakers.type == "speakers"
    assert speakers.context["heading"] == "Speakers"
    assert speakers.context["speakers"][0]["links"] == [
        {"label": "Site", "url": "https://example.com"}
    ]


def test_sponsors_grouped_by_tier(page_document):
    config = _with_sections(page_document, SPONSORS)
    context = PartyTemplate().render(config).sections[-1].context
    assert context["heading"] == "Made Possible By"
    assert [group["tier"] for group in context["groups"]] == ["platinum", "silver", None]


def test_missing_assets_render_without_images(page_document):
    document = page_document()
    document["hero"]["heroImageAssetId"] = "gone"
    document["sections"].append(
        {"type": "gallery", "enabled": True, "data": {"assetIds": ["gone", "kept"]}}
    )
    config = parse_page_config(document)
    assets = [{"id": "kept", "public_url": "/media/kept.jpg", "alt": "Dance floor"}]

    tree = WeddingTemplate().render(config, assets)
    assert tree.hero["image"] is None
    gallery = tree.sections[-1]
    assert [image.id for image in gallery.context["images"]] == ["kept"]

    tree = WeddingTemplate().render(config, [])
    assert "gallery" not in tree.section_types


def test_asset_index_accepts_objects_and_mappings():
    class Asset:
        id = "a1"
        public_url = "/media/a1.png"
        alt = None
        width = 640
        height = 480

    index = AssetIndex([Asset(), {"id": "a2", "publicUrl": "/media/a2.png"}, {"id": "a3"}])
    assert index.get("a1").width == 640
    assert index.get("a2").url == "/media/a2.png"
    assert index.get("a3") is None
    assert index.get(None) is None
    assert len(index) == 2


def test_map_builds_embed_and_directions(page_document):
    config = _with_sections(
        page_document,
        {
            "type": "map",
            "enabled": True,
            "data": {
                "heading": "",
                "address": "1 Main St, Springfield",
                "latitude": 40.0,
                "longitude": -75.0,
            },
        },
    )
    context = ConferenceTemplate().render(config).sections[-1].context
    assert context["heading"] == "Venue"
    assert "marker=40.0,-75.0" in context["embed_url"]
    assert context["directions_url"].endswith("1+Main+St%2C+Springfield")


def test_minimal_config_renders_hero_only():
    tree = PartyTemplate().render(create_minimal_config("Birthday"), event_id="evt-1")
    assert tree.sections == []
    html = render_page_html(tree)
    assert "<h1>Birthday</h1>" in html
    assert "data-section-type" not in html


def test_html_escapes_content_and_marks_preview(page_document):
    config = parse_page_config(page_document(title="<script>x</script>"))
    tree = PartyTemplate().render(config, event_id="evt-1")

    html = render_page_html(tree)
    assert "<script>x</script>" not in html
    assert "&lt;script&gt;" in html
    assert html.count("data-section-type=") == 3
    assert 'action="/rsvp/evt-1"' in html
    assert "noindex" not in html
    assert "--primary: #9D174D" in html

    preview = render_page_html(tree, preview=True)
    assert '<meta name="robots" content="noindex, nofollow">' in preview
    assert "RSVPs are disabled in preview mode." in preview
    assert 'action="/rsvp/' not in preview


def test_template_partials_override_defaults(page_document):
    config = parse_page_config(page_document())
    wedding = render_page_html(WeddingTemplate().render(config, event_id="e"))
    conference = render_page_html(ConferenceTemplate().render(config, event_id="e"))
    assert "Together with their families" in wedding
    assert 'class="agenda"' in conference
    assert 'class="agenda"' not in wedding
