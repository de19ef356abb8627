"""Jinja2 rendering of page trees into HTML."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, select_autoescape

from ..utils import render_paragraphs
from .base import PageTree

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"

page_env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html", "xml"]),
    trim_blocks=True,
    lstrip_blocks=True,
)
page_env.filters["paragraphs"] = render_paragraphs


def render_page_html(tree: PageTree, *, preview: bool = False, event: Any = None) -> str:
    """Render a full public page.

    Each section is rendered with the first partial that exists out of
    ``<template_id>/<type>.html`` and ``sections/<type>.html``. Preview pages
    carry a banner and are marked ``noindex``.
    """
    template = page_env.get_template("page.html")
    return template.render(
        tree=tree,
        preview=preview,
        event=event,
        primary_color=tree.theme.primary_color,
    )
