from __future__ import annotations

from typing import Iterable
import bleach
from markdown import Markdown

# Lesson bodies may embed images and code; scripts, iframes and inline handlers are stripped
_ALLOWED_TAGS: set[str] = {
    "p", "pre", "code", "blockquote", "strong", "em", "u", "del", "hr",
    "h1", "h2", "h3", "h4", "h5", "h6",
    "ul", "ol", "li",
    "table", "thead", "tbody", "tr", "th", "td",
    "a", "span", "br", "img", "sup", "sub",
}
_ALLOWED_ATTRS: dict[str, Iterable[str]] = {
    "a": ["href", "title", "target", "rel"],
    "img": ["src", "alt", "title"],
    "span": ["class"],
    "code": ["class"],
    "pre": ["class"],
    "th": ["align"], "td": ["align"],
}
_ALLOWED_PROTOCOLS = {"http", "https", "mailto"}


def render_lesson_markdown(md: str | None) -> str:
    """Render lesson Markdown -> sanitized HTML."""
    if not md:
        return ""
    md_engine = Markdown(
        extensions=["extra", "sane_lists", "smarty", "nl2br"],
        output_format="html5",
    )
    html = md_engine.convert(md)
    clean = bleach.clean(
        html,
        tags=_ALLOWED_TAGS,
        attributes=_ALLOWED_ATTRS,
        protocols=_ALLOWED_PROTOCOLS,
        strip=True,
    )
    return bleach.linkify(clean, skip_tags=["pre", "code"], parse_email=False)
