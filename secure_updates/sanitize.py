"""Sanitization of untrusted metadata returned by the update server.

Free text is reduced to plain text, rich sections keep a small allowlist of
tags and attributes, and URLs are accepted only when they are absolute
http(s) URLs.
"""

from __future__ import annotations

import html
import re
from html.parser import HTMLParser
from typing import Any
from urllib.parse import urlsplit

from .errors import InvalidResponseError

# Tag -> allowed attributes
AUTHOR_TAGS: dict[str, frozenset[str]] = {"a": frozenset({"href"})}

POST_TAGS: dict[str, frozenset[str]] = {
    "a": frozenset({"href", "title"}),
    "abbr": frozenset({"title"}),
    "b": frozenset(),
    "blockquote": frozenset(),
    "br": frozenset(),
    "code": frozenset(),
    "em": frozenset(),
    "h1": frozenset(),
    "h2": frozenset(),
    "h3": frozenset(),
    "h4": frozenset(),
    "h5": frozenset(),
    "h6": frozenset(),
    "hr": frozenset(),
    "i": frozenset(),
    "img": frozenset({"src", "alt", "title", "width", "height"}),
    "li": frozenset(),
    "ol": frozenset(),
    "p": frozenset(),
    "pre": frozenset(),
    "span": frozenset(),
    "strong": frozenset(),
    "ul": frozenset(),
}

VOID_TAGS = frozenset({"br", "hr", "img"})

# Contents of these are dropped entirely, not just the tags
DROP_CONTENT_TAGS = frozenset({"script", "style", "iframe", "object", "embed", "template"})

URL_ATTRIBUTES = frozenset({"href", "src"})
SAFE_URL_SCHEMES = frozenset({"http", "https", "mailto"})

_WHITESPACE = re.compile(r"\s+")
_SLUG_INVALID = re.compile(r"[^a-z0-9_-]+")


def _as_text(value: Any) -> str:
    if value is None or isinstance(value, (dict, list, bool)):
        return ""
    return str(value)


def _is_safe_link(value: str) -> bool:
    scheme = urlsplit(value.strip()).scheme.lower()
    # Relative links have no scheme
    return scheme == "" or scheme in SAFE_URL_SCHEMES


class _AllowlistParser(HTMLParser):
    def __init__(self, allowed: dict[str, frozenset[str]]) -> None:
        super().__init__(convert_charrefs=True)
        self._allowed = allowed
        self._out: list[str] = []
        self._open: list[str] = []
        self._skip_depth = 0

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if tag in DROP_CONTENT_TAGS:
            self._skip_depth += 1
            return
        if self._skip_depth or tag not in self._allowed:
            return

        kept = []
        for name, value in attrs:
            if name not in self._allowed[tag] or value is None:
                continue
            if name in URL_ATTRIBUTES and not _is_safe_link(value):
                continue
            kept.append(f' {name}="{html.escape(value, quote=True)}"')

        self._out.append(f"<{tag}{''.join(kept)}>")
        if tag not in VOID_TAGS:
            self._open.append(tag)

    def handle_startendtag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if tag in DROP_CONTENT_TAGS:
            return
        self.handle_starttag(tag, attrs)
        if tag in self._open and tag not in VOID_TAGS:
            self.handle_endtag(tag)

    def handle_endtag(self, tag: str) -> None:
        if tag in DROP_CONTENT_TAGS:
            self._skip_depth = max(self._skip_depth - 1, 0)
            return
        if self._skip_depth or tag not in self._open:
            return
        while self._open:
            open_tag = self._open.pop()
            self._out.append(f"</{open_tag}>")
            if open_tag == tag:
                break

    def handle_data(self, data: str) -> None:
        if not self._skip_depth:
            self._out.append(html.escape(data, quote=False))

    def result(self) -> str:
        self.close()
        while self._open:
            self._out.append(f"</{self._open.pop()}>")
        return "".join(self._out)


def sanitize_html(value: Any, allowed: dict[str, frozenset[str]] = POST_TAGS) -> str:
    """Keep only allowlisted tags and attributes of ``value``.

    Text is re-escaped, links with unsafe schemes (``javascript:``,
    ``data:``...) are dropped and unclosed tags are closed.

    Raises:
        InvalidResponseError: If the markup cannot be parsed at all.

    Examples:
        >>> sanitize_html('<p onclick="x()">Hi<script>alert(1)</script></p>')
        '<p>Hi</p>'
    """
    parser = _AllowlistParser(allowed)
    # html.parser raises AssertionError on some malformed declarations
    try:
        parser.feed(_as_text(value))
        return parser.result()
    except (AssertionError, ValueError) as e:
        raise InvalidResponseError(
            "Invalid plugin info received: unparsable markup", detail=str(e)
        ) from e


def sanitize_text(value: Any) -> str:
    """Reduce ``value`` to a single line of plain text.

    Examples:
        >>> sanitize_text("  <b>My</b>\\n  Plugin ")
        'My Plugin'
    """
    stripped = html.unescape(sanitize_html(value, allowed={}))
    return _WHITESPACE.sub(" ", stripped).strip()


def sanitize_url(value: Any) -> str:
    """Return ``value`` if it is an absolute http(s) URL, otherwise ``""``."""
    url = _as_text(value).strip()
    if not url or any(ch.isspace() or ord(ch) < 32 for ch in url):
        return ""
    parts = urlsplit(url)
    if parts.scheme.lower() not in ("http", "https") or not parts.netloc:
        return ""
    return url


def sanitize_slug(value: Any, fallback: str) -> str:
    """Lower-case ``value`` into a slug, falling back when nothing is left."""
    slug = _SLUG_INVALID.sub("-", sanitize_text(value).lower()).strip("-")
    return slug or fallback
