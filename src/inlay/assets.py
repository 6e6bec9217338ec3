"""Asset discovery and URL rewriting for embedded output.

The target's markup was written to be served from its own origin. Once it
is shown under the host's origin, relative stylesheet and script URLs would
point at the host. This module finds those references, makes them absolute
against the target origin, and either rewrites them in place or moves them
into the host's asset registry.
"""

import hashlib
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable

from bs4 import BeautifulSoup, Tag

from .envelope import escape_html, escape_script_block

logger = logging.getLogger(__name__)

STYLE = "style"
SCRIPT = "script"

MODE_REGISTER = "register"
MODE_INLINE = "inline"
MODE_STRIP = "strip"
ASSET_MODES = (MODE_REGISTER, MODE_INLINE, MODE_STRIP)

_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.\-]*://", re.IGNORECASE)

# (tag, handle, src) -> tag
ScriptTagFilter = Callable[[str, str, str], str]


@dataclass(frozen=True)
class AssetReference:
    """A stylesheet or script URL discovered in the target's output."""

    original_url: str
    resolved_url: str
    kind: str
    is_async: bool = False
    defer: bool = False


@dataclass
class CollectedAssets:
    """Result of scanning one captured page."""

    body_html: str
    styles: list[AssetReference] = field(default_factory=list)
    scripts: list[AssetReference] = field(default_factory=list)
    inline_scripts: list[str] = field(default_factory=list)
    inline_styles: list[str] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not (
            self.styles or self.scripts or self.inline_scripts or self.inline_styles
        )


def resolve_url(url: str, base_url: str, secure: bool = True) -> str:
    """Make an asset URL absolute against the target origin.

    Resolution order:
        1. URLs with an explicit scheme (``https://...``) are untouched.
        2. Protocol-relative URLs (``//cdn/x.js``) get the host request's
           scheme.
        3. Everything else is placed under ``base_url``.

    Args:
        url: URL as written in the target's markup.
        base_url: Target origin, e.g. ``https://target.example``.
        secure: Whether the hosting request is served over HTTPS.

    Returns:
        Absolute URL, or "" for an empty input.
    """
    url = url.strip()
    if not url:
        return ""
    if _SCHEME_RE.match(url):
        return url
    if url.startswith("//"):
        return ("https:" if secure else "http:") + url
    return base_url.rstrip("/") + "/" + url.lstrip("/")


def asset_handle(kind: str, url: str, prefix: str = "inlay") -> str:
    """Stable registry handle for an asset URL."""
    digest = hashlib.md5(url.encode("utf-8")).hexdigest()[:10]
    return f"{prefix}-{kind}-{digest}"


def _parse(html: str) -> BeautifulSoup:
    try:
        return BeautifulSoup(html, "lxml")
    except Exception:
        return BeautifulSoup(html, "html.parser")


def _is_stylesheet(link: Tag) -> bool:
    rel = link.get("rel") or []
    if isinstance(rel, str):
        rel = rel.split()
    return "stylesheet" in (r.lower() for r in rel)


def _body_html(soup: BeautifulSoup) -> str:
    body = soup.find("body")
    if body is None:
        return str(soup)
    return "".join(str(child) for child in body.children)


def collect_assets(
    html: str,
    base_url: str,
    secure: bool = True,
    mode: str = MODE_REGISTER,
) -> CollectedAssets:
    """Scan captured output for stylesheets and scripts.

    In ``register`` mode, asset elements are removed from the fragment and
    returned as deduplicated references (styles and scripts by resolved
    URL) plus inline script/style text in document order. In ``inline``
    mode, URLs are rewritten in place and nothing is returned. In ``strip``
    mode, asset elements are removed and nothing is returned.

    Parsing is best-effort: if the parser fails, the input is passed through
    unchanged with no assets.

    Args:
        html: Captured output of the target.
        base_url: Target origin for URL rewriting.
        secure: Whether the hosting request is served over HTTPS.
        mode: One of ``register``, ``inline``, ``strip``.

    Returns:
        CollectedAssets with the body fragment and any references.
    """
    try:
        return _collect(html, base_url, secure, mode)
    except Exception:
        logger.warning("Asset scan failed; passing output through", exc_info=True)
        return CollectedAssets(body_html=html)


def _collect(html: str, base_url: str, secure: bool, mode: str) -> CollectedAssets:
    soup = _parse(html)
    collected = CollectedAssets(body_html="")
    seen: set[tuple[str, str]] = set()

    def add(ref: AssetReference, bucket: list[AssetReference]) -> None:
        key = (ref.kind, ref.resolved_url)
        if key in seen:
            logger.debug("Skipping duplicate %s %s", ref.kind, ref.resolved_url)
            return
        seen.add(key)
        bucket.append(ref)

    for element in soup.find_all(["link", "script", "style"]):
        if element.name == "link":
            if not _is_stylesheet(element):
                continue
            href = element.get("href") or ""
            resolved = resolve_url(href, base_url, secure)
            if mode == MODE_INLINE:
                if resolved:
                    element["href"] = resolved
                continue
            if mode == MODE_REGISTER and resolved:
                add(AssetReference(href, resolved, STYLE), collected.styles)
            element.decompose()

        elif element.name == "script":
            src = element.get("src") or ""
            if src.strip():
                resolved = resolve_url(src, base_url, secure)
                if mode == MODE_INLINE:
                    element["src"] = resolved
                    continue
                if mode == MODE_REGISTER:
                    ref = AssetReference(
                        src,
                        resolved,
                        SCRIPT,
                        is_async=element.has_attr("async"),
                        defer=element.has_attr("defer"),
                    )
                    add(ref, collected.scripts)
            else:
                if mode == MODE_INLINE:
                    continue
                code = element.string or ""
                if mode == MODE_REGISTER and code.strip():
                    collected.inline_scripts.append(code)
            element.decompose()

        else:
            if mode == MODE_INLINE:
                continue
            css = element.string or ""
            if mode == MODE_REGISTER and css.strip():
                collected.inline_styles.append(css)
            element.decompose()

    collected.body_html = _body_html(soup)
    return collected


class AssetRegistry(ABC):
    """Interface of the host's asset-loading registry.

    The registry guarantees each handle is emitted once per page, styles in
    the head and scripts in the footer.
    """

    @abstractmethod
    def register_style(self, handle: str, url: str) -> None:
        """Queue a stylesheet URL."""

    @abstractmethod
    def register_script(
        self, handle: str, url: str, attributes: dict[str, bool] | None = None
    ) -> None:
        """Queue a script URL. ``attributes`` are replayed by tag filters."""

    @abstractmethod
    def add_inline_script(self, handle: str, code: str) -> None:
        """Append an inline script block under ``handle``."""

    @abstractmethod
    def add_inline_style(self, handle: str, css: str) -> None:
        """Append an inline style block under ``handle``."""

    @abstractmethod
    def add_script_tag_filter(self, tag_filter: ScriptTagFilter) -> None:
        """Register a hook that rewrites each emitted script tag."""


class PageAssets(AssetRegistry):
    """In-memory registry for a single page render.

    Collects assets from one or more embeds and renders them as HTML for
    the page head and footer.
    """

    def __init__(self) -> None:
        self.styles: dict[str, str] = {}
        self.scripts: dict[str, str] = {}
        self.script_attributes: dict[str, dict[str, bool]] = {}
        self.inline_scripts: dict[str, list[str]] = {}
        self.inline_styles: dict[str, list[str]] = {}
        self.tag_filters: list[ScriptTagFilter] = []

    def register_style(self, handle: str, url: str) -> None:
        self.styles.setdefault(handle, url)

    def register_script(
        self, handle: str, url: str, attributes: dict[str, bool] | None = None
    ) -> None:
        if handle in self.scripts:
            return
        self.scripts[handle] = url
        self.script_attributes[handle] = dict(attributes or {})

    def add_inline_script(self, handle: str, code: str) -> None:
        self.inline_scripts.setdefault(handle, []).append(code)

    def add_inline_style(self, handle: str, css: str) -> None:
        self.inline_styles.setdefault(handle, []).append(css)

    def add_script_tag_filter(self, tag_filter: ScriptTagFilter) -> None:
        if tag_filter not in self.tag_filters:
            self.tag_filters.append(tag_filter)

    def script_tag(self, handle: str) -> str:
        """Render one script tag, passed through every tag filter."""
        src = self.scripts[handle]
        tag = (
            f'<script src="{escape_html(src)}" id="{escape_html(handle)}-js">'
            "</script>"
        )
        for tag_filter in self.tag_filters:
            tag = tag_filter(tag, handle, src)
        return tag

    def render_head(self) -> str:
        parts = [
            f'<link rel="stylesheet" id="{escape_html(handle)}-css" '
            f'href="{escape_html(url)}">'
            for handle, url in self.styles.items()
        ]
        for handle, blocks in self.inline_styles.items():
            css = "\n".join(escape_script_block(b) for b in blocks)
            parts.append(f'<style id="{escape_html(handle)}">{css}</style>')
        return "\n".join(parts)

    def render_footer(self) -> str:
        parts = [self.script_tag(handle) for handle in self.scripts]
        for handle, blocks in self.inline_scripts.items():
            code = "\n".join(escape_script_block(b) for b in blocks)
            parts.append(f'<script id="{escape_html(handle)}-js-after">{code}</script>')
        return "\n".join(parts)

    def render_page(self, body: str, title: str = "") -> str:
        """Render a minimal HTML document around ``body``."""
        return (
            "<!DOCTYPE html>\n<html>\n<head>\n"
            '<meta charset="utf-8">\n'
            f"<title>{escape_html(title)}</title>\n"
            f"{self.render_head()}\n</head>\n<body>\n"
            f"{body}\n{self.render_footer()}\n</body>\n</html>\n"
        )
