"""Allow-list HTML sanitization for embedded fragments.

Elements not in the policy are unwrapped (their children are kept).
Elements whose content is never safe to show as text (script, style,
iframe, ...) are dropped together with their content unless the policy
explicitly allows them. Attributes not allowed for a tag are removed.
Running the sanitizer on its own output returns the same output.
"""

import logging
from dataclasses import dataclass, field
from fnmatch import fnmatchcase
from typing import Callable

from bs4 import BeautifulSoup
from bs4.element import PreformattedString

from .envelope import escape_html

logger = logging.getLogger(__name__)

# Attribute patterns listed under "*" apply to every allowed tag.
GLOBAL = "*"

_GLOBAL_ATTRS = frozenset(
    {"class", "id", "title", "lang", "dir", "role", "aria-*", "data-*"}
)

DEFAULT_ALLOWED_TAGS: dict[str, frozenset[str]] = {
    GLOBAL: _GLOBAL_ATTRS,
    "a": frozenset({"href", "target", "rel", "name", "hreflang"}),
    "abbr": frozenset(),
    "address": frozenset(),
    "article": frozenset(),
    "aside": frozenset(),
    "b": frozenset(),
    "blockquote": frozenset({"cite"}),
    "br": frozenset(),
    "caption": frozenset(),
    "cite": frozenset(),
    "code": frozenset(),
    "col": frozenset({"span", "width"}),
    "colgroup": frozenset({"span"}),
    "dd": frozenset(),
    "del": frozenset({"datetime"}),
    "details": frozenset({"open"}),
    "div": frozenset(),
    "dl": frozenset(),
    "dt": frozenset(),
    "em": frozenset(),
    "figcaption": frozenset(),
    "figure": frozenset(),
    "footer": frozenset(),
    "h1": frozenset(),
    "h2": frozenset(),
    "h3": frozenset(),
    "h4": frozenset(),
    "h5": frozenset(),
    "h6": frozenset(),
    "header": frozenset(),
    "hr": frozenset(),
    "i": frozenset(),
    "img": frozenset({"src", "alt", "width", "height", "loading", "srcset", "sizes"}),
    "ins": frozenset({"datetime"}),
    "kbd": frozenset(),
    "li": frozenset({"value"}),
    "main": frozenset(),
    "mark": frozenset(),
    "nav": frozenset(),
    "ol": frozenset({"start", "reversed", "type"}),
    "p": frozenset(),
    "pre": frozenset(),
    "q": frozenset({"cite"}),
    "s": frozenset(),
    "section": frozenset(),
    "small": frozenset(),
    "span": frozenset(),
    "strong": frozenset(),
    "sub": frozenset(),
    "summary": frozenset(),
    "sup": frozenset(),
    "table": frozenset({"summary"}),
    "tbody": frozenset(),
    "td": frozenset({"colspan", "rowspan", "headers"}),
    "tfoot": frozenset(),
    "th": frozenset({"colspan", "rowspan", "headers", "scope"}),
    "thead": frozenset(),
    "time": frozenset({"datetime"}),
    "tr": frozenset(),
    "u": frozenset(),
    "ul": frozenset(),
}

# Disallowed elements whose content is removed rather than unwrapped
DROP_CONTENT_TAGS = frozenset(
    {
        "script",
        "style",
        "iframe",
        "object",
        "embed",
        "noscript",
        "template",
        "title",
        "head",
        "textarea",
        "select",
        "svg",
        "math",
    }
)

URL_ATTRS = frozenset({"href", "src", "cite", "action", "formaction", "srcset"})
_UNSAFE_SCHEMES = ("javascript:", "vbscript:", "data:text/html")


@dataclass(frozen=True)
class SanitizationPolicy:
    """Allowed tags and, per tag, allowed attribute patterns.

    Patterns use shell-style wildcards, so ``data-*`` allows every data
    attribute. Patterns under ``"*"`` apply to every allowed tag.
    """

    allowed_tags: dict[str, frozenset[str]] = field(
        default_factory=lambda: dict(DEFAULT_ALLOWED_TAGS)
    )

    def allows_tag(self, name: str) -> bool:
        return name != GLOBAL and name in self.allowed_tags

    def allows_attribute(self, tag: str, attr: str) -> bool:
        attr = attr.lower()
        patterns = self.allowed_tags.get(tag, frozenset()) | self.allowed_tags.get(
            GLOBAL, frozenset()
        )
        return any(fnmatchcase(attr, p.lower()) for p in patterns)

    def extend(self, tags: dict[str, list[str] | set[str]]) -> "SanitizationPolicy":
        """Return a new policy with extra tags/attributes merged in."""
        merged = dict(self.allowed_tags)
        for tag, attrs in tags.items():
            name = tag.lower()
            merged[name] = merged.get(name, frozenset()) | frozenset(attrs or ())
        return SanitizationPolicy(allowed_tags=merged)


DEFAULT_POLICY = SanitizationPolicy()

# (policy, raw_html) -> policy
PolicyHook = Callable[[SanitizationPolicy, str], SanitizationPolicy]


def _unsafe_url(value: str) -> bool:
    # Browsers drop control characters and spaces before reading the scheme
    compact = "".join(ch for ch in value if ch > " ").lower()
    return compact.startswith(_UNSAFE_SCHEMES)


def _attr_text(value) -> str:
    if isinstance(value, list):
        return " ".join(value)
    return str(value)


def sanitize_html(
    html: str,
    policy: SanitizationPolicy | None = None,
    hook: PolicyHook | None = None,
) -> str:
    """Strip every element and attribute the policy does not allow.

    Args:
        html: HTML fragment to clean.
        policy: Allow-list; defaults to DEFAULT_POLICY.
        hook: Optional callable receiving (policy, html) and returning the
            policy to use for this call.

    Returns:
        Sanitized HTML. If the parser fails, the input is returned as
        escaped plain text, never as markup.
    """
    policy = policy or DEFAULT_POLICY
    if hook is not None:
        policy = hook(policy, html)

    try:
        return _sanitize(html, policy)
    except Exception:
        logger.warning("Sanitizer failed; escaping fragment", exc_info=True)
        return escape_html(html)


def _sanitize(html: str, policy: SanitizationPolicy) -> str:
    soup = BeautifulSoup(html, "html.parser")

    for node in soup.find_all(string=lambda s: isinstance(s, PreformattedString)):
        node.extract()

    for tag in soup.find_all(list(DROP_CONTENT_TAGS)):
        if not policy.allows_tag(tag.name) and not tag.decomposed:
            tag.decompose()

    for tag in soup.find_all(True):
        if not policy.allows_tag(tag.name):
            tag.unwrap()
            continue
        for attr in list(tag.attrs):
            if not policy.allows_attribute(tag.name, attr):
                del tag[attr]
            elif attr.lower() in URL_ATTRS and _unsafe_url(_attr_text(tag[attr])):
                del tag[attr]

    return str(soup)
