"""Container markup around embedded output.

Successful embeds and errors get distinct CSS classes so host stylesheets
can target embedded content without knowing its internal structure.
"""

DEFAULT_PREFIX = "inlay"


def escape_html(s: str) -> str:
    """Escape a string for HTML text or attribute values."""
    return (
        s.replace("&", "&amp;")
        .replace('"', "&quot;")
        .replace("'", "&#x27;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
    )


def escape_script_block(s: str) -> str:
    """Escape content for embedding inside a <script> or <style> block.

    Replaces ``</`` with ``<\\/`` so the block cannot be closed early.
    """
    return s.replace("</", "<\\/")


def wrap_inline(html: str, prefix: str = DEFAULT_PREFIX) -> str:
    """Wrap already-safe HTML in the success container."""
    return f'<div class="{escape_html(prefix)}-inline">{html}</div>'


def wrap_error(message: str, prefix: str = DEFAULT_PREFIX) -> str:
    """Wrap a plain-text message in the error container.

    The message is always escaped, never interpreted as markup.
    """
    return f'<div class="{escape_html(prefix)}-error">{escape_html(message)}</div>'
