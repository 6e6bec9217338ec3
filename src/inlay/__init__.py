"""inlay - Safely embed pages of a sibling web application into a host page."""

__version__ = "0.3.0"

from .assets import AssetRegistry, PageAssets, collect_assets, resolve_url
from .config import InlayConfig, load_config
from .embed import EmbedHooks, Embedder, embed
from .errors import InlayError
from .resolver import EmbedRequest, resolve_target
from .sanitizer import SanitizationPolicy, sanitize_html

__all__ = [
    "AssetRegistry",
    "PageAssets",
    "collect_assets",
    "resolve_url",
    "InlayConfig",
    "load_config",
    "EmbedHooks",
    "Embedder",
    "embed",
    "InlayError",
    "EmbedRequest",
    "resolve_target",
    "SanitizationPolicy",
    "sanitize_html",
    "__version__",
]
