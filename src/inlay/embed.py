"""The embedding pipeline.

request -> resolve + contain -> execute -> collect assets -> sanitize
-> envelope. Every rejection ends as an escaped error envelope; nothing
raised below this layer reaches the caller.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from .assets import (
    MODE_REGISTER,
    MODE_STRIP,
    SCRIPT,
    STYLE,
    AssetRegistry,
    CollectedAssets,
    PageAssets,
    asset_handle,
    collect_assets,
)
from .config import InlayConfig, validate_base_url
from .envelope import wrap_error, wrap_inline
from .errors import ConfigurationError, ExecutionFault, InlayError
from .executor import ExecutionResult, Executor, get_executor
from .resolver import EmbedRequest, ResolvedTarget, resolve_target
from .sanitizer import DEFAULT_POLICY, PolicyHook, SanitizationPolicy, sanitize_html

logger = logging.getLogger(__name__)


@dataclass
class EmbedHooks:
    """Host extension points, each called at a fixed point of the pipeline.

    root: (root) -> root, called before path resolution.
    base_url: (base_url) -> base_url, called before asset rewriting.
    extensions: (extensions) -> extensions, called before resolution.
    approve_target: (path) -> bool, called after containment passes.
    sanitize_policy: (policy, html) -> policy, called per sanitization.
    script_tag: (tag, handle, src) -> tag, applied after async/defer
        injection when the registry emits a script tag.
    """

    root: Callable[[Path | None], Path | str | None] | None = None
    base_url: Callable[[str], str] | None = None
    extensions: Callable[[list[str]], list[str]] | None = None
    approve_target: Callable[[Path], bool] | None = None
    sanitize_policy: PolicyHook | None = None
    script_tag: Callable[[str, str, str], str] | None = None


class Embedder:
    """Embeds target files into host pages.

    One Embedder serves many requests. Assets from every embed are pushed
    into ``registry``; per-request state lives only on the stack.

    Raises:
        ConfigurationError: If ``config`` fails validation.
    """

    def __init__(
        self,
        config: InlayConfig,
        registry: AssetRegistry | None = None,
        executor: Executor | None = None,
        hooks: EmbedHooks | None = None,
    ):
        config.validate()
        self.config = config
        self.hooks = hooks or EmbedHooks()
        self.registry = registry if registry is not None else PageAssets()
        self.executor = executor or get_executor(config.executor, config.timeout)
        self.policy: SanitizationPolicy = DEFAULT_POLICY
        if config.allowed_tags:
            self.policy = DEFAULT_POLICY.extend(config.allowed_tags)
        self.script_attrs: dict[str, dict[str, bool]] = {}
        self.registry.add_script_tag_filter(self.add_async_defer_attributes)

    def embed(self, path: str = "", fullpath: str = "", secure: bool = True) -> str:
        """Render one target file as an embeddable HTML fragment.

        Args:
            path: Path relative to the target root; defaults to the entry file.
            fullpath: Explicit path that takes precedence over ``path``.
            secure: Whether the hosting request is served over HTTPS.

        Returns:
            The wrapped fragment, or a wrapped, escaped error message.
        """
        request = EmbedRequest(path=path or self.config.entry, fullpath=fullpath)
        prefix = self.config.css_prefix

        try:
            target = self.resolve(request)
            base_url = ""
            if self.config.asset_mode != MODE_STRIP:
                base_url = self._base_url()
        except InlayError as e:
            logger.warning("Rejected %s: %s", request, e)
            return wrap_error(e.user_message, prefix)

        result = self.executor.execute(target)
        for warning in result.warnings:
            logger.warning("While running %s: %s", target.path, warning)

        error_html = ""
        if result.fault is not None:
            logger.warning("Fault in %s: %s", target.path, result.fault)
            error_html = wrap_error(
                f"{ExecutionFault.user_message}: {result.fault}", prefix
            )
            if self.config.on_fault == "error":
                return error_html

        fragment = self.render(result, base_url, secure)
        return wrap_inline(fragment, prefix) + error_html

    def resolve(self, request: EmbedRequest) -> ResolvedTarget:
        """Resolve and contain a request using the configured root and hooks."""
        root = self.config.root
        if self.hooks.root is not None:
            root = self.hooks.root(root)

        extensions = list(self.config.allowed_extensions)
        if self.hooks.extensions is not None:
            extensions = list(self.hooks.extensions(extensions))

        return resolve_target(
            request,
            root,
            allowed_extensions=extensions,
            approve=self.hooks.approve_target,
        )

    def render(self, result: ExecutionResult, base_url: str, secure: bool) -> str:
        """Turn captured output into a safe fragment, registering its assets."""
        collected = collect_assets(
            result.output, base_url, secure=secure, mode=self.config.asset_mode
        )
        if self.config.asset_mode == MODE_REGISTER:
            self.register(collected)

        fragment = collected.body_html
        if self.config.sanitize:
            fragment = sanitize_html(
                fragment, self.policy, hook=self.hooks.sanitize_policy
            )
        return fragment

    def register(self, collected: CollectedAssets) -> None:
        """Hand collected assets to the registry."""
        prefix = self.config.css_prefix
        for ref in collected.styles:
            self.registry.register_style(
                asset_handle(STYLE, ref.resolved_url, prefix), ref.resolved_url
            )
        for ref in collected.scripts:
            handle = asset_handle(SCRIPT, ref.resolved_url, prefix)
            attributes = {"async": ref.is_async, "defer": ref.defer}
            self.script_attrs[handle] = attributes
            self.registry.register_script(handle, ref.resolved_url, attributes)
        for code in collected.inline_scripts:
            self.registry.add_inline_script(f"{prefix}-inline-js", code)
        for css in collected.inline_styles:
            self.registry.add_inline_style(f"{prefix}-inline-css", css)

        if not collected.empty:
            logger.debug(
                "Registered %d style(s), %d script(s), %d inline block(s)",
                len(collected.styles),
                len(collected.scripts),
                len(collected.inline_scripts) + len(collected.inline_styles),
            )

    def add_async_defer_attributes(self, tag: str, handle: str, src: str) -> str:
        """Script-tag filter replaying async/defer for registered handles."""
        attributes = self.script_attrs.get(handle)
        if attributes is not None:
            if attributes.get("async") and " async" not in tag:
                tag = tag.replace("<script ", "<script async ", 1)
            if attributes.get("defer") and " defer" not in tag:
                tag = tag.replace("<script ", "<script defer ", 1)
        if self.hooks.script_tag is not None:
            tag = self.hooks.script_tag(tag, handle, src)
        return tag

    def _base_url(self) -> str:
        base_url = self.config.base_url
        if self.hooks.base_url is not None:
            base_url = self.hooks.base_url(base_url)
        if not base_url:
            raise ConfigurationError("No base_url configured")
        return validate_base_url(base_url)


def embed(
    config: InlayConfig,
    path: str = "",
    fullpath: str = "",
    secure: bool = True,
    registry: AssetRegistry | None = None,
) -> str:
    """Embed a single target file with a one-off Embedder."""
    return Embedder(config, registry=registry).embed(path, fullpath, secure=secure)
