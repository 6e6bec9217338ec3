"""Path resolution and containment checks for inlay.

Turns a symbolic request (a path relative to the target root, or an
explicit full path) into a canonical, readable file that is guaranteed to
live inside the configured root directory.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from .errors import (
    ConfigurationError,
    DisallowedTypeError,
    NotFoundError,
    PolicyDeniedError,
    TraversalError,
    UnreadableError,
)

logger = logging.getLogger(__name__)

DEFAULT_ENTRY = "index.py"
DEFAULT_EXTENSIONS = (".py",)

_SEPARATORS = "/\\"


@dataclass(frozen=True)
class EmbedRequest:
    """A symbolic request for one target file.

    ``fullpath`` wins over ``path`` whenever it is non-empty.
    """

    path: str = DEFAULT_ENTRY
    fullpath: str = ""


@dataclass(frozen=True)
class ResolvedTarget:
    """A target file proven to be inside ``root``.

    Only :func:`resolve_target` should construct this.
    """

    path: Path
    root: Path

    @property
    def directory(self) -> Path:
        return self.path.parent


def _normalize(path: str) -> str:
    if os.altsep:
        path = path.replace(os.altsep, os.sep)
    return path


def is_contained(candidate: str | Path, root: str | Path) -> bool:
    """Check that ``candidate`` lies strictly inside ``root``.

    Both arguments must already be canonical. The root gets exactly one
    trailing separator before the prefix test, so ``/base-evil/x`` is not
    inside ``/base`` and ``/base`` itself is not inside ``/base``.

    Args:
        candidate: Canonical candidate path.
        root: Canonical root directory.

    Returns:
        True if candidate is root + separator + a non-empty remainder.
    """
    candidate_str = _normalize(str(candidate))
    prefix = _normalize(str(root)).rstrip(os.sep) + os.sep
    return candidate_str.startswith(prefix) and len(candidate_str) > len(prefix)


def check_extension(
    candidate: str | Path, allowed: list[str] | tuple[str, ...]
) -> None:
    """Reject candidates whose suffix is not on the allow-list.

    An empty allow-list disables the check.

    Raises:
        DisallowedTypeError: If the suffix is not allowed.
    """
    if not allowed:
        return
    normalized = {
        ext.lower() if ext.startswith(".") else f".{ext.lower()}" for ext in allowed
    }
    suffix = Path(str(candidate)).suffix.lower()
    if suffix not in normalized:
        raise DisallowedTypeError(f"Extension {suffix!r} not allowed for {candidate}")


def canonical_root(root: str | Path | None) -> Path:
    """Validate and canonicalize the configured root directory.

    Raises:
        ConfigurationError: If root is empty, missing, or not a directory.
    """
    if root is None or str(root) == "":
        raise ConfigurationError("No root directory configured")
    if not os.path.isdir(root):
        raise ConfigurationError(f"Root directory not found: {root}")
    try:
        return Path(root).resolve(strict=True)
    except (OSError, RuntimeError) as e:
        raise ConfigurationError(f"Cannot canonicalize root {root}: {e}") from e


def candidate_path(request: EmbedRequest, root: Path) -> str:
    """Build the un-resolved candidate path for a request."""
    if request.fullpath:
        return os.path.abspath(request.fullpath)
    relative = (request.path or DEFAULT_ENTRY).lstrip(_SEPARATORS)
    return os.path.join(str(root), relative)


def resolve_target(
    request: EmbedRequest,
    root: str | Path | None,
    allowed_extensions: list[str] | tuple[str, ...] = DEFAULT_EXTENSIONS,
    approve: Callable[[Path], bool] | None = None,
) -> ResolvedTarget:
    """Resolve a request into a target file inside ``root``.

    Steps:
        1. Validate and canonicalize the root.
        2. Build the candidate from ``fullpath`` or ``root/path``.
        3. Lexically reject candidates that leave the root, before
           touching the filesystem.
        4. Check the extension on the un-resolved candidate.
        5. Canonicalize (follow symlinks) and require a readable regular file.
        6. Re-check containment on the canonical path.
        7. Ask the optional approval predicate.

    Args:
        request: The symbolic request.
        root: Configured target root directory.
        allowed_extensions: Allowed file suffixes; empty disables the check.
        approve: Optional predicate called with the canonical path.

    Returns:
        ResolvedTarget for the canonical file.

    Raises:
        ConfigurationError, DisallowedTypeError, NotFoundError,
        UnreadableError, TraversalError, PolicyDeniedError.
    """
    real_root = canonical_root(root)
    candidate = candidate_path(request, real_root)

    # Keeps "../" requests from ever stat-ing anything outside the root
    if not is_contained(os.path.normpath(candidate), real_root):
        raise TraversalError(f"Candidate {candidate} escapes root {real_root}")

    check_extension(candidate, allowed_extensions)

    try:
        resolved = Path(candidate).resolve(strict=True)
    except (OSError, RuntimeError) as e:
        raise NotFoundError(f"Cannot resolve {candidate}: {e}") from e

    if not is_contained(resolved, real_root):
        raise TraversalError(f"Resolved {resolved} is outside root {real_root}")

    if not resolved.is_file():
        raise NotFoundError(f"Not a regular file: {resolved}")
    if not os.access(resolved, os.R_OK):
        raise UnreadableError(f"Not readable: {resolved}")

    if approve is not None and not approve(resolved):
        raise PolicyDeniedError(f"Approval hook denied {resolved}")

    logger.debug("Resolved %s to %s", request, resolved)
    return ResolvedTarget(path=resolved, root=real_root)
