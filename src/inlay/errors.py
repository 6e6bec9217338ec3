"""Exception types for inlay.

Every rejection raised by the embedding pipeline derives from
:class:`InlayError`. The exception text may carry diagnostic detail
(resolved paths, hook names) meant for logs; only ``user_message`` is ever
shown to the visitor, and it never includes a filesystem path.
"""


class InlayError(Exception):
    """Base exception for inlay errors."""

    user_message = "embedding failed"


class ConfigurationError(InlayError):
    """Root directory or target origin is missing or misconfigured."""

    user_message = "base directory not found"


class DisallowedTypeError(InlayError):
    """Requested file extension is not on the allow-list."""

    user_message = "file type not allowed"


class NotFoundError(InlayError):
    """Target does not exist or is not a regular file."""

    user_message = "target file not found"


class UnreadableError(InlayError):
    """Target exists but cannot be read."""

    user_message = "target file not readable"


class TraversalError(InlayError):
    """Canonical target lies outside the canonical root."""

    user_message = "access outside allowed directory denied"


class PolicyDeniedError(InlayError):
    """The approval hook vetoed an otherwise valid target."""

    user_message = "access to target denied"


class ExecutionFault(InlayError):
    """The target's own code failed while running."""

    user_message = "execution error"
