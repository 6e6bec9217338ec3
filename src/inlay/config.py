"""Configuration management for inlay.

Handles loading .inlay.yaml files with directory traversal,
environment variable overrides, and default values.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

import yaml

from .assets import ASSET_MODES, MODE_REGISTER
from .errors import ConfigurationError
from .resolver import DEFAULT_ENTRY, DEFAULT_EXTENSIONS

CONFIG_FILENAME = ".inlay.yaml"
ENV_ROOT = "INLAY_ROOT"
ENV_BASE_URL = "INLAY_BASE_URL"

EXECUTORS = ("subprocess", "inprocess")
FAULT_MODES = ("error", "partial")


@dataclass
class InlayConfig:
    """Complete inlay configuration."""

    root: Path | None = None  # Document root of the target application
    base_url: str = ""  # Origin the target's assets are served from
    entry: str = DEFAULT_ENTRY
    allowed_extensions: list[str] = field(
        default_factory=lambda: list(DEFAULT_EXTENSIONS)
    )
    asset_mode: str = MODE_REGISTER  # "register", "inline", "strip"
    sanitize: bool = True
    executor: str = "subprocess"  # "subprocess", "inprocess"
    timeout: float | None = None  # Seconds; subprocess executor only
    on_fault: str = "error"  # "error", "partial"
    css_prefix: str = "inlay"
    allowed_tags: dict[str, list[str]] | None = None  # Extra sanitizer tags
    config_path: Path | None = None  # Path where config was loaded from

    def validate(self) -> None:
        """Validate configuration.

        The root directory itself is checked on every request, so a root
        that disappears later still yields a clean rejection.

        Raises:
            ConfigurationError: If configuration is invalid.
        """
        if self.asset_mode not in ASSET_MODES:
            raise ConfigurationError(
                f"Invalid asset_mode: {self.asset_mode}. "
                f"Must be one of: {', '.join(ASSET_MODES)}"
            )
        if self.executor not in EXECUTORS:
            raise ConfigurationError(
                f"Invalid executor: {self.executor}. "
                f"Must be one of: {', '.join(EXECUTORS)}"
            )
        if self.on_fault not in FAULT_MODES:
            raise ConfigurationError(
                f"Invalid on_fault: {self.on_fault}. "
                f"Must be one of: {', '.join(FAULT_MODES)}"
            )
        if self.timeout is not None and self.timeout <= 0:
            raise ConfigurationError("timeout must be positive")
        if not self.css_prefix or not self.css_prefix.replace("-", "").isalnum():
            raise ConfigurationError(f"Invalid css_prefix: {self.css_prefix!r}")
        if self.base_url:
            validate_base_url(self.base_url)


def validate_base_url(base_url: str) -> str:
    """Check that a target origin is an absolute http(s) URL.

    Returns:
        The URL without trailing slashes.

    Raises:
        ConfigurationError: If the URL is not usable as an origin.
    """
    parts = urlsplit(base_url.strip())
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ConfigurationError(f"Invalid base_url: {base_url!r}")
    return base_url.strip().rstrip("/")


def find_config_file(start_path: Path | None = None) -> Path | None:
    """Find .inlay.yaml by traversing up from start_path.

    Args:
        start_path: Directory to start searching from. Defaults to cwd.

    Returns:
        Path to config file if found, None otherwise.
    """
    if start_path is None:
        start_path = Path.cwd()
    else:
        start_path = Path(start_path).resolve()

    if start_path.is_file():
        start_path = start_path.parent

    current = start_path
    while True:
        config_path = current / CONFIG_FILENAME
        if config_path.is_file():
            return config_path

        parent = current.parent
        if parent == current:
            return None
        current = parent


def load_config(
    config_path: Path | None = None,
    start_path: Path | None = None,
    root_override: str | Path | None = None,
    base_url_override: str | None = None,
) -> InlayConfig:
    """Load configuration from file, environment, and overrides.

    Priority (highest to lowest):
    1. Function arguments (root_override, base_url_override)
    2. Environment variables (INLAY_ROOT, INLAY_BASE_URL)
    3. Config file (.inlay.yaml)
    4. Defaults

    Args:
        config_path: Explicit path to config file. If None, searches.
        start_path: Directory to start config file search from.
        root_override: Override target root directory.
        base_url_override: Override target origin.

    Returns:
        Loaded and validated configuration.
    """
    config = InlayConfig()

    if config_path is not None:
        config_path = Path(config_path)
        if not config_path.is_file():
            raise ConfigurationError(f"Config file not found: {config_path}")
    else:
        config_path = find_config_file(start_path)

    if config_path is not None:
        config = _load_config_file(config_path)
        config.config_path = config_path

    env_root = os.environ.get(ENV_ROOT)
    if env_root:
        config.root = Path(env_root)

    env_base_url = os.environ.get(ENV_BASE_URL)
    if env_base_url:
        config.base_url = env_base_url

    if root_override is not None:
        config.root = Path(root_override)
    if base_url_override is not None:
        config.base_url = base_url_override

    config.validate()
    return config


def _load_config_file(config_path: Path) -> InlayConfig:
    """Load configuration from a YAML file.

    Args:
        config_path: Path to .inlay.yaml file.

    Returns:
        Configuration loaded from file.

    Raises:
        ConfigurationError: If file cannot be read or parsed.
    """
    try:
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read config file {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file must be a mapping: {config_path}")

    config = InlayConfig(config_path=config_path)

    # Relative roots are relative to the config file, not the cwd
    if data.get("root"):
        root = Path(str(data["root"]))
        if not root.is_absolute():
            root = config_path.parent / root
        config.root = root

    if "base_url" in data:
        config.base_url = str(data["base_url"] or "")
    if "entry" in data:
        config.entry = str(data["entry"])

    if "allowed_extensions" in data:
        extensions = data["allowed_extensions"] or []
        if not isinstance(extensions, list):
            raise ConfigurationError("'allowed_extensions' must be a list")
        config.allowed_extensions = [str(e) for e in extensions]

    if "asset_mode" in data:
        config.asset_mode = str(data["asset_mode"])
    if "sanitize" in data:
        config.sanitize = bool(data["sanitize"])
    if "executor" in data:
        config.executor = str(data["executor"])
    if data.get("timeout") is not None:
        try:
            config.timeout = float(data["timeout"])
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid timeout: {data['timeout']!r}") from e
    if "on_fault" in data:
        config.on_fault = str(data["on_fault"])
    if "css_prefix" in data:
        config.css_prefix = str(data["css_prefix"])

    if "allowed_tags" in data and isinstance(data["allowed_tags"], dict):
        config.allowed_tags = {
            str(tag): [str(a) for a in (attrs or [])]
            for tag, attrs in data["allowed_tags"].items()
        }

    return config


def create_default_config(path: Path | None = None) -> Path:
    """Create a default .inlay.yaml config file.

    Args:
        path: Directory to create config in. Defaults to cwd.

    Returns:
        Path to created config file.

    Raises:
        ConfigurationError: If file already exists or cannot be written.
    """
    if path is None:
        path = Path.cwd()
    else:
        path = Path(path)

    config_path = path / CONFIG_FILENAME

    if config_path.exists():
        raise ConfigurationError(f"Config file already exists: {config_path}")

    config_content = """# inlay configuration

# Document root of the target application (or use INLAY_ROOT env var).
# Relative paths are resolved against this file's directory.
root: "../target-app"

# Origin the target's stylesheets and scripts are served from
# (or use INLAY_BASE_URL env var)
base_url: "https://target.example"

# Entry file used when a request names no path
entry: "index.py"

# Only these file types may be embedded (empty list disables the check)
allowed_extensions:
  - ".py"

# What to do with <link rel=stylesheet>, <script> and <style> in the output:
#   register - move them into the page's asset registry (default)
#   inline   - keep them in place with rewritten URLs
#   strip    - remove them
asset_mode: "register"

# Apply the allow-list sanitizer to the embedded fragment
sanitize: true

# How to run the entry file: "subprocess" (default) or "inprocess"
executor: "subprocess"
# timeout: 10

# On a fault in the target: "error" (error box only) or "partial"
# (partial output followed by the error box)
on_fault: "error"

# CSS class prefix for the wrapper (<prefix>-inline / <prefix>-error)
css_prefix: "inlay"

# Extra tags/attributes for the sanitizer (uncomment to enable)
# allowed_tags:
#   form: ["action", "method"]
#   input: ["type", "name", "value"]
"""

    try:
        config_path.write_text(config_content)
    except OSError as e:
        raise ConfigurationError(f"Cannot write config file: {e}") from e

    return config_path


def config_to_dict(config: InlayConfig) -> dict[str, Any]:
    """Convert config to dictionary for display."""
    return {
        "root": str(config.root) if config.root else None,
        "base_url": config.base_url or None,
        "entry": config.entry,
        "allowed_extensions": list(config.allowed_extensions),
        "asset_mode": config.asset_mode,
        "sanitize": config.sanitize,
        "executor": config.executor,
        "timeout": config.timeout,
        "on_fault": config.on_fault,
        "css_prefix": config.css_prefix,
        "allowed_tags": config.allowed_tags,
        "config_path": str(config.config_path) if config.config_path else None,
    }
