"""Command-line interface for inlay."""

import logging
from pathlib import Path

import click
import yaml

from . import __version__
from .assets import PageAssets
from .config import (
    CONFIG_FILENAME,
    config_to_dict,
    create_default_config,
    find_config_file,
    load_config,
)
from .embed import Embedder
from .errors import InlayError
from .resolver import EmbedRequest


def _config_options(f):
    """Shared options for commands that need a loaded configuration."""
    f = click.option(
        "-c",
        "--config",
        "config_path",
        type=click.Path(exists=True),
        help="Config file path",
    )(f)
    f = click.option("--base-url", help="Target origin (overrides config/env)")(f)
    f = click.option(
        "--root",
        type=click.Path(),
        help="Target document root (overrides config/env)",
    )(f)
    return f


def _load(config_path, root, base_url):
    try:
        return load_config(
            config_path=Path(config_path) if config_path else None,
            root_override=root,
            base_url_override=base_url,
        )
    except InlayError as e:
        raise click.ClickException(str(e))


@click.group()
@click.version_option(version=__version__, prog_name="inlay")
@click.option("-v", "--verbose", count=True, help="Log to stderr (-vv for debug)")
def main(verbose):
    """Embed pages of a sibling web application into a host page.

    inlay resolves a short path under the target application's root,
    refuses anything outside it, runs the entry file in isolation, moves
    its stylesheets and scripts to the target origin, and sanitizes the
    markup before it is merged into the host page.

    \b
    Quick start:
      inlay config init                    # Create .inlay.yaml
      inlay resolve news/index.py          # Check what a path maps to
      inlay render news/index.py           # Print the embeddable fragment
      inlay render news/index.py --page    # Print a full page with assets
    """
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG if verbose > 1 else logging.INFO,
            format="%(levelname)s %(name)s: %(message)s",
        )


@main.command()
@click.argument("path", required=False, default="")
@click.option("--fullpath", default="", help="Explicit file path (must stay in root)")
@_config_options
@click.option("--http", "insecure", is_flag=True, help="Host page is served over http")
@click.option("--page", is_flag=True, help="Wrap output in a full HTML page")
@click.option(
    "-o",
    "--output",
    "output_path",
    type=click.Path(dir_okay=False),
    help="Write output to file instead of stdout",
)
def render(path, fullpath, config_path, root, base_url, insecure, page, output_path):
    """Render a target file as an embeddable HTML fragment.

    PATH is relative to the target root and defaults to the configured
    entry file. Rejections are printed as an error box, like they would
    appear on the host page.

    \b
    Examples:
      inlay render
      inlay render results/2024.py --base-url https://target.example
      inlay render --fullpath /srv/target/index.py --page -o preview.html
    """
    cfg = _load(config_path, root, base_url)
    registry = PageAssets()
    embedder = Embedder(cfg, registry=registry)

    html = embedder.embed(path, fullpath, secure=not insecure)
    if page:
        html = registry.render_page(html, title=path or cfg.entry)

    if output_path:
        try:
            Path(output_path).write_text(html, encoding="utf-8")
        except OSError as e:
            raise click.ClickException(f"Cannot write {output_path}: {e}")
        click.echo(f"Wrote: {output_path}")
    else:
        click.echo(html)


@main.command()
@click.argument("path", required=False, default="")
@click.option("--fullpath", default="", help="Explicit file path (must stay in root)")
@_config_options
def resolve(path, fullpath, config_path, root, base_url):
    """Show which file a request resolves to, without running it.

    \b
    Examples:
      inlay resolve news/index.py
      inlay resolve ../../etc/passwd   # rejected
    """
    cfg = _load(config_path, root, base_url)
    embedder = Embedder(cfg)
    request = EmbedRequest(path=path or cfg.entry, fullpath=fullpath)

    try:
        target = embedder.resolve(request)
    except InlayError as e:
        raise click.ClickException(e.user_message)

    click.echo(f"Target: {target.path}")
    click.echo(f"Root:   {target.root}")


@main.group()
def config():
    """Manage inlay configuration."""
    pass


@config.command("init")
@click.option(
    "-d",
    "--directory",
    type=click.Path(),
    default=".",
    help="Directory to create config in",
)
def config_init(directory):
    """Create a new .inlay.yaml configuration file."""
    try:
        config_path = create_default_config(Path(directory))
        click.echo(f"Created: {config_path}")
        click.echo("\nNext steps:")
        click.echo("  1. Set root and base_url in .inlay.yaml")
        click.echo("  2. Run: inlay resolve")
        click.echo("  3. Run: inlay render --page -o preview.html")
    except InlayError as e:
        raise click.ClickException(str(e))


@config.command("show")
@click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(exists=True),
    help="Config file path",
)
def config_show(config_path):
    """Display current configuration.

    Shows merged configuration from file, environment, and defaults.
    """
    try:
        cfg = load_config(config_path=Path(config_path) if config_path else None)
        data = config_to_dict(cfg)
        click.echo(yaml.dump(data, default_flow_style=False, sort_keys=False))
    except InlayError as e:
        raise click.ClickException(str(e))


@config.command("where")
@click.option(
    "-d",
    "--directory",
    type=click.Path(exists=True),
    help="Directory to search from",
)
def config_where(directory):
    """Show which config file would be used.

    Searches up the directory tree for .inlay.yaml.
    """
    start = Path(directory) if directory else Path.cwd()
    config_path = find_config_file(start)

    if config_path:
        click.echo(f"Config file: {config_path}")
    else:
        click.echo(f"No {CONFIG_FILENAME} found (searched from {start})")


if __name__ == "__main__":
    main()
