"""Command-line interface for the asset packager."""

import sys
from pathlib import Path
from typing import Optional

import click
from click.core import ParameterSource
from loguru import logger

from assets_packager import __version__
from assets_packager.config_loader import DEFAULT_CONFIG_PATH, ConfigurationError
from assets_packager.pipeline import run_packager

# CLI parameter name -> settings option name
OVERRIDE_OPTIONS = {
    "gzip": "gzip",
    "noembed": "noembed",
    "cacheboost": "cache_boost",
    "only": "only",
    "asset_hosts": "asset_hosts",
    "line_break": "line_break",
    "indent": "indent_width",
    "styles_path": "styles_path",
    "js_path": "scripts_path",
    "styles_bundled": "styles_bundled",
    "js_bundled": "scripts_bundled",
}


def setup_logging(verbose: bool = False, log_file: Optional[str] = None):
    """Setup logging configuration."""
    level = "DEBUG" if verbose else "INFO"

    logger.remove()
    logger.add(
        sys.stdout,
        level=level,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan> | {message}",
    )
    if log_file:
        # Ensure log directory exists
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            level=level,
            rotation="1 week",
            retention="1 month",
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name} | {message}",
        )


def collect_overrides(ctx: click.Context) -> dict:
    """Options given on the command line; everything else falls back to the config file."""
    overrides = {}
    for param_name, option in OVERRIDE_OPTIONS.items():
        if ctx.get_parameter_source(param_name) != ParameterSource.DEFAULT:
            overrides[option] = ctx.params[param_name]
    if ctx.get_parameter_source("no_minify") != ParameterSource.DEFAULT:
        overrides["minify"] = not ctx.params["no_minify"]
    return overrides


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--root", "-r", default=".", show_default=True, help="Root directory of the public assets")
@click.option("--config", "-c", default=DEFAULT_CONFIG_PATH, show_default=True, help="Path to the packages YAML file")
@click.option("--gzip", "-g", is_flag=True, help="Also write gzipped packages")
@click.option("--noembed", "-n", is_flag=True, help="Also write stylesheets without embedded assets")
@click.option("--cacheboost", "-b", is_flag=True, help="Add content hashes to package and asset file names")
@click.option("--only", "-o", default=None, help="Comma separated packages to build, e.g. all.css,*.js")
@click.option("--asset-hosts", "-a", default=None, help="Asset hosts pattern, e.g. assets[0,1].example.com")
@click.option("--line-break", "-l", type=click.IntRange(min=1), default=None, help="Break script lines after this many columns")
@click.option("--nm", "--no-minify", "no_minify", is_flag=True, help="Keep scripts readable instead of minifying them")
@click.option("--indent", "-i", type=click.IntRange(min=0), default=4, show_default=True, help="Indent width for unminified scripts")
@click.option("--ps", "--styles-path", "styles_path", default=None, help="Stylesheets directory, relative to root")
@click.option("--pj", "--js-path", "js_path", default=None, help="Scripts directory, relative to root")
@click.option("--styles-bundled", default=None, help="Bundled stylesheets directory, relative to root")
@click.option("--js-bundled", default=None, help="Bundled scripts directory, relative to root")
@click.option("--log-file", type=click.Path(dir_okay=False), default=None, help="Also log to this file")
@click.option("--verbose", is_flag=True, help="Enable verbose output")
@click.version_option(__version__, "-v", "--version", prog_name="assetspkg")
@click.pass_context
def cli(ctx, root: str, config: str, verbose: bool, log_file: Optional[str], **_options):
    """Bundle stylesheet and script packages declared in a YAML file."""
    overrides = collect_overrides(ctx)

    try:
        setup_logging(verbose, log_file)
        result = run_packager(config_path=config, root_dir=root, overrides=overrides)
    except ConfigurationError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except Exception as e:
        logger.exception("Packaging failed")
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if result["failed"]:
        for package in result["packages"]:
            if package["status"] == "failed":
                click.echo(f"Failed {package['key']}: {package['error']}", err=True)
        click.echo(f"{result['failed']} package(s) failed, {result['succeeded']} packaged", err=True)
        sys.exit(1)

    logger.info(f"Packaged {result['succeeded']} package(s)")


if __name__ == "__main__":
    cli()
