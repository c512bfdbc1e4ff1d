"""Configuration loader for the asset packager."""

import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from dotenv import load_dotenv
from loguru import logger

from assets_packager.models import ASSET_TYPES, PackageDefinition, PackagerSettings
from assets_packager.rewriter import AssetHosts

DEFAULT_CONFIG_PATH = "config/assets.yml"

BOOLEAN_OPTIONS = ("gzip", "noembed", "cache_boost", "minify")
INTEGER_OPTIONS = ("line_break", "indent_width", "max_embed_size")
STRING_OPTIONS = (
    "styles_path",
    "scripts_path",
    "styles_bundled",
    "scripts_bundled",
    "asset_hosts",
)
KNOWN_OPTIONS = BOOLEAN_OPTIONS + INTEGER_OPTIONS + STRING_OPTIONS + ("only",)


class ConfigurationError(Exception):
    """Raised when the root directory or the config file is missing or invalid."""
    pass


def load_config(config_path: Union[str, Path]) -> Dict[str, Any]:
    """Load the packages configuration from a YAML file.

    Args:
        config_path: Path to the YAML file, as given by the caller.

    Returns:
        Dictionary with the raw configuration, environment placeholders
        already substituted.
    """
    # Load environment variables first
    load_dotenv()

    path = Path(config_path)
    if not path.is_file():
        raise ConfigurationError(f'Config file "{config_path}" is missing')

    with open(path, "r", encoding="utf-8") as f:
        try:
            config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f'Config file "{config_path}" is not valid YAML: {e}') from e

    if config is None:
        config = {}
    if not isinstance(config, dict):
        raise ConfigurationError(f'Config file "{config_path}" must contain a mapping at the top level')

    return _substitute_env_vars(config)


def _substitute_env_vars(obj: Any) -> Any:
    """Recursively substitute environment variables in config.

    Supports syntax: ${VAR_NAME} or ${VAR_NAME:default_value}
    """
    if isinstance(obj, dict):
        return {k: _substitute_env_vars(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_substitute_env_vars(item) for item in obj]
    elif isinstance(obj, str):
        return _substitute_env_string(obj)
    else:
        return obj


def _substitute_env_string(value: str) -> str:
    """Substitute environment variables in a string."""
    pattern = r'\$\{([^}]+)\}'

    def replace(match):
        var_expr = match.group(1)
        if ':' in var_expr:
            var_name, default = var_expr.split(':', 1)
            return os.getenv(var_name, default)
        else:
            return os.getenv(var_expr, match.group(0))

    return re.sub(pattern, replace, value)


def parse_packages(config: Dict[str, Any]) -> List[PackageDefinition]:
    """Build package definitions, keeping the declaration order of the file."""
    for key in config:
        if key not in ASSET_TYPES and key != "options":
            logger.warning(f'Ignoring unknown section "{key}" in config')

    packages: List[PackageDefinition] = []
    for asset_type in ASSET_TYPES:
        section = config.get(asset_type) or {}
        if not isinstance(section, dict):
            raise ConfigurationError(f'Section "{asset_type}" must map package names to file lists')

        for name, members in section.items():
            name = str(name).strip("/")
            if not name:
                raise ConfigurationError(f'Section "{asset_type}" declares a package without a name')
            if isinstance(members, str):
                members = [members]
            if not isinstance(members, list) or not members:
                raise ConfigurationError(f'Package "{asset_type}/{name}" must list at least one file')
            if not all(isinstance(m, str) and m.strip() for m in members):
                raise ConfigurationError(f'Package "{asset_type}/{name}" contains an invalid member entry')
            packages.append(
                PackageDefinition(
                    name=name,
                    asset_type=asset_type,
                    members=tuple(m.strip() for m in members),
                )
            )
    return packages


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _as_int(name: str, value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f'Option "{name}" must be an integer, got {value!r}') from e


def _as_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = value.split(",")
    return [str(v).strip() for v in value if str(v).strip()]


def build_settings(
    config: Dict[str, Any],
    root_dir: Union[str, Path],
    config_path: Union[str, Path],
    overrides: Optional[Dict[str, Any]] = None,
) -> PackagerSettings:
    """Merge the config ``options`` section with caller overrides.

    Overrides win over file options; ``None`` values in ``overrides`` mean
    "not given" and leave the file option in place.
    """
    options = config.get("options") or {}
    if not isinstance(options, dict):
        raise ConfigurationError('Section "options" must be a mapping')

    unknown = sorted(set(options) - set(KNOWN_OPTIONS))
    if unknown:
        raise ConfigurationError(f"Unknown option(s) in config: {', '.join(unknown)}")

    merged = dict(options)
    for key, value in (overrides or {}).items():
        if value is not None:
            merged[key] = value

    root = Path(root_dir)
    if not root.is_dir():
        raise ConfigurationError(f'Root directory "{root_dir}" could not be found')

    kwargs: Dict[str, Any] = {}
    for key in BOOLEAN_OPTIONS:
        if key in merged:
            kwargs[key] = _as_bool(merged[key])
    for key in INTEGER_OPTIONS:
        if key in merged:
            number = _as_int(key, merged[key])
            if number is not None:
                kwargs[key] = number
    for key in STRING_OPTIONS:
        if merged.get(key):
            kwargs[key] = str(merged[key])

    if kwargs.get("asset_hosts"):
        try:
            AssetHosts.parse(kwargs["asset_hosts"])
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

    line_break = kwargs.get("line_break")
    if line_break is not None and line_break <= 0:
        kwargs.pop("line_break")
    if kwargs.get("indent_width", 4) < 0:
        raise ConfigurationError('Option "indent_width" cannot be negative')

    return PackagerSettings(
        root_dir=root.resolve(),
        config_path=Path(config_path).resolve(),
        only=_as_list(merged.get("only")),
        **kwargs,
    )
