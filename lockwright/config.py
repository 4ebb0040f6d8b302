"""Project manifest loading and validation."""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from lockwright.errors import EXIT_CONFIG, LockwrightError
from lockwright.jsonish import strip_jsonish
from lockwright.versions import Stability


class ConfigError(LockwrightError):
    """Raised when the manifest cannot be read, parsed or validated.

    Syntax errors carry the line number, column and a caret under the
    offending character.
    """

    exit_code = EXIT_CONFIG


_LINK_FIELDS = {
    "require": "require",
    "require-dev": "require_dev",
    "conflict": "conflict",
    "replace": "replace",
    "provide": "provide",
}

_KNOWN_FIELDS = {
    "name",
    "description",
    "type",
    "minimum-stability",
    "prefer-stable",
    "repositories",
    "config",
    "extra",
    *_LINK_FIELDS,
}


@dataclass
class Manifest:
    """The project's declared requirements, repositories and settings."""

    name: str = "__root__"
    require: dict[str, str] = field(default_factory=dict)
    require_dev: dict[str, str] = field(default_factory=dict)
    conflict: dict[str, str] = field(default_factory=dict)
    replace: dict[str, str] = field(default_factory=dict)
    provide: dict[str, str] = field(default_factory=dict)
    minimum_stability: str = "stable"
    prefer_stable: bool = False
    repositories: list[dict[str, Any]] = field(default_factory=list)
    platform: dict[str, str] = field(default_factory=dict)
    vendor_dir: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)
    base_dir: Path = field(default_factory=Path.cwd, compare=False)


def _validate_links(data: dict, key: str) -> dict[str, str]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"{key} must be an object, got {type(value).__name__}")
    for name, constraint in value.items():
        if not isinstance(constraint, str):
            raise ConfigError(
                f"{key}.{name} must be a string, got {type(constraint).__name__}"
            )
    return dict(value)


def _validate_repositories(value: Any) -> list[dict[str, Any]]:
    if value is None:
        return []
    # {"name": {...}} form keeps declaration order
    if isinstance(value, dict):
        value = list(value.values())
    if not isinstance(value, list):
        raise ConfigError(
            f"repositories must be a list, got {type(value).__name__}"
        )

    repositories = []
    for i, repo in enumerate(value):
        # {"packagist": false} disables the default repository; there is none here
        if isinstance(repo, dict) and len(repo) == 1 and False in repo.values():
            continue
        if not isinstance(repo, dict):
            raise ConfigError(
                f"repositories[{i}] must be an object, got {type(repo).__name__}"
            )
        repo_type = repo.get("type")
        if not isinstance(repo_type, str) or not repo_type:
            raise ConfigError(f"repositories[{i}].type is required")
        repositories.append(repo)
    return repositories


def validate_manifest(data: Any, base_dir: Path | None = None) -> Manifest:
    """Validate and convert a raw manifest dict to a Manifest.

    Args:
        data: Parsed manifest document
        base_dir: Directory relative repository paths resolve against

    Returns:
        Manifest with validated fields

    Raises:
        ConfigError: If validation fails, naming the offending field path
    """
    if not isinstance(data, dict):
        raise ConfigError(f"Manifest must be an object, got {type(data).__name__}")

    name = data.get("name", "__root__")
    if not isinstance(name, str) or not name:
        raise ConfigError("name must be a non-empty string")

    minimum_stability = data.get("minimum-stability", "stable")
    if not isinstance(minimum_stability, str):
        raise ConfigError("minimum-stability must be a string")
    try:
        Stability.from_name(minimum_stability)
    except ValueError as e:
        raise ConfigError(f"minimum-stability: {e}") from e

    prefer_stable = data.get("prefer-stable", False)
    if not isinstance(prefer_stable, bool):
        raise ConfigError(
            f"prefer-stable must be a boolean, got {type(prefer_stable).__name__}"
        )

    config = data.get("config") or {}
    if not isinstance(config, dict):
        raise ConfigError(f"config must be an object, got {type(config).__name__}")
    platform = config.get("platform") or {}
    if not isinstance(platform, dict):
        raise ConfigError("config.platform must be an object")
    for pkg, version in platform.items():
        if not isinstance(version, (str, bool)):
            raise ConfigError(f"config.platform.{pkg} must be a string or false")
    vendor_dir = config.get("vendor-dir")
    if vendor_dir is not None and not isinstance(vendor_dir, str):
        raise ConfigError("config.vendor-dir must be a string")

    extra = data.get("extra") or {}
    if not isinstance(extra, dict):
        raise ConfigError(f"extra must be an object, got {type(extra).__name__}")

    links = {attr: _validate_links(data, key) for key, attr in _LINK_FIELDS.items()}

    return Manifest(
        name=name,
        minimum_stability=minimum_stability.lower(),
        prefer_stable=prefer_stable,
        repositories=_validate_repositories(data.get("repositories")),
        platform={k.lower(): v for k, v in platform.items()},
        vendor_dir=vendor_dir,
        extra=extra,
        base_dir=base_dir or Path.cwd(),
        **links,
    )


def _format_syntax_error(original_text: str, error: json.JSONDecodeError) -> str:
    lines = original_text.split("\n")
    parts = [f"Manifest syntax error at line {error.lineno}, col {error.colno}: {error.msg}"]
    if 1 <= error.lineno <= len(lines):
        parts.append(lines[error.lineno - 1])
        parts.append(" " * (error.colno - 1) + "^")
    return "\n".join(parts)


def parse_manifest_text(text: str, fmt: str = "json") -> dict:
    """Parse manifest text as JSON-ish (``fmt="json"``) or YAML.

    Raises:
        ConfigError: On syntax errors or a non-object document
    """
    if fmt == "yaml":
        try:
            result = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigError(f"Manifest is not valid YAML: {e}") from e
    else:
        try:
            result = json.loads(strip_jsonish(text))
        except json.JSONDecodeError as e:
            raise ConfigError(_format_syntax_error(text, e)) from e

    if result is None:
        result = {}
    if not isinstance(result, dict):
        raise ConfigError(f"Manifest must be an object, got {type(result).__name__}")
    return result


def load_manifest(path: Path) -> Manifest:
    """Read, parse and validate the manifest at ``path``.

    ``.yaml``/``.yml`` files are read with PyYAML, anything else as JSON-ish.

    Raises:
        ConfigError: If the file cannot be read, parsed or validated
    """
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ConfigError(f"Manifest not found: {path}") from None
    except PermissionError:
        raise ConfigError(f"Permission denied reading manifest: {path}") from None
    except UnicodeDecodeError:
        raise ConfigError(f"Manifest is not valid UTF-8: {path}") from None
    except OSError as e:
        raise ConfigError(f"Error reading manifest {path}: {e}") from e

    fmt = "yaml" if path.suffix.lower() in (".yaml", ".yml") else "json"
    return validate_manifest(parse_manifest_text(text, fmt), base_dir=path.parent)


__all__ = [
    "ConfigError",
    "Manifest",
    "load_manifest",
    "parse_manifest_text",
    "validate_manifest",
]
