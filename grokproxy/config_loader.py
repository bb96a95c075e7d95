"""YAML configuration for the gateway, with ``.env`` placeholder expansion.

Config file: ``configs/config_default.yaml`` unless ``GROKPROXY_CONFIG`` points
elsewhere. String values may reference ``${VAR}`` or ``$VAR``; a ``.env`` file
next to the config is consulted first, then the process environment.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml
from dotenv import dotenv_values

from .core.exceptions import ConfigurationError

logger = logging.getLogger("grokproxy")

DEFAULT_CONFIG_PATH = "configs/config_default.yaml"
CONFIG_ENV_VAR = "GROKPROXY_CONFIG"
HOST_ENV_VAR = "GROKPROXY_HOST"
PORT_ENV_VAR = "GROKPROXY_PORT"

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000

PROJECT_ROOT = Path(__file__).resolve().parent.parent

_PLACEHOLDER = re.compile(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)")


def config_path_from_env() -> str:
    return os.getenv(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH


def resolve_config_path(path: str) -> Path:
    """Absolute paths are kept; relative ones are taken from the project root."""
    candidate = Path(path)
    return candidate if candidate.is_absolute() else PROJECT_ROOT / candidate


def read_env_file(env_file: Path) -> dict[str, str]:
    """Values of a ``.env`` file; os.environ is left untouched."""
    if not env_file.exists():
        return {}
    logger.info(f"Loading environment variables from {env_file}")
    return {key: value for key, value in dotenv_values(env_file).items() if value is not None}


def config_section(config: Optional[Mapping[str, Any]], *keys: str) -> Mapping[str, Any]:
    """Walk nested sections, treating missing or null ones as empty."""
    section: Any = config or {}
    for key in keys:
        section = section.get(key) if isinstance(section, Mapping) else None
        if section is None:
            return {}
    return section if isinstance(section, Mapping) else {}


def load_config(
    path: Optional[str] = None,
    env_path: Optional[str] = None,
    substitute_env: bool = True,
) -> dict:
    """Read the gateway configuration.

    Args:
        path: Config file; defaults to ``$GROKPROXY_CONFIG`` or
              ``configs/config_default.yaml``.
        env_path: ``.env`` file to expand placeholders from; defaults to the
              ``.env`` beside the config file.
        substitute_env: Expand ``${VAR}`` / ``$VAR`` placeholders.

    Raises:
        ConfigurationError: The file is missing, is not valid YAML, or its
            top level is not a mapping.
    """
    config_path = resolve_config_path(path or config_path_from_env())
    logger.info(f"Reading gateway config {config_path}")

    if not config_path.is_file():
        logger.error(f"Config file not found: {config_path}")
        raise ConfigurationError(f"Config file not found: {config_path}")

    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {exc}") from exc

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config root must be a mapping: {config_path}")

    if substitute_env:
        env_file = resolve_config_path(env_path) if env_path else config_path.with_name(".env")
        data = expand_placeholders(data, read_env_file(env_file))

    logger.info(f"Gateway config ready ({', '.join(data) or 'empty'})")
    return data


def expand_placeholders(value: Any, env_values: Optional[Mapping[str, str]] = None) -> Any:
    """Replace ``${VAR}`` / ``$VAR`` in every string of a config tree.

    ``env_values`` wins over the process environment. Unknown variables keep
    their placeholder text and are reported once per occurrence.
    """
    env_values = env_values or {}

    if isinstance(value, dict):
        return {key: expand_placeholders(item, env_values) for key, item in value.items()}
    if isinstance(value, list):
        return [expand_placeholders(item, env_values) for item in value]
    if not isinstance(value, str):
        return value

    def lookup(match: "re.Match[str]") -> str:
        name = match.group(1) or match.group(2)
        resolved = env_values.get(name, os.getenv(name))
        if resolved is None:
            logger.warning(f"Config placeholder ${name} is not set; leaving it as-is")
            return match.group(0)
        return resolved

    return _PLACEHOLDER.sub(lookup, value)


def resolve_server_address(config: Mapping[str, Any]) -> tuple[str, int]:
    """Bind address: GROKPROXY_HOST / GROKPROXY_PORT win over the config file."""
    server = config_section(config, "proxy_settings", "server")
    host = os.getenv(HOST_ENV_VAR) or str(server.get("host", DEFAULT_HOST))

    for candidate in (os.getenv(PORT_ENV_VAR), server.get("port")):
        if candidate is None:
            continue
        try:
            return host, int(candidate)
        except (TypeError, ValueError):
            logger.warning(f"Ignoring invalid port value: {candidate!r}")
    return host, DEFAULT_PORT
