"""Configuration loading from env files with process environment support."""

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

import httpx
import yaml
from dotenv import dotenv_values, find_dotenv

from .core.exceptions import ConfigurationError

logger = logging.getLogger("anthropic-proxy")

DEFAULT_PORT = 3000

# Config files searched when no override path is given (first match wins)
HOME_CONFIG_NAME = ".anthropic-proxy.env"
SYSTEM_CONFIG_PATH = Path("/etc/anthropic-proxy/.env")

# Recognised keys
PORT = "PORT"
UPSTREAM_BASE_URL = "UPSTREAM_BASE_URL"
ANTHROPIC_PROXY_BASE_URL = "ANTHROPIC_PROXY_BASE_URL"
UPSTREAM_API_KEY = "UPSTREAM_API_KEY"
OPENROUTER_API_KEY = "OPENROUTER_API_KEY"
REASONING_MODEL = "REASONING_MODEL"
COMPLETION_MODEL = "COMPLETION_MODEL"
DEBUG = "DEBUG"
VERBOSE = "VERBOSE"

YAML_SUFFIXES = {".yaml", ".yml"}


@dataclass(frozen=True)
class ProxyConfig:
    """Resolved, read-only proxy settings shared by every request."""

    base_url: str
    port: int = DEFAULT_PORT
    api_key: Optional[str] = None
    reasoning_model: Optional[str] = None
    completion_model: Optional[str] = None
    debug: bool = False
    verbose: bool = False

    @property
    def chat_completions_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/v1/chat/completions"


def candidate_config_paths(custom_path: str | Path | None = None) -> list[Path]:
    """Return config files to try, in precedence order."""
    paths: list[Path] = []
    if custom_path:
        paths.append(Path(custom_path))
    local = find_dotenv(usecwd=True)
    if local:
        paths.append(Path(local))
    paths.append(Path.home() / HOME_CONFIG_NAME)
    paths.append(SYSTEM_CONFIG_PATH)
    return paths


def load_config_file(
    path: Path, environ: Mapping[str, str] | None = None
) -> dict[str, str]:
    """Read key/value pairs from an env file or a YAML mapping.

    Values are returned as strings and never written to ``os.environ``.
    YAML values may reference environment variables as ``${VAR}`` or ``$VAR``.
    """
    if path.suffix.lower() in YAML_SUFFIXES:
        with path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
        if not isinstance(data, Mapping):
            raise ConfigurationError(f"Config file {path} must contain a mapping")
        values: dict[str, str] = {}
        for key, value in data.items():
            if value is None:
                continue
            if isinstance(value, bool):
                value = "true" if value else "false"
            values[str(key).upper()] = _substitute_env_vars(str(value), environ)
        return values

    raw_values = dotenv_values(path)
    return {key: value for key, value in raw_values.items() if value is not None}


def _find_config_file(
    custom_path: str | Path | None, environ: Mapping[str, str]
) -> tuple[Optional[Path], dict[str, str]]:
    for candidate in candidate_config_paths(custom_path):
        if not candidate.is_file():
            if custom_path and candidate == Path(custom_path):
                logger.warning(f"Custom config file not found: {candidate}")
            continue
        return candidate, load_config_file(candidate, environ)
    return None, {}


def _env_bool(value: Optional[str]) -> bool:
    """Parse a boolean flag (true, 1, yes => True)."""
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes"}


def _parse_port(value: Optional[str]) -> int:
    if not value:
        return DEFAULT_PORT
    try:
        port = int(value)
    except ValueError:
        logger.warning(f"Invalid {PORT} value '{value}', using {DEFAULT_PORT}")
        return DEFAULT_PORT
    if not 0 < port < 65536:
        logger.warning(f"{PORT} {port} out of range, using {DEFAULT_PORT}")
        return DEFAULT_PORT
    return port


def normalize_base_url(raw: str) -> str:
    """Trim, strip trailing slashes and validate the upstream base URL."""
    base_url = raw.strip().rstrip("/")
    try:
        url = httpx.URL(base_url)
    except httpx.InvalidURL as exc:
        raise ConfigurationError(f"{UPSTREAM_BASE_URL} must be a valid URL: {exc}") from exc
    if url.scheme not in ("http", "https") or not url.host:
        raise ConfigurationError(
            f"{UPSTREAM_BASE_URL} must be a valid http(s) URL, got '{raw}'"
        )

    if base_url.endswith("/v1"):
        logger.warning(
            f"{UPSTREAM_BASE_URL} ends with '/v1'. The proxy adds /v1/chat/completions "
            f"itself. Prefer e.g. https://openrouter.ai/api (without /v1)."
        )
    return base_url


def load_config(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> ProxyConfig:
    """Load proxy configuration.

    Args:
        path: Optional override config file (``.env`` style or YAML). When it
            does not exist a warning is logged and the default locations are
            searched: a local ``.env``, ``~/.anthropic-proxy.env`` and
            ``/etc/anthropic-proxy/.env``.
        environ: Process environment to read from. Defaults to ``os.environ``.
            Its values take precedence over values from the config file.

    Returns:
        The resolved configuration.

    Raises:
        ConfigurationError: If the upstream base URL is missing or invalid.
    """
    environ = os.environ if environ is None else environ
    config_path, file_values = _find_config_file(path, environ)
    if config_path:
        logger.info(f"Loaded config from: {config_path}")
    else:
        logger.info("No .env file found, using environment variables only")

    def lookup(*keys: str) -> Optional[str]:
        for key in keys:
            value = environ.get(key)
            if value is None:
                value = file_values.get(key)
            if value is not None and value.strip():
                return value.strip()
        return None

    raw_base_url = lookup(UPSTREAM_BASE_URL, ANTHROPIC_PROXY_BASE_URL)
    if raw_base_url is None:
        raise ConfigurationError(
            f"{UPSTREAM_BASE_URL} is required. Set it to your OpenAI-compatible endpoint "
            f"(e.g. https://openrouter.ai/api, https://api.openai.com, http://localhost:11434)"
        )

    return ProxyConfig(
        base_url=normalize_base_url(raw_base_url),
        port=_parse_port(lookup(PORT)),
        api_key=lookup(UPSTREAM_API_KEY, OPENROUTER_API_KEY),
        reasoning_model=lookup(REASONING_MODEL),
        completion_model=lookup(COMPLETION_MODEL),
        debug=_env_bool(lookup(DEBUG)),
        verbose=_env_bool(lookup(VERBOSE)),
    )


def _substitute_env_vars(
    obj: Any, env_values: Mapping[str, str] | None = None
) -> Any:
    """Recursively substitute environment variables in configuration values.

    Supports two formats:
    - ${VAR_NAME}: Braced format
    - $VAR_NAME: Simple format

    Unset variables leave the placeholder in place and log a warning.
    """
    env_values = os.environ if env_values is None else env_values

    if isinstance(obj, dict):
        return {k: _substitute_env_vars(v, env_values) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_substitute_env_vars(item, env_values) for item in obj]
    if isinstance(obj, str):
        pattern = re.compile(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)")

        def replace_var(match):
            var_name = match.group(1) or match.group(2)
            value = env_values.get(var_name)
            if value is None:
                logger.warning(
                    f"CONFIG ERROR: Environment variable '${var_name}' is not set! "
                    f"The literal placeholder will be used."
                )
                return match.group(0)
            return value

        return pattern.sub(replace_var, obj)
    return obj
