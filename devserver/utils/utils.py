"""Utility functions for the development server."""

import logging
import os
from typing import Any


FALSE_VALUES = ("", "0", "false", "off")
DEFAULT_PORT = 3000


def is_enabled(value: str | None = "") -> bool:
    """
    Interpret a toggle string.

    The empty string and exactly "0", "false" and "off" are false; every other
    value is true. Matching is case-sensitive.

    Args:
        value: Raw toggle string

    Returns:
        Boolean value
    """
    value = value or ""
    return value not in FALSE_VALUES


def get_env_var(name: str, default: Any) -> Any:
    """
    Resolve a toggle from the presence of an environment variable.

    When the variable exists the toggle is computed from its *name*, not its
    value, so any present variable is enabled (``BS_OPEN=false`` still opens the
    browser). Use ``parse_boolean_env`` to read a toggle by value.

    Args:
        name: Environment variable name
        default: Returned unchanged when the variable is not set

    Returns:
        Toggle value or default
    """
    return is_enabled(name) if name in os.environ else default


def parse_boolean_env(env_var: str, default: str = "false") -> bool:
    """
    Parse a boolean environment variable by value.

    Args:
        env_var: Environment variable name
        default: Default value if env var is not set

    Returns:
        Boolean value
    """
    value = os.getenv(env_var, default).lower()
    return value in ("true", "1", "yes", "on")


def resolve_port(default: int = DEFAULT_PORT) -> int:
    """
    Resolve the server port: first non-empty of BS_PORT and PORT.

    Raises:
        ValueError: If the chosen value is not an integer
    """
    raw_port = os.getenv("BS_PORT") or os.getenv("PORT")
    if not raw_port:
        return default

    try:
        return int(raw_port)
    except ValueError as e:
        raise ValueError(f"Invalid port value {raw_port!r}: must be an integer") from e


def get_environment_config() -> dict[str, Any]:
    """
    Get runtime settings that are not part of the static server configuration.

    Returns:
        Dictionary of configuration values
    """
    settle = os.getenv("BUILD_SETTLE", "exit").lower()
    if settle not in ("exit", "first"):
        logging.getLogger(__name__).warning(f"Unknown BUILD_SETTLE value {settle!r}, using 'exit'")
        settle = "exit"

    raw_timeout = os.getenv("BUILD_TIMEOUT", "0") or "0"
    try:
        timeout = float(raw_timeout)
    except ValueError as e:
        raise ValueError(f"Invalid BUILD_TIMEOUT value {raw_timeout!r}: must be a number of seconds") from e

    return {
        "dev_mode": os.getenv("NODE_ENV") == "development",
        "build_settle": settle,
        "build_timeout": timeout if timeout > 0 else None,
        "build_silent": parse_boolean_env("BUILD_SILENT"),
    }


def get_server_config() -> dict[str, Any]:
    """
    Get server configuration values for uvicorn.

    Returns:
        Dictionary of server configuration values
    """
    return {
        "host": os.getenv("HOST", "127.0.0.1"),
        "log_level": os.getenv("LOG_LEVEL", "info").lower(),
    }


def print_startup_info(config: Any, env_config: dict[str, Any], server_config: dict[str, Any]) -> None:
    """Print a startup banner describing the effective configuration."""
    print("=" * 60)
    print("🔄 Live-reload development server")
    print("=" * 60)
    print(f"📂 Serving:      {os.path.abspath(config.server)}")
    print(f"🌐 Address:      http://{server_config['host']}:{config.port}")
    print(f"👀 Dev watchers: {'enabled' if env_config['dev_mode'] else 'disabled (NODE_ENV != development)'}")
    print(f"🔨 Build settle: {env_config['build_settle']}")
    if env_config["build_timeout"]:
        print(f"⏱️  Build timeout: {env_config['build_timeout']}s")
    print(
        f"⚙️  Toggles:      open={config.open} notify={config.notify} "
        f"tunnel={config.tunnel} minify={config.minify}"
    )
    print("=" * 60)
