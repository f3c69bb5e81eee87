"""
Static configuration for the live-reload development server.

The configuration is built once from the environment when the application
module is imported and is immutable afterwards.
"""

from dataclasses import dataclass, field

from devserver.utils.utils import get_env_var, resolve_port


# Extensions never worth reloading the browser for
EXCLUDED_EXTENSIONS = (
    "7z",
    "com",
    "class",
    "db",
    "dll",
    "dmg",
    "exe",
    "gitignore",
    "gz",
    "iso",
    "jar",
    "o",
    "log",
    "so",
    "sql",
    "sqlite",
    "tar",
    "zip",
)

DEFAULT_FILES: tuple[str, ...] = (
    "**",
    "!*.{" + ",".join(EXCLUDED_EXTENSIONS) + "}",
    "!node_modules",
)


@dataclass(frozen=True)
class WatchOptions:
    """Options applied to the top-level ``files`` watcher."""

    ignore_initial: bool = True


@dataclass(frozen=True)
class ServerConfig:
    """Configuration consumed by the live-reload service."""

    server: str = "."
    files: tuple[str, ...] = DEFAULT_FILES
    watch_options: WatchOptions = field(default_factory=WatchOptions)
    port: int = 3000
    open: bool = False
    notify: bool = False
    tunnel: bool = False
    minify: bool = False

    def to_dict(self) -> dict[str, object]:
        """Convert to a plain dictionary for the status endpoint."""
        return {
            "server": self.server,
            "files": list(self.files),
            "watchOptions": {"ignoreInitial": self.watch_options.ignore_initial},
            "port": self.port,
            "open": self.open,
            "notify": self.notify,
            "tunnel": self.tunnel,
            "minify": self.minify,
        }


def build_config() -> ServerConfig:
    """Build the server configuration from the current environment."""
    return ServerConfig(
        port=resolve_port(),
        open=get_env_var("BS_OPEN", False),
        notify=get_env_var("BS_NOTIFY", False),
        tunnel=get_env_var("BS_TUNNEL", False),
        minify=get_env_var("BS_MINIFY", False),
    )
