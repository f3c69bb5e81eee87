"""
Live-reload Development Server

FastAPI application that serves the working tree, injects the live-reload
client into HTML pages, and pushes reloads to browsers when files change.
In development mode it also rebuilds specification sources with ``make``.
"""

import asyncio
import logging
import os
import webbrowser
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, Response, WebSocket, WebSocketDisconnect
from fastapi.responses import FileResponse, HTMLResponse, RedirectResponse

from devserver.builders.make import SettlePolicy
from devserver.config import ServerConfig, build_config
from devserver.processors.html import CLIENT_SCRIPT_PATH, SOCKET_PATH, inject_client, render_client_script
from devserver.services.live_reload import LiveReloadService
from devserver.utils.utils import get_environment_config, get_server_config, print_startup_info
from devserver.watchers.coordinator import WatchCoordinator, make_builder
from devserver.websocket.websocket_manager import ReloadManager

# Load environment variables from .env file
load_dotenv()

# Configure logging with environment variable support
log_level = os.getenv("LOG_LEVEL", "info").upper()
logging.basicConfig(level=getattr(logging, log_level, logging.INFO))
logger = logging.getLogger(__name__)

APP_TITLE = "Live-reload Development Server"
APP_VERSION = "1.0.0"

NO_CACHE_HEADERS = {"Cache-Control": "no-cache, no-store, must-revalidate"}
BROWSER_OPEN_DELAY = 1.0

# Built once at import; immutable afterwards
config: ServerConfig = build_config()
env_config: dict[str, Any] = get_environment_config()

reload_manager = ReloadManager()

# Created by the lifespan handler
live_reload: LiveReloadService | None = None
coordinator: WatchCoordinator | None = None


def resolve_request_path(request_path: str, root: Path) -> Path | None:
    """
    Resolve a request path to a file or directory inside the root.

    Returns:
        The resolved path, or None when it escapes the root or does not exist
    """
    root = root.resolve()
    candidate = (root / request_path.lstrip("/")).resolve()

    try:
        candidate.relative_to(root)
    except ValueError:
        logger.warning(f"Rejected path outside the served root: {request_path!r}")
        return None

    return candidate if candidate.exists() else None


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Start the watchers on startup and stop them on shutdown."""
    global live_reload, coordinator
    cleanup_task = None

    logger.info(f"Starting {APP_TITLE} v{APP_VERSION}")
    logger.info(f"Serving {Path(config.server).resolve()} on port {config.port}")

    try:
        live_reload = LiveReloadService(config.server, reload_manager)
        live_reload.watch(config.files, ignore_initial=config.watch_options.ignore_initial).on(
            "change", live_reload.reload
        )

        coordinator = WatchCoordinator(
            live_reload,
            make_builder(
                policy=SettlePolicy(env_config["build_settle"]),
                timeout=env_config["build_timeout"],
                silent=env_config["build_silent"],
            ),
        )
        coordinator.register(env_config["dev_mode"])

        await live_reload.start()

        if config.tunnel:
            logger.warning("⚠️ BS_TUNNEL is set but tunnelling is not supported; serving on the local network only")

        if config.open:
            url = f"http://localhost:{config.port}/"
            logger.info(f"🌐 Opening {url}")
            asyncio.get_running_loop().call_later(BROWSER_OPEN_DELAY, webbrowser.open, url)

        cleanup_task = asyncio.create_task(reload_manager.periodic_cleanup_loop())

    except Exception as e:
        logger.error(f"Critical startup error: {e}")
        raise

    yield

    logger.info("Shutting down development server")

    try:
        if cleanup_task and not cleanup_task.done():
            cleanup_task.cancel()
            try:
                await cleanup_task
            except asyncio.CancelledError:
                pass

        if coordinator:
            coordinator.builder.cancel_all()

        if live_reload:
            await live_reload.stop()

        logger.info("Development server shutdown complete")

    except Exception as e:
        logger.error(f"Error during shutdown: {e}")


app = FastAPI(
    title=APP_TITLE,
    version=APP_VERSION,
    docs_url=None,
    redoc_url=None,
    lifespan=lifespan,
)


@app.websocket(SOCKET_PATH)  # type: ignore[misc]
async def livereload_socket(websocket: WebSocket) -> None:
    """WebSocket endpoint the injected client listens on for reloads."""
    await reload_manager.connect(websocket)

    try:
        while True:
            message = await websocket.receive_text()
            await reload_manager.handle_client_message(websocket, message)

    except WebSocketDisconnect:
        logger.debug("WebSocket client disconnected")
    except Exception as e:
        logger.error(f"WebSocket error: {e}")
    finally:
        await reload_manager.disconnect(websocket)


@app.get(CLIENT_SCRIPT_PATH, include_in_schema=False)  # type: ignore[misc]
async def livereload_client() -> Response:
    """The browser client injected into every served HTML page."""
    script = render_client_script(notify=config.notify, minify=config.minify)
    return Response(content=script, media_type="application/javascript", headers=NO_CACHE_HEADERS)


@app.get(f"{SOCKET_PATH}/status")  # type: ignore[misc]
async def livereload_status() -> dict[str, Any]:
    """Configuration, watcher and build status."""
    return {
        "config": config.to_dict(),
        "dev_mode": env_config["dev_mode"],
        "connections": reload_manager.get_stats(),
        "service": live_reload.get_status() if live_reload else None,
        "coordinator": coordinator.get_status() if coordinator else None,
    }


@app.get("/{request_path:path}", include_in_schema=False)  # type: ignore[misc]
async def serve_file(request_path: str) -> Response:
    """Serve files from the root, injecting the live-reload client into HTML."""
    target = resolve_request_path(request_path, Path(config.server))
    if target is None:
        return HTMLResponse("<h1>404 Not Found</h1>", status_code=404)

    if target.is_dir():
        if request_path and not request_path.endswith("/"):
            return RedirectResponse(url=f"/{request_path}/")
        target = target / "index.html"
        if not target.is_file():
            return HTMLResponse("<h1>404 Not Found</h1>", status_code=404)

    if target.suffix.lower() in (".html", ".htm"):
        html = await asyncio.to_thread(target.read_text, encoding="utf-8", errors="replace")
        return HTMLResponse(inject_client(html), headers=NO_CACHE_HEADERS)

    return FileResponse(target, headers=NO_CACHE_HEADERS)


def main() -> None:
    """
    Main entry point for the development server.

    Environment Variables:
        NODE_ENV: "development" enables the source rebuild watchers
        BS_PORT, PORT: Server port, first non-empty wins (default: 3000)
        BS_OPEN, BS_NOTIFY, BS_TUNNEL, BS_MINIFY: Toggles, enabled when set
        HOST: Server host (default: 127.0.0.1)
        LOG_LEVEL: Logging level (default: info)
        BUILD_SETTLE: "exit" waits for make to exit, "first" settles on first output (default: exit)
        BUILD_TIMEOUT: Seconds before a build is killed, 0 disables (default: 0)
        BUILD_SILENT: Suppress make output in the log (default: false)
    """
    server_config = get_server_config()
    print_startup_info(config, env_config, server_config)

    uvicorn_config = uvicorn.Config(
        app,
        host=server_config["host"],
        port=config.port,
        log_level=server_config["log_level"],
        access_log=False,
        use_colors=True,
    )

    server = uvicorn.Server(uvicorn_config)

    try:
        asyncio.run(server.serve())
    except KeyboardInterrupt:
        logger.info("\n👋 Server stopped by user")
    except Exception as e:
        logger.error(f"❌ Server error: {e}")
        raise


if __name__ == "__main__":
    main()
