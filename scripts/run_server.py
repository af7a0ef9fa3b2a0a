"""Script to launch the recipe chat server."""

from __future__ import annotations

import argparse
import logging
import os
import sys

import uvicorn

# Ensure src/ is on sys.path (so imports work when run from a checkout)
SRC_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "src"))
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

from recipe_chat.config import CONFIG_ENV, load_config  # noqa: E402

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the recipe chat server.")
    parser.add_argument("--config", type=str, default=None, help="Path to a YAML config file")
    parser.add_argument("--host", type=str, default=None, help="Host to bind the server to (default: from config)")
    parser.add_argument("--port", type=int, default=None, help="Port to bind the server to (default: from config)")
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload for development (default: off)",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=int(os.environ.get("WORKERS", "1")),
        help="Number of worker processes (default: 1)",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, stream=sys.stdout)

    # Workers and the reloader build their own app; hand them the config via env.
    if args.config:
        os.environ[CONFIG_ENV] = args.config
    server_cfg = load_config(args.config).get("server", {})

    uvicorn.run(
        "recipe_chat.server:create_app",
        factory=True,
        host=args.host or server_cfg.get("host", "127.0.0.1"),
        port=args.port or int(server_cfg.get("port", 8000)),
        reload=args.reload,
        workers=args.workers,
        log_level="info",
    )


if __name__ == "__main__":
    main()
