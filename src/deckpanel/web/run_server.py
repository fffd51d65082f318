"""
Run script for the deckpanel API server.
Starts the Quart app under Hypercorn.
"""
import argparse
import asyncio
import logging
from typing import Optional

from hypercorn.asyncio import serve
from hypercorn.config import Config as HypercornConfig

from deckpanel.services.config import load_config
from deckpanel.services.logging import setup_logging
from deckpanel.web.app import create_app

logger = logging.getLogger(__name__)


def run_server(host: Optional[str] = None, port: Optional[int] = None, config_path: Optional[str] = None) -> None:
    config = load_config(config_path)
    setup_logging(config.LOG_LEVEL)

    app = create_app(config)

    server_config = HypercornConfig()
    server_config.bind = [f"{host or config.SERVER_HOST}:{port or config.SERVER_PORT}"]
    server_config.accesslog = "-"
    server_config.errorlog = "-"

    logger.info(f"Starting deckpanel API on http://{server_config.bind[0]} (model {config.OLLAMA_MODEL})")
    asyncio.run(serve(app, server_config))


def main():
    parser = argparse.ArgumentParser(description="deckpanel API server")
    parser.add_argument("--host", default=None,
                        help="Host to bind to (default: SERVER_HOST from config)")
    parser.add_argument("--port", type=int, default=None,
                        help="Port to bind to (default: SERVER_PORT from config)")
    parser.add_argument("--config", default=None,
                        help="Path to config.yml (default: resources/config.yml)")

    args = parser.parse_args()
    run_server(host=args.host, port=args.port, config_path=args.config)


if __name__ == "__main__":
    main()
