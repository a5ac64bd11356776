#!/usr/bin/env python3
"""
Minibank Entry Point

Starts the FastAPI server (port 8090 by default) with the ledger service.
"""

import sys

import uvicorn

from minibank.api import create_app
from minibank.config import get_config
from minibank.logging_config import setup_logging


def run_server(host: str, port: int, reload: bool = False) -> None:
    """Run the API server"""
    if reload:
        uvicorn.run("run:create_app", factory=True, host=host, port=port, reload=True)
    else:
        uvicorn.run(create_app(), host=host, port=port)


if __name__ == "__main__":
    config = get_config()
    logger = setup_logging(
        level=config.log_level,
        log_format=config.log_format,
        log_file=config.log_file
    )

    logger.info(f"Starting Minibank on {config.api_host}:{config.api_port}")
    logger.info(f"Storage: {config.database_url}")

    try:
        run_server(config.api_host, config.api_port, reload=config.api_reload)
    except KeyboardInterrupt:
        logger.info("Shutting down Minibank")
    except Exception as e:
        logger.error(f"Error starting server: {e}")
        sys.exit(1)
