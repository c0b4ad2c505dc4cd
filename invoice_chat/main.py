"""Application entry point for the Invoice Chat API server."""

import argparse
from pathlib import Path

import uvicorn

from invoice_chat.api.app import create_app
from invoice_chat.utils.config import load_config
from invoice_chat.utils.logger import setup_logging


def main(argv: list[str] | None = None) -> None:
    """Load configuration once and start the FastAPI application server."""
    parser = argparse.ArgumentParser(description="Invoice Chat API server")
    parser.add_argument("-c", "--config", type=Path, default=None)
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args(argv)

    config = load_config(args.config)
    setup_logging(config.log_level)
    uvicorn.run(create_app(config), host=args.host, port=args.port)


if __name__ == "__main__":
    main()
