"""
Run script for starting the realtime agent proxy server.

This script reads the proxy settings from the environment (and ``.env``),
lets the command line override the bind address and log level, and starts
the FastAPI application under uvicorn.

Usage:
    python run.py [--port PORT] [--host HOST] [--log-level LEVEL]
"""

import argparse
import os
import sys
from pathlib import Path

import dotenv
import uvicorn

from agent_proxy.config.logging_config import LEVELS
from agent_proxy.config.settings import ProxySettings


def parse_args(settings: ProxySettings):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Start the realtime agent proxy server"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=settings.port,
        help="Port to run the server on (default: 8080 or OPENAI_PROXY_PORT env var)",
    )
    parser.add_argument(
        "--host",
        default=settings.host,
        help="Host to bind the server to (default: 0.0.0.0 or HOST env var)",
    )
    parser.add_argument(
        "--log-level",
        default=settings.log_level,
        type=str.lower,
        choices=sorted(LEVELS),
        help="Log threshold (default: LOG_LEVEL env var, then OPENAI_PROXY_DEBUG, then info)",
    )
    return parser.parse_args()


def main():
    """Main entry point for starting the proxy."""
    env_path = Path(".") / ".env"
    if env_path.exists():
        dotenv.load_dotenv(env_path)

    settings = ProxySettings.from_env()
    args = parse_args(settings)

    # Verify OpenAI API key is set
    if not settings.openai_api_key:
        print("Error: OPENAI_API_KEY environment variable is required")
        print("Please set it in the environment or in a .env file")
        sys.exit(1)

    # The application reads its settings from the environment at import
    os.environ["HOST"] = args.host
    os.environ["OPENAI_PROXY_PORT"] = str(args.port)
    if args.log_level:
        os.environ["LOG_LEVEL"] = args.log_level

    print(f"Starting proxy on ws://{args.host}:{args.port}{settings.path}")

    uvicorn.run(
        "agent_proxy.main:app",
        host=args.host,
        port=args.port,
        log_level="warning",
        # Use HTTP/1.1 for lower overhead than HTTP/2
        http="h11",
        # Disable access logs, we have our own logging
        access_log=False,
        # Reload on code changes during development
        reload=os.getenv("ENV", "production").lower() == "development",
    )


if __name__ == "__main__":
    main()
