#!/usr/bin/env python3
"""
Pet Holiday Portrait API - Main Entry Point

Usage:
    python main.py
    python main.py --reload
    python main.py --host 0.0.0.0 --port 8080 --workers 2
"""

import argparse
import os

import uvicorn


def create_argument_parser() -> argparse.ArgumentParser:
    """Create and configure argument parser."""
    parser = argparse.ArgumentParser(description="Run the Pet Holiday Portrait API server")
    parser.add_argument("--host", default=os.getenv("HOST", "127.0.0.1"), help="Bind address")
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT", "8000")), help="Bind port")
    parser.add_argument("--reload", action="store_true", help="Reload on code changes (development)")
    parser.add_argument("--workers", type=int, default=1, help="Number of worker processes")
    return parser


def main() -> None:
    args = create_argument_parser().parse_args()
    uvicorn.run(
        "src.api.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        workers=None if args.reload else args.workers,
        proxy_headers=True,
    )


if __name__ == "__main__":
    main()
