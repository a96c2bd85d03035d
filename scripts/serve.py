#!/usr/bin/env python3
"""Run the EnguiStudio API with uvicorn.

Usage:
    python scripts/serve.py [--host 127.0.0.1] [--port 8000] [--reload]

Configuration comes from ENGUI_* environment variables (see engui.config).
"""

from __future__ import annotations

import argparse
import sys

import uvicorn

from engui.config import get_log_level


def main() -> int:
    parser = argparse.ArgumentParser(description="Run the EnguiStudio API server")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", action="store_true", help="Restart on code changes")
    args = parser.parse_args()

    uvicorn.run(
        "engui.api.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=get_log_level().lower(),
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
