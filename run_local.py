#!/usr/bin/env python3
"""
Local development server for the Push Queue API.

Settings load from the environment or a .env file in the working
directory (see .env.example).

Usage:
    python run_local.py
    python run_local.py --port 8080 --reload
"""

import argparse
from pathlib import Path

import uvicorn

project_root = Path(__file__).parent


def main():
    parser = argparse.ArgumentParser(description="Serve the Push Queue API with uvicorn")
    parser.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8000, help="Port (default: 8000)")
    parser.add_argument("--reload", action="store_true", help="Restart on source changes")
    args = parser.parse_args()

    if not (project_root / ".env").exists():
        print("No .env found; QUEUE_TABLE_NAME, WEBHOOK_SECRET, DISPATCH_TOKEN, "
              "SCORE_PUSH_URL and NOTE_PUSH_URL must be set in the environment.")

    uvicorn.run(
        "push_queue.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        reload_dirs=[str(project_root / "src")] if args.reload else None
    )


if __name__ == "__main__":
    main()
