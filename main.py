"""
Entrypoint for the imgpaste service.
Imports the FastAPI application from the core package and serves it with
gunicorn on Linux or uvicorn elsewhere.
"""

from __future__ import annotations

import argparse
import os
import platform
import sys

from core.app_state import app, config, logger  # noqa: F401


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="imgpaste media ingestion service")
    parser.add_argument(
        "--workers",
        type=int,
        default=int(os.environ.get("APP_WORKERS", "2")),
        help="Number of gunicorn workers (Linux only)",
    )
    args = parser.parse_args()

    if platform.system() == "Linux":
        import subprocess

        cmd = [
            sys.executable,
            "-m",
            "gunicorn",
            "main:app",
            "--workers",
            str(args.workers),
            "--worker-class",
            "uvicorn.workers.UvicornWorker",
            "--bind",
            f"{config.APP_HOST}:{config.APP_PORT}",
        ]

        if config.APP_RELOAD:
            cmd.append("--reload")

        logger.info("Starting with gunicorn - %d workers", args.workers)
        logger.info("Command: %s", " ".join(cmd))
        subprocess.run(cmd, check=False)
    else:
        import uvicorn

        logger.info("Starting with uvicorn")
        uvicorn.run(
            "main:app",
            host=config.APP_HOST,
            port=config.APP_PORT,
            reload=config.APP_RELOAD,
        )
