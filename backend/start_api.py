#!/usr/bin/env python3
"""Run the datasync API locally with auto-reload.

Reads backend/.env first, so the same variables work for the app and for
alembic. Cloud Run does not use this script; it runs uvicorn directly.
"""

import logging
import os
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

BACKEND_DIR = Path(__file__).resolve().parent
REQUIRED_ENV = ("JWT_SECRET", "DATABASE_URL", "GCP_PROJECT")

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("start_api")


def main():
    load_dotenv(BACKEND_DIR / ".env")

    missing = [name for name in REQUIRED_ENV if not os.getenv(name)]
    if missing:
        # The app refuses to start without these; fail before uvicorn spawns a reloader
        raise SystemExit(f"Missing environment variables: {', '.join(missing)}")

    port = int(os.getenv("PORT", "8080"))
    logger.info("[START] datasync API on http://localhost:%d (docs at /docs)", port)
    uvicorn.run(
        "datasync.main:app",
        host=os.getenv("HOST", "127.0.0.1"),
        port=port,
        reload=True,
        reload_dirs=[str(BACKEND_DIR / "datasync")],
        app_dir=str(BACKEND_DIR),
    )


if __name__ == "__main__":
    main()
