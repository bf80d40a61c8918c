"""
ASGI Entry Point for the fiscalsnap API.

This module exposes the `app` object required by ASGI servers (Uvicorn).
It loads environment variables from `.env` before the application factory runs
so that `FISCALSNAP_*` settings are visible to `load_settings()`.

Usage
-----
    $ python -m fiscalsnap.api.server

Or via uvicorn directly:
    $ uvicorn fiscalsnap.api.server:app --reload
"""

from pathlib import Path

import uvicorn
from dotenv import load_dotenv

# --------------------------------------------------------------------------- #
# Environment Setup
# --------------------------------------------------------------------------- #

# Load .env BEFORE importing the application factory; settings are cached on first read.
load_dotenv(dotenv_path=Path(".env"))

from fiscalsnap.api.app import create_app  # noqa: E402
from fiscalsnap.core.settings import load_settings  # noqa: E402

app = create_app()


def main() -> None:
    """Run the API server locally for development."""
    cfg = load_settings()
    print(f"{'[ fiscalsnap ]':=^60}")
    print(f"{'environment':<24} : {cfg.environment}")
    print(f"{'data dir':<24} : {cfg.data_dir or '(memory only)'}")
    print(f"{'scheduler':<24} : {'on' if cfg.scheduler_enabled else 'off'}")
    print(f"{'='*60}\n")

    uvicorn.run(
        "fiscalsnap.api.server:app",
        host="0.0.0.0",
        port=8000,
        reload=cfg.is_dev,
        log_level=cfg.log_level.lower(),
    )


if __name__ == "__main__":
    main()
