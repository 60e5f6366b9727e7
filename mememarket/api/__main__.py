"""
mememarket.api.__main__ — Entry point for ``python -m mememarket.api``
========================================================================

Serves the API with uvicorn.  ``HOST``/``PORT`` come from the
environment (``.env`` is honoured).
"""

from __future__ import annotations

import logging
import os

import uvicorn
from dotenv import load_dotenv

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("mememarket")


def main() -> None:
    """Bootstrap and run the Meme Market API."""
    load_dotenv()

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "5000"))
    logger.info("Starting Meme Market API on %s:%d", host, port)

    uvicorn.run("mememarket.api.main:app", host=host, port=port, log_config=None)


if __name__ == "__main__":
    main()
