"""Process-wide logging setup shared by the CLI and the Streamlit app."""

from __future__ import annotations

import logging
import sys

from kb_assistant.config import Settings


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        stream=sys.stdout,
    )
    # Per-request lines from httpx drown out the orchestration logs.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
