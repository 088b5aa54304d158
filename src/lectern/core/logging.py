from __future__ import annotations

import logging

from rich.logging import RichHandler

_LEVELS = {0: logging.WARNING, 1: logging.INFO}


def configure_logging(verbosity: int = 0) -> None:
    level = _LEVELS.get(max(0, int(verbosity)), logging.DEBUG)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=verbosity >= 2)],
        force=True,
    )
    # Third-party HTTP and model loaders are noisy at INFO.
    for noisy in ("httpx", "urllib3", "sentence_transformers"):
        logging.getLogger(noisy).setLevel(max(level, logging.WARNING))
