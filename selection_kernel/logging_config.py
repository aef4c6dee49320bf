"""Shared logging configuration for the selection kernel.

Call ``configure_logging()`` once at a process entry point (the API module
does) so engine and aggregator logs are emitted. Idempotent: if the root
logger already has handlers, it does nothing.
"""

import logging
from typing import Union


def configure_logging(level: Union[int, str] = logging.INFO) -> None:
    """Configure the root logger with a single console handler."""
    root = logging.getLogger()
    if root.handlers:
        return

    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    root.addHandler(console)

    root.setLevel(level)
