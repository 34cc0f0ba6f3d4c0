"""Logging setup for applications embedding the field arbiter."""

import logging


def configure_logging(debug: bool = False, force: bool = False) -> None:
    """
    Initialise the root logger with a terse format.

    Library modules only ever call ``logging.getLogger(__name__)``; the
    embedding service decides whether to call this.
    """
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
        force=force,
    )
