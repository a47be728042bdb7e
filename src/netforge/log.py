import logging
import time
from contextlib import contextmanager

from rich.console import Console
from rich.logging import RichHandler


def setup_logging(debug: bool = False) -> None:
    """Configure the root logger with a rich console handler.

    Safe to call more than once; later calls only adjust the level.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if debug else logging.INFO)

    if any(isinstance(h, RichHandler) for h in root.handlers):
        return

    handler = RichHandler(
        console=Console(stderr=True),
        show_path=debug,
        rich_tracebacks=True,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s", datefmt="[%X]"))
    root.addHandler(handler)

    # docker-py and urllib3 are chatty at DEBUG
    for name in ("urllib3", "docker"):
        logging.getLogger(name).setLevel(logging.INFO)


@contextmanager
def timed(label: str, logger: logging.Logger | None = None):
    """Log how long the wrapped block took, at DEBUG."""
    log = logger or logging.getLogger(__name__)
    start = time.perf_counter()
    try:
        yield
    finally:
        log.debug("%s took %.3fs", label, time.perf_counter() - start)
