"""Root logger configuration for the server and CLI."""

import logging

from rich.logging import RichHandler


def configure_logging(level: str = "INFO") -> None:
    """Install a RichHandler on the root logger. Safe to call more than once."""
    root = logging.getLogger()
    if any(isinstance(h, RichHandler) for h in root.handlers):
        root.setLevel(level.upper())
        return
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )
    # werkzeug request lines are noisy at INFO
    logging.getLogger("werkzeug").setLevel(logging.WARNING)
