"""
Logging helpers with a shared `photometa` namespace and emoji level markers.
"""
import logging
import sys

EMOJI_MAP: dict[str, str] = {
    "DEBUG": "🔍",
    "INFO": "ℹ️",
    "WARNING": "⚠️",
    "ERROR": "❌",
    "CRITICAL": "🔥",
}

ROOT_LOGGER: str = "photometa"


class EmojiFormatter(logging.Formatter):
    """Prefix each record with an emoji matching its level."""

    def __init__(self) -> None:
        super().__init__("%(marker)s %(name)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        record.marker = EMOJI_MAP.get(record.levelname, "•")
        return super().format(record)


def get_logger(name: str) -> logging.Logger:
    """
    Return a logger below the `photometa` namespace.

    Module names such as `photometa.reconcile` are used as-is; anything else
    (e.g. `__main__`) is nested under the namespace.
    """
    if name == ROOT_LOGGER or name.startswith(f"{ROOT_LOGGER}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name.removeprefix('__').removesuffix('__')}")


_console_handler: logging.Handler | None = None


def configure_logging(verbose: bool = False) -> None:
    """
    Attach one console handler to the `photometa` logger.

    Calling this again swaps the handler for a new one writing to the current
    `sys.stderr`.
    """
    global _console_handler

    root: logging.Logger = logging.getLogger(ROOT_LOGGER)
    root.setLevel(logging.DEBUG if verbose else logging.INFO)

    if _console_handler is not None:
        root.removeHandler(_console_handler)

    _console_handler = logging.StreamHandler(sys.stderr)
    _console_handler.setFormatter(EmojiFormatter())
    root.addHandler(_console_handler)
    # Keep output from being duplicated by the root logger
    root.propagate = False
