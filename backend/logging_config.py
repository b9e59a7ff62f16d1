import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def resolve_level(level: str | int | None) -> int:
    """Map a level name or number to a logging level; unknown values mean INFO."""
    if isinstance(level, int):
        return level
    value = logging.getLevelName((level or "").strip().upper())
    return value if isinstance(value, int) else logging.INFO


def setup_logging(level: str | int | None = "INFO") -> None:
    """Configure the root logger once; later calls only adjust the level."""
    resolved = resolve_level(level)
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(format=LOG_FORMAT, level=resolved)
    root.setLevel(resolved)
