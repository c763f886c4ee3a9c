import logging

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | int = "INFO") -> None:
    """Idempotent root logger setup for the API process and the CLI."""
    root = logging.getLogger()
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    root.setLevel(level)

    if any(getattr(h, "_fuel_sync", False) for h in root.handlers):
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(_FORMAT))
    handler._fuel_sync = True  # type: ignore[attr-defined]
    root.addHandler(handler)

    # httpx logs every request at INFO, too noisy for batch walks
    logging.getLogger("httpx").setLevel(logging.WARNING)
