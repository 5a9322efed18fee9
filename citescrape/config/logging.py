import logging


def setup_logging(level: str = "INFO") -> None:
    """Configure the root logger once for the whole service."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    # Per-request lines from httpx are noise at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)
