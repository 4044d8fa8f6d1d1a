import logging

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Set up root logging for a process entry point; library code only creates loggers."""
    logging.basicConfig(level=level, format=LOG_FORMAT, force=True)
    # per-request access lines from httpx are noise next to our own execution logs
    logging.getLogger("httpx").setLevel(logging.WARNING)
