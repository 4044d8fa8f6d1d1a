import logging

import uvicorn

from .app import create_app
from .settings import Settings
from .utils import configure_logging

logger = logging.getLogger(__name__)


def main() -> None:
    """Run the HTTP and collaboration server; every setting can be given as a --flag."""
    settings = Settings(_cli_parse_args=True)
    configure_logging(settings.log_level)
    logger.info(f"Serving on {settings.host}:{settings.port}, data file {settings.data_file}")
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, log_level=settings.log_level.lower())
