"""Main entry point for the HTTP analytics service."""

import uvicorn

from http_analytics.api import create_app
from http_analytics.config import get_config
from http_analytics.logging_setup import configure_logging

config = get_config()
configure_logging(config.log_level)

app = create_app(config)


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=config.host,
        port=config.port,
        reload=False,
        log_level=config.log_level.lower(),
    )
