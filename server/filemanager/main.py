"""File Manager Server - Entry Point"""

import os
import sys

from .logging_config import configure_logging, get_logger

# Configure logging at module load (before any other imports that might log)
configure_logging(os.getenv("LOG_LEVEL", "INFO"))
logger = get_logger(__name__)


def run_http():
    """Run the REST API with uvicorn."""
    import uvicorn

    from .api import create_app
    from .config import get_settings

    settings = get_settings()
    configure_logging(settings.log_level)
    app = create_app(settings)

    logger.info("Starting File Manager Server", extra={"host": settings.host, "port": settings.port})
    uvicorn.run(app, host=settings.host, port=settings.port)


def main():
    if "--help" in sys.argv or "-h" in sys.argv:
        print("Usage: python -m filemanager.main\n\nSettings are read from the environment / .env "
              "(DATA_DIR, UPLOADS_DIR, JWT_SECRET, PORT, ...).")
        return
    run_http()


if __name__ == "__main__":
    main()
