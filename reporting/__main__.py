"""
Command-line entrypoint: ``python -m reporting`` serves the API with uvicorn.

CHANGELOG:
- 2026-10-19: Initial creation
"""

import uvicorn

from reporting.config import get_settings
from reporting.logconfig import configure_logging


def main() -> None:
    """Configure logging and run the API server."""
    settings = get_settings()
    configure_logging(settings.log_level)
    uvicorn.run(
        "reporting.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
