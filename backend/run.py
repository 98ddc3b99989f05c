"""Serve the LookLab API with uvicorn, configured from settings."""

import logging

import uvicorn

from looklab.config import Settings, get_settings

logger = logging.getLogger(__name__)


def uvicorn_options(settings: Settings) -> dict:
    return {
        "host": settings.host,
        "port": settings.port,
        "reload": settings.looklab_reload,
        "log_level": settings.looklab_log_level.lower(),
    }


def main() -> None:
    settings = get_settings()
    options = uvicorn_options(settings)
    logging.basicConfig(level=options["log_level"].upper())
    logger.info("Serving on http://%s:%d (data dir %s)", options["host"], options["port"], settings.data_dir)
    uvicorn.run("backend.main:app", **options)


if __name__ == "__main__":
    main()
