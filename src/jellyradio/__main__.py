"""Run the JellyRadio API server: `python -m jellyradio` or `jellyradio`."""

import uvicorn

from jellyradio.api import create_app
from jellyradio.config.settings import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_config=None,  # keep our configure_logging() handlers
    )


if __name__ == "__main__":
    main()
