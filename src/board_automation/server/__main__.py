"""Run with: python -m board_automation.server"""

import uvicorn

from board_automation.engine.logging import configure_logging
from board_automation.server.app import create_app
from board_automation.server.config import ServerSettings


def main() -> None:
    settings = ServerSettings()
    configure_logging(settings.log_level, fmt=settings.log_format)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
