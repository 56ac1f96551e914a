"""Run the API server: ``python -m mcp_chat``."""

import uvicorn

from mcp_chat.api import create_app
from mcp_chat.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(create_app(settings), host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    main()
