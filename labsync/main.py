"""Web entry point: serves the scoring API under ``/api``.

Usage:
    python -m labsync.main
"""

import logging
import sys

import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import RedirectResponse
from starlette.routing import Route

from labsync.shared.config import get_settings
from labsync.web.api.app import api, lifespan


async def index(request: Request) -> RedirectResponse:
    return RedirectResponse(url="/api/docs")


app = Starlette(
    routes=[Route("/", index)],
    lifespan=lifespan,
)

# Mounted sub-applications don't run their own lifespan
app.mount("/api", api)


def main() -> None:
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)]
    )
    uvicorn.run(
        "labsync.main:app",
        host=settings.web_host,
        port=settings.web_port,
        reload=settings.is_development
    )


if __name__ == "__main__":
    main()
