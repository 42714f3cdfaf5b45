"""HTTP endpoint: ``POST /api/getScribdLink``.

Usage:
    uvicorn scribdlink.server:app --host 0.0.0.0 --port 8000
    scribdlink-server --port 8000
"""

from __future__ import annotations

import argparse
import logging
from typing import Mapping

from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from scribdlink.config import ResolverConfig
from scribdlink.errors import ConfigurationError
from scribdlink.resolver import resolve

logger = logging.getLogger(__name__)

ROUTE = "/api/getScribdLink"
ALLOWED_METHODS = ["POST"]


def create_app(environ: Mapping[str, str] | None = None) -> FastAPI:
    """Create the FastAPI app.

    Configuration is read from *environ* (default ``os.environ``) on every
    request, so a missing key is reported per request rather than at
    start-up.
    """
    app = FastAPI(title="scribdlink", docs_url=None, redoc_url=None)

    # The router raises 405 for every other verb (HEAD and custom ones
    # included); answer in our error shape.
    @app.exception_handler(StarletteHTTPException)
    async def method_not_allowed(request: Request, exc: StarletteHTTPException):
        if exc.status_code != 405:
            return await http_exception_handler(request, exc)
        return JSONResponse(
            {"error": f"Method {request.method} Not Allowed"},
            status_code=405,
            headers={"Allow": ", ".join(ALLOWED_METHODS)},
        )

    @app.post(ROUTE)
    async def get_scribd_link(request: Request) -> JSONResponse:
        try:
            config = ResolverConfig.from_env(environ)
        except ConfigurationError as exc:
            logger.error("%s", exc)
            return JSONResponse({"error": str(exc)}, status_code=500)

        try:
            body = await request.json()
        except ValueError:
            body = None
        scribd_url = body.get("scribdUrl") if isinstance(body, dict) else None
        if not scribd_url or not isinstance(scribd_url, str):
            logger.error("Invalid request body: %r", body)
            return JSONResponse(
                {"error": "Missing or invalid scribdUrl in request body."},
                status_code=400,
            )

        # resolve() blocks on the Browserless call.
        outcome = await run_in_threadpool(resolve, scribd_url, config)
        return JSONResponse(outcome.to_json(), status_code=outcome.status)

    return app


app = create_app()


def main(argv: list[str] | None = None) -> None:
    import uvicorn

    parser = argparse.ArgumentParser(
        prog="scribdlink-server",
        description="Serve POST /api/getScribdLink.",
    )
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
