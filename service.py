"""
FastAPI service that answers advert requests with a location-aware image.

Run with:
    python service.py [--host HOST] [--port PORT]
"""

import argparse
import logging
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse, Response

import config
from errors import PipelineError, TemplateNotFound
from pipeline import RequestPipeline, build_pipeline

logger = logging.getLogger(__name__)


def client_address(request: Request, forward_header: Optional[str] = None) -> Optional[str]:
    """
    Address of the requesting client.

    When a trusted forwarding header is configured and present, its first
    (left-most) entry wins over the transport peer address.
    """
    if forward_header:
        forwarded = request.headers.get(forward_header)
        if forwarded:
            return forwarded.split(",")[0].strip()
    if request.client is None:
        return None
    return request.client.host


def create_app(
    pipeline: Optional[RequestPipeline] = None,
    forward_header: Optional[str] = config.TRUSTED_FORWARD_HEADER,
) -> FastAPI:
    """
    Build the application.

    Without an explicit pipeline, the database, font and templates are loaded
    from configuration here; a StartupError propagates and aborts startup.
    """
    if pipeline is None:
        config.setup_logging()
        logger.info("Initializing %s %s", config.APP_NAME, config.APP_VERSION)
        pipeline = build_pipeline()

    app = FastAPI(title=config.APP_NAME, version=config.APP_VERSION)
    app.state.pipeline = pipeline

    def render(request: Request, name: Optional[str]) -> Response:
        ip = client_address(request, forward_header)
        if ip is None:
            logger.error("No remote address for %s", request.url.path)
            return PlainTextResponse("no remote address", status_code=500)

        try:
            content_type, body = pipeline.handle(ip, name)
        except TemplateNotFound:
            logger.warning("404: %s", name)
            return PlainTextResponse("resource not found on server", status_code=404)
        except PipelineError as e:
            logger.exception("Failed to build advert %s", name)
            return PlainTextResponse(str(e), status_code=500)

        return Response(content=body, media_type=content_type)

    @app.get("/", response_class=PlainTextResponse)
    def info():
        return f"{config.APP_NAME} {config.APP_VERSION}"

    # Sync handlers run in FastAPI's worker thread pool
    @app.get("/ad")
    def advert(request: Request):
        return render(request, None)

    @app.get("/ads/{name}")
    def named_advert(name: str, request: Request):
        return render(request, name)

    return app


def main():
    parser = argparse.ArgumentParser(description="Serve location-aware advert images")
    parser.add_argument("--host", default=config.SERVER_HOST, help="Interface to listen on")
    parser.add_argument("--port", type=int, default=config.SERVER_PORT, help="Port to listen on")
    args = parser.parse_args()

    config.setup_logging()
    app = create_app()
    logger.info("Starting web server on %s:%d...", args.host, args.port)
    uvicorn.run(app, host=args.host, port=args.port, log_config=None)


if __name__ == "__main__":
    main()
