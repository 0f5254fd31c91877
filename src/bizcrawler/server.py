import argparse
import json
import logging
from datetime import datetime

import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, field_validator

from .config import LOG_FORMAT, CrawlerSettings
from .errors import (
    CrawlError,
    CrawlInitializationError,
    MalformedUrlError,
    NoPagesCollectedError,
)
from .models import BusinessProfile
from .pipeline import ProfilePipeline
from .urls import ensure_scheme, normalize

logger = logging.getLogger(__name__)

app = FastAPI(title="Business Crawler API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class CrawlRequest(BaseModel):
    url: str
    max_pages: int = 25
    max_depth: int = 10

    @field_validator('max_pages')
    @classmethod
    def validate_max_pages(cls, v):
        if v <= 0 or v > 100:
            raise ValueError('max_pages must be between 1 and 100')
        return v

    @field_validator('max_depth')
    @classmethod
    def validate_max_depth(cls, v):
        if v < 0 or v > 20:
            raise ValueError('max_depth must be between 0 and 20')
        return v


def status_for(error: CrawlError) -> int:
    if isinstance(error, MalformedUrlError):
        return 400
    if isinstance(error, NoPagesCollectedError):
        return 422
    if isinstance(error, CrawlInitializationError):
        return 503
    return 500


def get_pipeline() -> ProfilePipeline:
    return ProfilePipeline(CrawlerSettings.from_env())


@app.exception_handler(CrawlError)
async def crawl_error_handler(request: Request, exc: CrawlError):
    status = status_for(exc)
    if status >= 500:
        logger.error(f"Crawl failed for {request.url.path}: {exc}")
    return JSONResponse(status_code=status, content={"detail": str(exc)})


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "ok", "timestamp": datetime.now().isoformat()}


@app.post("/crawl", response_model=BusinessProfile)
async def crawl_site(request: CrawlRequest, pipeline: ProfilePipeline = Depends(get_pipeline)):
    """Crawl a site and return its business profile"""
    logger.info(f"Crawl requested: {request.url} (max_pages={request.max_pages}, max_depth={request.max_depth})")
    run = pipeline.start(request.url, max_depth=request.max_depth, max_pages=request.max_pages)
    return await run.result()


def _sse(event: str, payload: str) -> str:
    return f"event: {event}\ndata: {payload}\n\n"


@app.post("/crawl/stream")
async def crawl_site_stream(request: CrawlRequest, pipeline: ProfilePipeline = Depends(get_pipeline)):
    """Crawl a site, streaming progress events and then the profile as server-sent events"""
    # reject before the 200 status line is committed
    if normalize(ensure_scheme(request.url)) is None:
        raise MalformedUrlError(request.url)

    run = pipeline.start(request.url, max_depth=request.max_depth, max_pages=request.max_pages)

    async def event_stream():
        try:
            async for event in run.events():
                yield _sse("progress", event.model_dump_json())
            try:
                profile = await run.result()
            except CrawlError as e:
                yield _sse("error", json.dumps({"status": status_for(e), "detail": str(e)}))
                return
            yield _sse("profile", profile.model_dump_json())
        finally:
            if not run.done():
                logger.info("Stream closed before the crawl finished; cancelling.")
                run.cancel()

    return StreamingResponse(event_stream(), media_type="text/event-stream",
                             headers={"Cache-Control": "no-cache"})


def main():
    parser = argparse.ArgumentParser(description='Start the business crawler API server')
    parser.add_argument('--host', type=str, default='127.0.0.1', help='Host to bind to')
    parser.add_argument('--port', type=int, default=8002, help='Port to bind to')
    parser.add_argument('--reload', action='store_true', help='Reload on code changes')
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    uvicorn.run("bizcrawler.server:app", host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()
