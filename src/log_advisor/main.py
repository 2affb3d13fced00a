import datetime
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from log_advisor.analysis.bridge import AnalysisBridge
from log_advisor.api.analysis import router as analysis_router
from log_advisor.api.streams import router as streams_router
from log_advisor.config import settings
from log_advisor.streaming.registry import SessionRegistry

logger = logging.getLogger(__name__)


def build_bridge() -> AnalysisBridge:
    return AnalysisBridge(
        api_key=settings.anthropic_api_key,
        model=settings.analysis_model,
        max_tokens=settings.analysis_max_tokens,
        max_excerpt_chars=settings.analysis_max_excerpt_chars,
        mock=settings.mock_analysis,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.registry = SessionRegistry()
    app.state.bridge = build_bridge()
    if app.state.bridge.enabled:
        logger.info("AI analyst enabled (model=%s, mock=%s)", settings.analysis_model, settings.mock_analysis)
    else:
        logger.warning("No Anthropic API key configured; AI analysis disabled.")
    yield
    # Drain every open stream before the process exits.
    logger.info("Shutting down, stopping %d active stream(s)", len(app.state.registry))
    await app.state.registry.stop_all()


app = FastAPI(title="Log Advisor", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(analysis_router, prefix="/api", tags=["analysis"])
app.include_router(streams_router, tags=["streams"])


@app.get("/api/health")
async def health(request: Request):
    return {
        "status": "ok",
        "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        "aiEnabled": request.app.state.bridge.enabled,
        "activeStreams": len(request.app.state.registry),
    }


def run() -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
        # Protocol-level pings; the JSON keepalive frame still probes idle viewers.
        ws_ping_interval=settings.keepalive_interval_secs,
    )


if __name__ == "__main__":
    run()
