import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse

from log_advisor.analysis.bridge import AnalysisBridge
from log_advisor.redact import redact, redact_mapping
from log_advisor.schemas.analysis import AnalysisRequest
from log_advisor.streaming.sources import DEMO_SCENARIOS

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/ai/explain")
async def explain_logs(payload: AnalysisRequest, request: Request) -> StreamingResponse:
    """
    Stream a diagnosis of the supplied log excerpt as plain text.

    Failures are reported in-band as a final ``❌`` line because the viewer is
    already rendering the body by the time they happen.
    """
    bridge: AnalysisBridge = request.app.state.bridge
    if not bridge.enabled:
        raise HTTPException(
            status_code=503,
            detail="AI analyst not available. Please configure ANTHROPIC_API_KEY.",
        )
    logger.info("[analysis] Explain request for %s", redact_mapping(payload.meta.model_dump()))
    return StreamingResponse(bridge.analyze(payload), media_type="text/plain; charset=utf-8")


@router.get("/demo/logs")
async def demo_logs(scenario: str):
    """Return the full scripted log of a demo scenario."""
    lines = DEMO_SCENARIOS.get(scenario)
    if lines is None:
        raise HTTPException(status_code=404, detail=f"Scenario {scenario!r} not found")
    return {"scenario": scenario, "logs": [redact(line) for line in lines]}
