import asyncio
import json
import logging

from fastapi import APIRouter, Request, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from log_advisor.analysis.bridge import AnalysisBridge, AnalysisChannel
from log_advisor.analysis.trigger import AnalysisTrigger
from log_advisor.config import settings
from log_advisor.errors import ConfigurationError
from log_advisor.redact import redact_mapping
from log_advisor.schemas.analysis import AnalysisMeta
from log_advisor.schemas.streams import StreamParams
from log_advisor.streaming.options import SessionKey
from log_advisor.streaming.registry import SessionRegistry
from log_advisor.transport import WebSocketSink

logger = logging.getLogger(__name__)
router = APIRouter()

# RFC 6455 "policy violation": the connection is refused for bad parameters.
_CLOSE_INVALID_PARAMS = 1008


def _describe_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        field = ".".join(str(loc) for loc in err["loc"])
        parts.append(f"{field}: {err['msg']}")
    return "Invalid stream parameters: " + "; ".join(parts)


@router.websocket("/ws/logs")
async def stream_logs(websocket: WebSocket) -> None:
    """
    Stream one container's logs to the viewer.

    Frames sent: raw redacted log text, ``{"error": ...}``, ``{"event": "stream_ended"}``,
    ``{"event": "ping"}`` keepalives and ``{"analysis": {...}}`` diagnosis fragments.
    Frames accepted: ``{"action": "analyze" | "clear" | "stop", "question"?: str}``.
    """
    registry: SessionRegistry = websocket.app.state.registry
    bridge: AnalysisBridge = websocket.app.state.bridge

    await websocket.accept()
    sink = WebSocketSink(websocket)

    try:
        options = StreamParams.model_validate(dict(websocket.query_params)).to_options()
    except ValidationError as exc:
        logger.info("[ws] Rejected stream parameters %s", redact_mapping(dict(websocket.query_params)))
        await sink.send_json({"error": _describe_validation_error(exc)})
        await sink.close(code=_CLOSE_INVALID_PARAMS)
        return

    channel = AnalysisChannel(bridge, sink.send_json) if bridge.enabled else None
    trigger = AnalysisTrigger(
        meta=AnalysisMeta(namespace=options.namespace, pod=options.pod, container=options.container),
        on_trigger=channel.start if channel is not None else (lambda request: None),
        capacity=settings.trigger_buffer_capacity,
        line_threshold=settings.trigger_line_threshold,
        cooldown_secs=settings.trigger_cooldown_secs,
        min_new_chars=settings.trigger_min_new_chars,
        tail_lines=settings.trigger_tail_lines,
    )

    try:
        session = await registry.start(
            options, sink, trigger, on_stopped=channel.cancel if channel is not None else None
        )
    except ConfigurationError as exc:
        logger.info("[ws] Rejected stream %s: %s", options.key, exc)
        await sink.send_json({"error": str(exc)})
        await sink.close(code=_CLOSE_INVALID_PARAMS)
        return

    keepalive = asyncio.create_task(sink.keepalive(settings.keepalive_interval_secs))
    try:
        while True:
            frame = await websocket.receive()
            if frame["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(frame.get("code", 1000), frame.get("reason"))
            raw = frame.get("text")
            if raw is None:
                logger.debug("[ws] Ignoring binary viewer frame")
                continue
            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                logger.debug("[ws] Ignoring non-JSON viewer frame")
                continue
            action = message.get("action") if isinstance(message, dict) else None

            if action == "analyze":
                if channel is None:
                    await sink.send_json(
                        {"error": "AI analyst not available. Please configure ANTHROPIC_API_KEY."}
                    )
                    continue
                channel.start(trigger.build_request(message.get("question")))
            elif action == "clear":
                trigger.clear()
            elif action == "stop":
                await registry.stop(session.key, session)
                break
            else:
                logger.debug("[ws] Ignoring unknown viewer action %r", action)
    except WebSocketDisconnect:
        sink.mark_closed()
        logger.info("[ws] Viewer disconnected from %s", session.key)
    finally:
        keepalive.cancel()
        if channel is not None:
            channel.cancel()
        await registry.stop(session.key, session)
        await sink.close()


@router.get("/api/streams")
async def list_streams(request: Request):
    registry: SessionRegistry = request.app.state.registry
    return {"streams": [str(key) for key in registry.active_keys()]}


@router.delete("/api/streams/{namespace}/{pod}/{container}")
async def stop_stream(namespace: str, pod: str, container: str, request: Request):
    """Stop a stream from outside its WebSocket. Unknown keys are not an error."""
    registry: SessionRegistry = request.app.state.registry
    stopped = await registry.stop(SessionKey(namespace, pod, container))
    return {"stopped": stopped, "stream": f"{namespace}/{pod}/{container}"}
