import asyncio
import json
import logging
import uuid
from typing import Any

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field, ValidationError

from aidetect.config import config
from aidetect.errors import ErrorCode
from aidetect.messages import Reply
from aidetect.pipeline import Pipeline
from aidetect.sampling import DocumentSnapshot
from aidetect.scoring import HeuristicScorer, Score, TextSample, TextVariant

logger = logging.getLogger(__name__)

app = FastAPI(title="aidetect")

pipeline = Pipeline()

_text_scorers = {
    TextVariant.STRUCTURAL: HeuristicScorer(TextVariant.STRUCTURAL),
    TextVariant.COARSE: HeuristicScorer(TextVariant.COARSE),
}

_STATUS_BY_CODE = {
    ErrorCode.BUSY: 409,
    ErrorCode.SOURCE_UNAVAILABLE: 424,
    ErrorCode.TIMEOUT: 504,
}


def _reply_or_raise(reply: Reply) -> dict[str, Any]:
    if reply.ok:
        return {"ok": True, **reply.data}
    assert reply.error is not None
    status = _STATUS_BY_CODE.get(reply.error.code, 500)
    raise HTTPException(
        status_code=status,
        detail={"code": reply.error.code.value, "message": reply.error.message},
    )


def _score_json(score: Score | None) -> dict[str, Any] | None:
    if score is None:
        return None
    return {"score": score.value, "label": score.label.value}


class CaptureRequest(BaseModel):
    owner: str = "web"
    kinds: list[str] | None = None


class StopRequest(BaseModel):
    owner: str = "web"


class Feedback(BaseModel):
    value: str


class TextRequest(BaseModel):
    text: str = Field(..., max_length=200_000)


@app.on_event("startup")
async def on_startup() -> None:
    await pipeline.start()


@app.on_event("shutdown")
async def on_shutdown() -> None:
    await pipeline.stop()


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/api/config")
async def get_config() -> dict[str, Any]:
    """Получить конфигурацию для фронтенда"""
    return {
        "capture": {
            "kinds": config.capture.default_kinds,
            "sources": [s.label or s.uri for s in config.capture.sources],
        },
        "scanner": {
            "interval_ms": config.scanner.interval_ms,
            "selectors": config.scanner.selectors,
            "min_chars": config.scoring.structural_min_chars,
        },
        "overlay": {
            "width": config.overlay.width,
            "height": config.overlay.height,
            "ttl_ms": config.overlay.ttl_ms,
        },
    }


@app.post("/api/capture/start")
async def start_capture(req: CaptureRequest) -> dict[str, Any]:
    return _reply_or_raise(await pipeline.controller.start_capture(req.owner, req.kinds))


@app.post("/api/capture/stop")
async def stop_capture(req: StopRequest) -> dict[str, Any]:
    return _reply_or_raise(await pipeline.controller.stop_capture(req.owner))


@app.post("/api/feedback")
async def feedback(req: Feedback) -> dict[str, bool]:
    await pipeline.controller.feedback(req.value)
    return {"ok": True}


@app.post("/api/document")
async def push_document(snapshot: DocumentSnapshot) -> dict[str, Any]:
    # The host page owns the document the overlay context scans
    pipeline.overlay.document.update(snapshot)
    await pipeline.controller.start_overlay()
    return {"ok": True, "elements": len(snapshot.elements)}


@app.post("/api/score/text")
async def score_text(req: TextRequest) -> dict[str, Any]:
    sample = TextSample(req.text)
    return {
        variant.value: _score_json(scorer.score(sample))
        for variant, scorer in _text_scorers.items()
    }


async def _overlay_frames():
    """Generate MJPEG frames of the overlay surface"""
    period = 1.0 / config.sampler.max_fps
    while True:
        frame_bytes = pipeline.overlay.surface.encode_jpeg(config.overlay.jpeg_quality)
        if frame_bytes is not None:
            yield (b'--frame\r\n'
                   b'Content-Type: image/jpeg\r\n\r\n' + frame_bytes + b'\r\n')
        await asyncio.sleep(period)


@app.get("/overlay.mjpg")
async def overlay_feed() -> StreamingResponse:
    return StreamingResponse(
        _overlay_frames(),
        media_type="multipart/x-mixed-replace; boundary=frame"
    )


@app.websocket("/ws/control")
async def ws_control(ws: WebSocket) -> None:
    await ws.accept()
    owner = f"ws-{uuid.uuid4().hex[:8]}"
    controller = pipeline.controller
    try:
        while True:
            msg_text = await ws.receive_text()
            try:
                msg = json.loads(msg_text)
            except json.JSONDecodeError:
                await ws.send_json({"ok": False, "error": "invalid json"})
                continue

            if not isinstance(msg, dict):
                await ws.send_json({"ok": False, "error": "expected a JSON object"})
                continue

            msg_type = msg.get("type")
            if msg_type == "start_capture":
                reply = await controller.start_capture(owner, msg.get("kinds"))
                await ws.send_json(reply.to_payload())

            elif msg_type == "stop_capture":
                reply = await controller.stop_capture(owner)
                await ws.send_json(reply.to_payload())

            elif msg_type == "feedback":
                await controller.feedback(str(msg.get("value", "")))
                await ws.send_json({"ok": True})

            elif msg_type == "document":
                try:
                    snapshot = DocumentSnapshot.model_validate(msg.get("snapshot", {}))
                except ValidationError as exc:
                    await ws.send_json({"ok": False, "error": str(exc)})
                    continue
                pipeline.overlay.document.update(snapshot)
                await controller.start_overlay()
                await ws.send_json({"ok": True})

            else:
                await ws.send_json({"ok": False, "error": f"unknown type {msg_type!r}"})

    except WebSocketDisconnect:
        logger.info("Control socket %s closed", owner)
    finally:
        logger.info("Stopping capture of control socket %s", owner)
        await controller.stop_capture(owner)
