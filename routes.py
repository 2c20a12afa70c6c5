"""API route handlers for Trilingua."""
from log import get_logger, timed

logger = get_logger("trilingua.routes")

from fastapi import APIRouter, HTTPException, Request, Response

from models import LookupRequest, SpeechRequest, SessionState
from media import BufferSink
from export import EXPORT_MEDIA_TYPE, export_filename

router = APIRouter()

MAX_INPUT_LEN = 500


def _session_payload(state: SessionState) -> dict:
    return state.model_dump(mode="json", by_alias=True, exclude_none=True)


@router.get("/api/health", tags=["System"], summary="Service health")
async def health(request: Request):
    services = request.app.state
    return {
        "status": "ok",
        "configured": services.client.configured,
        "history": len(services.history),
    }


@router.post("/api/lookup", tags=["Lookup"], summary="Analyze a word or sentence",
             description="Starts a lookup. With wait=true the response carries the settled session state.")
async def lookup(request: Request, req: LookupRequest):
    if not req.query or not req.query.strip():
        raise HTTPException(400, "Query cannot be empty")
    if len(req.query) > MAX_INPUT_LEN:
        raise HTTPException(400, f"Input too long (max {MAX_INPUT_LEN} characters)")

    session = request.app.state.session
    accepted = session.submit(req.query, req.mode)
    if accepted and req.wait:
        await session.wait()
    return {"accepted": accepted, "session": _session_payload(session.state)}


@router.get("/api/session", tags=["Lookup"], summary="Current lookup state")
async def get_session(request: Request):
    return _session_payload(request.app.state.session.state)


@router.get("/api/history", tags=["History"], summary="Past lookups, newest first")
async def get_history(request: Request):
    return [
        item.model_dump(mode="json", by_alias=True, exclude_none=True)
        for item in request.app.state.history.items
    ]


@router.post("/api/history/{item_id}/load", tags=["History"], summary="Show a past lookup again")
async def load_history_item(request: Request, item_id: str):
    item = request.app.state.history.get(item_id)
    if item is None:
        raise HTTPException(404, "History item not found")
    state = request.app.state.session.load_from_history(item)
    return _session_payload(state)


@router.get("/api/export", tags=["History", "Export"], summary="Export history as CSV")
async def export_history(request: Request):
    history = request.app.state.history
    if not len(history):
        return Response(status_code=204)
    with timed(logger, "Exported history", component="export", count=len(history)):
        body = history.export()
    headers = {"Content-Disposition": f'attachment; filename="{export_filename()}"'}
    return Response(content=body, media_type=EXPORT_MEDIA_TYPE, headers=headers)


@router.post("/api/speak", tags=["Speech"], summary="Speak text aloud",
             description="Returns 24 kHz mono WAV, or 204 when the backend produced no audio.")
async def speak(request: Request, req: SpeechRequest):
    if not req.text or not req.text.strip():
        raise HTTPException(400, "Text cannot be empty")
    if len(req.text) > MAX_INPUT_LEN * 4:
        raise HTTPException(400, "Text too long")

    sink = BufferSink()
    await request.app.state.media.generate_speech(req.text, req.lang, sink=sink)
    if not sink.has_audio:
        logger.info("No audio produced", extra={"component": "speech", "lang": req.lang})
        return Response(status_code=204)
    return Response(content=sink.to_wav(), media_type="audio/wav")
