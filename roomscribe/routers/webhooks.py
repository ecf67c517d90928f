import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, HTTPException, Request
from fastapi.responses import PlainTextResponse

from roomscribe.services.signature import WebhookSignatureValidator
from roomscribe.services.streaming_transcription import StreamingTranscriptionService

ROOM_ENDED_EVENTS = ("room-ended", "room-completed")
SIGNATURE_HEADER = "X-Twilio-Signature"


def _pick(params: dict, *keys: str) -> Optional[str]:
    for key in keys:
        value = params.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
    return None


def create_webhooks_router(
    streaming_service: StreamingTranscriptionService,
    signature_validator: WebhookSignatureValidator,
) -> APIRouter:
    """Room provider callbacks. Responds at once; finalize + summary run in the background."""
    router = APIRouter()
    logger = logging.getLogger("roomscribe.api.webhooks")

    def finalize_room(room_sid: str, room_name: Optional[str]) -> None:
        result = streaming_service.finalize_with_summary(room_sid, room_name=room_name)
        if not result.exists:
            logger.warning("Room-ended webhook for unknown room %s", room_sid)
            return
        logger.info(
            "Room %s processed from webhook: %d chars, summary=%s",
            room_sid,
            len(result.transcript),
            result.summary_status.value,
        )

    def handle_event(params: dict, background_tasks: BackgroundTasks) -> PlainTextResponse:
        room_sid = _pick(params, "RoomSid", "roomSid")
        room_name = _pick(params, "RoomName", "roomName")
        event = _pick(params, "StatusCallbackEvent", "statusCallbackEvent")
        logger.info("Webhook event=%s room=%s name=%s", event, room_sid, room_name)

        if not room_sid:
            raise HTTPException(status_code=400, detail="Missing RoomSid")

        if event in ROOM_ENDED_EVENTS:
            background_tasks.add_task(finalize_room, room_sid, room_name)
        else:
            logger.debug("Ignoring webhook event %s", event)
        return PlainTextResponse("OK")

    @router.post("/webhooks/twilio/room-ended")
    async def room_ended(request: Request, background_tasks: BackgroundTasks) -> PlainTextResponse:
        form = await request.form()
        params = {key: str(value) for key, value in form.items()}
        if not signature_validator.validate(request.headers.get(SIGNATURE_HEADER), params):
            logger.warning("Rejected webhook with invalid signature for room %s", params.get("RoomSid"))
            raise HTTPException(status_code=403, detail="Invalid signature")
        return handle_event(params, background_tasks)

    @router.post("/webhooks/twilio/room-event")
    async def room_event(request: Request, background_tasks: BackgroundTasks) -> PlainTextResponse:
        try:
            payload = await request.json()
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="Invalid JSON body") from exc
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="Expected a JSON object")
        if not signature_validator.validate(request.headers.get(SIGNATURE_HEADER), {}):
            logger.warning("Rejected webhook with invalid signature for room %s", payload.get("RoomSid"))
            raise HTTPException(status_code=403, detail="Invalid signature")
        return handle_event(payload, background_tasks)

    return router
