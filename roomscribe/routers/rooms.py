from typing import Optional

from fastapi import APIRouter

from roomscribe.services.room_store import SummaryStatus
from roomscribe.services.streaming_transcription import StreamingTranscriptionService


def create_rooms_router(streaming_service: StreamingTranscriptionService) -> APIRouter:
    """Read-only views of a room for clients that poll after the call ends."""
    router = APIRouter()

    def summary_payload(room_sid: str) -> tuple[str, Optional[dict]]:
        status, summary = streaming_service.get_summary(room_sid)
        if status is SummaryStatus.NONE:
            label = "PENDING"
        else:
            label = status.name
        return label, summary.to_dict() if summary else None

    @router.get("/api/v1/rooms/{room_sid}/transcription")
    def room_transcription(room_sid: str) -> dict:
        status = streaming_service.get_status(room_sid)
        return {
            "roomSid": room_sid,
            "transcription": streaming_service.get_partial_transcript(room_sid),
            "status": "COMPLETED" if status.finalized and status.in_flight_count == 0 else "PROCESSING",
            "processedChunks": status.processed_count,
        }

    @router.get("/api/v1/rooms/{room_sid}/summary")
    def room_summary(room_sid: str) -> dict:
        label, summary = summary_payload(room_sid)
        return {"roomSid": room_sid, "summary": summary, "status": label}

    @router.get("/api/v1/rooms/{room_sid}/status")
    def room_status(room_sid: str) -> dict:
        return streaming_service.get_status(room_sid).to_dict()

    @router.get("/api/v1/rooms/{room_sid}/full")
    def room_full(room_sid: str) -> dict:
        status = streaming_service.get_status(room_sid)
        transcription = streaming_service.get_partial_transcript(room_sid)
        summary_label, summary = summary_payload(room_sid)

        if not status.exists:
            overall = "NOT_FOUND"
        elif status.in_flight_count > 0:
            overall = "PROCESSING"
        elif not transcription:
            overall = "PENDING"
        elif summary is None:
            overall = "TRANSCRIPTION_COMPLETE"
        else:
            overall = "COMPLETE"

        return {
            "roomSid": room_sid,
            "transcription": {
                "text": transcription,
                "status": "COMPLETED" if transcription else "PENDING",
            },
            "summary": summary,
            "summaryStatus": summary_label,
            "status": overall,
            "processedChunks": status.processed_count,
            "activeProcessing": status.in_flight_count,
        }

    return router
