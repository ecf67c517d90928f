import logging
import time
from typing import Optional

from fastapi import APIRouter, File, Form, HTTPException, UploadFile
from pydantic import BaseModel, Field

from roomscribe.services.streaming_transcription import StreamingTranscriptionService


class RoomRequest(BaseModel):
    roomSid: str = Field(..., min_length=1, description="Room identifier")
    roomName: Optional[str] = Field(None, description="Human readable room name")


def create_transcription_router(streaming_service: StreamingTranscriptionService) -> APIRouter:
    router = APIRouter()
    logger = logging.getLogger("roomscribe.api.transcription")

    @router.post("/api/v1/transcription/start")
    def start_transcription(payload: RoomRequest) -> dict:
        try:
            snapshot = streaming_service.start(payload.roomSid, room_name=payload.roomName)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {"success": True, "status": snapshot.to_dict()}

    @router.post("/api/v1/transcription/chunk")
    def submit_chunk(
        audio: UploadFile = File(...),
        roomSid: str = Form(...),
        chunkIndex: int = Form(...),
        hasOverlap: bool = Form(True),
        format: str = Form("webm"),
        sampleRate: Optional[int] = Form(None),
        channels: Optional[int] = Form(None),
    ) -> dict:
        start_time = time.perf_counter()
        audio_bytes = audio.file.read()
        logger.debug(
            "chunk received room=%s index=%s bytes=%d format=%s",
            roomSid,
            chunkIndex,
            len(audio_bytes),
            format,
        )
        try:
            result = streaming_service.submit_chunk(
                roomSid,
                chunkIndex,
                audio_bytes,
                has_overlap=hasOverlap,
                audio_format=format,
                sample_rate=sampleRate,
                channels=channels,
            )
        except ValueError as exc:
            logger.warning("chunk rejected room=%s index=%s: %s", roomSid, chunkIndex, exc)
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        logger.debug(
            "chunk handled in %.2f ms accepted=%s",
            (time.perf_counter() - start_time) * 1000,
            result.accepted,
        )
        return result.to_dict()

    @router.get("/api/v1/transcription/status/{room_sid}")
    def transcription_status(room_sid: str) -> dict:
        return streaming_service.get_status(room_sid).to_dict()

    @router.get("/api/v1/transcription/partial/{room_sid}")
    def partial_transcription(room_sid: str) -> dict:
        status = streaming_service.get_status(room_sid)
        return {
            "roomSid": room_sid,
            "transcription": streaming_service.get_partial_transcript(room_sid),
            "processedChunks": status.processed_count,
            "isFinalized": status.finalized,
        }

    @router.post("/api/v1/transcription/finalize")
    def finalize_transcription(payload: RoomRequest) -> dict:
        start_time = time.perf_counter()
        result = streaming_service.finalize(payload.roomSid)
        logger.info(
            "finalize room=%s exists=%s completed in %.2f ms",
            payload.roomSid,
            result.exists,
            (time.perf_counter() - start_time) * 1000,
        )
        return result.to_dict()

    @router.post("/api/v1/transcription/finalize-with-summary")
    def finalize_with_summary(payload: RoomRequest) -> dict:
        start_time = time.perf_counter()
        result = streaming_service.finalize_with_summary(
            payload.roomSid, room_name=payload.roomName
        )
        logger.info(
            "finalize-with-summary room=%s summary=%s completed in %.2f ms",
            payload.roomSid,
            result.summary_status.value,
            (time.perf_counter() - start_time) * 1000,
        )
        return result.to_dict()

    @router.delete("/api/v1/transcription/{room_sid}")
    def clear_room(room_sid: str) -> dict:
        try:
            existed = streaming_service.clear(room_sid)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {"success": True, "roomSid": room_sid, "existed": existed}

    return router
