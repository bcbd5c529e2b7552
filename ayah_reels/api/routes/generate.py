import json
from pathlib import Path

from fastapi import APIRouter
from fastapi.responses import FileResponse, JSONResponse, StreamingResponse
from starlette.background import BackgroundTask

from ayah_reels.models.schemas import GenerationRequest, SubscribeRequest
from ayah_reels.services.generation_pipeline import GenerationOrchestrator

router = APIRouter(tags=["generator"])
orchestrator = GenerationOrchestrator()


def _already_processing(request_id: str) -> JSONResponse:
    return JSONResponse(status_code=202, content={"message": "Already processing", "requestId": request_id})


@router.post("/generate-video")
def generate_video(payload: GenerationRequest):
    result = orchestrator.start(payload)
    if result.status == "already_processing":
        return _already_processing(result.request_id)

    path = Path(result.output_path or "")
    return FileResponse(
        path,
        media_type="video/mp4",
        filename=path.name,
        headers={"X-Request-Id": result.request_id},
        background=BackgroundTask(orchestrator.release_output, path),
    )


@router.post("/generate-video/async", status_code=202)
def generate_video_async(payload: GenerationRequest) -> dict:
    result = orchestrator.submit(payload)
    return {"status": result.status, "requestId": result.request_id}


@router.get("/progress/{request_id}")
async def progress_stream(request_id: str) -> StreamingResponse:
    async def events():
        async for record in orchestrator.watch(request_id):
            yield f"data: {json.dumps(record.event())}\n\n"

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@router.post("/subscribe", status_code=201)
def subscribe(payload: SubscribeRequest) -> dict:
    orchestrator.subscribe(payload.request_id, payload.subscription)
    return {"message": "Subscribed successfully"}
