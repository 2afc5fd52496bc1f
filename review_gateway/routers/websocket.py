from fastapi import APIRouter, WebSocket
import redis.asyncio as aioredis
from review_gateway.config import REDIS_URL

router = APIRouter()

@router.websocket("/ws/{job_id}")
async def ws(job_id: str, websocket: WebSocket):
    await websocket.accept()
    r = aioredis.from_url(REDIS_URL, decode_responses=True)
    pubsub = r.pubsub()
    await pubsub.subscribe(f"ws:{job_id}")

    job = websocket.app.state.workflow.queue.get_job(job_id)
    await websocket.send_json({
        "type": "WS_CONNECTED",
        "job_id": job_id,
        "status": job.status.value if job else None,
    })

    try:
        async for msg in pubsub.listen():
            if msg and msg.get("type") == "message":
                await websocket.send_text(msg["data"])
    finally:
        await pubsub.unsubscribe(f"ws:{job_id}")
        await pubsub.aclose()
        await r.aclose()
        await websocket.close()
