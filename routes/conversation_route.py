"""FastAPI routes for the conversation queue."""

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from controllers.conversation_controller import enqueue_conversation, queue_status

router = APIRouter(tags=["conversations"])


class EnqueuePayload(BaseModel):
	conversation_id: str
	is_group: bool = False


@router.post("/conversations", status_code=202)
async def enqueue_route(request: Request, payload: EnqueuePayload):
	try:
		return await enqueue_conversation(request, payload.conversation_id, payload.is_group)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.get("/queue")
async def queue_route(request: Request):
	try:
		return await queue_status(request)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))
