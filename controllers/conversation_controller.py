"""Manual queue admission and queue inspection."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import HTTPException, Request

from controllers.login_controller import get_agent


async def enqueue_conversation(request: Request, conversation_id: str, is_group: bool) -> Dict[str, Any]:
	"""Queue a conversation for a reply, exactly as if the watcher had detected it."""
	name = (conversation_id or "").strip()
	if not name:
		raise HTTPException(status_code=400, detail="conversation_id is required.")
	agent = get_agent(request)
	task = agent.queue.enqueue(name, is_group)
	return {
		"conversation_id": task.conversation_id,
		"is_group": task.is_group,
		"enqueued_at": task.enqueued_at.isoformat(),
		"pending": agent.queue.pending,
	}


async def queue_status(request: Request) -> Dict[str, Any]:
	agent = get_agent(request)
	return agent.snapshot()["queue"]
