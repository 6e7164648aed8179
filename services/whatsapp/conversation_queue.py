"""Serialized processing of detected conversations.

Every automated action on the shared page goes through a single consumer
task. `enqueue` only appends to an unbounded FIFO and never awaits, so it can
be called from the watcher bridge or an HTTP handler at any time; the consumer
is created when none is alive, which keeps at most one task driving the page.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from models.chat_models import ChatEvent, ConversationTask, QueueStats, Send
from services.whatsapp.chat_actions import ChatActions
from services.whatsapp.errors import QueueTaskFailure
from services.whatsapp.pacing import Pacing

LOGGER = logging.getLogger(__name__)


class ConversationQueue:
	"""FIFO of conversations answered one at a time."""

	def __init__(self, actions: ChatActions, oracle, pacing: Optional[Pacing] = None) -> None:
		self.actions = actions
		self.oracle = oracle
		self.pacing = pacing or getattr(actions, "pacing", None) or Pacing()
		self.stats = QueueStats()
		self._pending: asyncio.Queue[ConversationTask] = asyncio.Queue()
		self._worker: Optional[asyncio.Task] = None
		self._in_flight: Optional[ConversationTask] = None

	@property
	def draining(self) -> bool:
		return self._in_flight is not None or not self._pending.empty()

	@property
	def pending(self) -> int:
		return self._pending.qsize()

	@property
	def in_flight(self) -> Optional[ConversationTask]:
		return self._in_flight

	def enqueue(self, conversation_id: str, is_group: bool = False) -> ConversationTask:
		"""Append a task and make sure the consumer is running. Never blocks."""
		task = ConversationTask(conversation_id=conversation_id, is_group=is_group)
		self._pending.put_nowait(task)
		self.stats.enqueued += 1
		LOGGER.debug("Queued %s (pending=%d)", conversation_id, self._pending.qsize())
		self._ensure_worker()
		return task

	def submit(self, event: ChatEvent) -> ConversationTask:
		"""Admission hook for the chat watcher."""
		return self.enqueue(event.conversation_id, event.is_group)

	def _ensure_worker(self) -> None:
		if self._worker is not None and not self._worker.done():
			return
		self._worker = asyncio.get_running_loop().create_task(self._drain(), name="conversation-queue")

	async def _drain(self) -> None:
		while True:
			task = await self._pending.get()
			self._in_flight = task
			try:
				await self._process(task)
			except Exception as exc:
				failure = QueueTaskFailure(task.conversation_id, exc)
				self.stats.failed += 1
				LOGGER.error("%s", failure, exc_info=exc)
			finally:
				self._in_flight = None
				self.stats.processed += 1
				self._pending.task_done()
			await self.pacing.pause_between_tasks()

	async def _process(self, task: ConversationTask) -> None:
		LOGGER.info("Processing chat: %s", task.conversation_id)
		if not await self.actions.open_conversation(task.conversation_id):
			self.stats.abandoned += 1
			return

		transcript = await self.actions.read_transcript()
		LOGGER.debug("Chat history for %s: %d messages", task.conversation_id, len(transcript))

		decision = await self.oracle.decide(transcript, is_group=task.is_group)
		if not isinstance(decision, Send):
			LOGGER.info("No reply for %s", task.conversation_id)
			self.stats.skipped += 1
			return

		if await self.actions.send_message(decision.text):
			self.stats.sent += 1
		else:
			self.stats.abandoned += 1

	async def join(self) -> None:
		"""Wait until every admitted task has been processed."""
		await self._pending.join()

	async def stop(self) -> None:
		"""Cancel the consumer. Pending tasks are left in the queue."""
		worker, self._worker = self._worker, None
		if worker is None or worker.done():
			return
		worker.cancel()
		try:
			await worker
		except asyncio.CancelledError:
			pass
