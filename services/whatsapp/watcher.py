"""Turn chat-list DOM mutations into a stream of `ChatEvent`."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

from models.chat_models import ChatEvent
from services.whatsapp import dom

LOGGER = logging.getLogger(__name__)


def event_from_payload(payload: Any) -> Optional[ChatEvent]:
	"""Build an event from the page callback payload, or None when it has no title."""
	if not isinstance(payload, dict):
		return None
	name = payload.get("name")
	if not isinstance(name, str) or not name.strip():
		return None
	return ChatEvent(conversation_id=name.strip(), is_group=bool(payload.get("isGroup")))


class ChatEventWatcher:
	"""Observe the conversation list and forward unread conversations.

	The page reports unread rows through an exposed host function. That
	function only parses the payload and drops the event into an unbounded
	channel; a forwarding task hands events to ``on_event`` so the observer is
	never held up by the consumer. No deduplication happens here.
	"""

	def __init__(self, browser, binding_name: str = dom.EVENT_BINDING) -> None:
		self.browser = browser
		self.binding_name = binding_name
		self._channel: asyncio.Queue[ChatEvent] = asyncio.Queue()
		self._forwarder: Optional[asyncio.Task] = None
		self._install_lock = asyncio.Lock()
		self._installed = False
		self._bridge_exposed = False
		self.detected = 0

	@property
	def installed(self) -> bool:
		return self._installed

	async def start(self, on_event: Callable[[ChatEvent], Any]) -> bool:
		"""Install the observer once. Returns False when the chat list is not loaded yet.

		Overlapping calls are serialized; the later ones see the finished
		installation and return True without touching the page.
		"""
		async with self._install_lock:
			if self._installed:
				LOGGER.info("Observer already registered")
				return True
			return await self._install(on_event)

	async def _install(self, on_event: Callable[[ChatEvent], Any]) -> bool:
		container = None
		for selector in (dom.CHAT_LIST, dom.CHAT_LIST_FALLBACK):
			container = await self.browser.query(selector)
			if container:
				break
		if not container:
			LOGGER.warning("Chat list not found; observer not installed")
			return False

		if not self._bridge_exposed:
			await self.browser.expose_function(self.binding_name, self._on_page_event)
			self._bridge_exposed = True

		installed = await self.browser.evaluate(
			dom.INSTALL_OBSERVER_SCRIPT,
			{"binding": self.binding_name, "selectors": [dom.CHAT_LIST, dom.CHAT_LIST_FALLBACK]},
		)
		if not installed:
			LOGGER.warning("Chat list disappeared before the observer was attached")
			return False

		self._installed = True
		self._forwarder = asyncio.create_task(self._forward(on_event))
		LOGGER.info("Now observing chat list for new messages")
		return True

	def _on_page_event(self, payload: Any) -> None:
		event = event_from_payload(payload)
		if event is None:
			LOGGER.debug("Dropping unread row without a title: %r", payload)
			return
		self.detected += 1
		LOGGER.info("New unread chat detected: %s (group=%s)", event.conversation_id, event.is_group)
		self._channel.put_nowait(event)

	async def _forward(self, on_event: Callable[[ChatEvent], Any]) -> None:
		while True:
			event = await self._channel.get()
			try:
				result = on_event(event)
				if asyncio.iscoroutine(result):
					await result
			except Exception:
				LOGGER.exception("Event consumer rejected %s", event.conversation_id)
			finally:
				self._channel.task_done()

	async def drain(self) -> None:
		"""Wait until every detected event has been handed to the consumer."""
		await self._channel.join()

	async def stop(self) -> None:
		"""Stop forwarding events. The in-page observer stays on the page."""
		if self._forwarder is None:
			return
		self._forwarder.cancel()
		try:
			await self._forwarder
		except asyncio.CancelledError:
			pass
		self._forwarder = None

	async def reset(self) -> None:
		"""Forget the installation after the page was replaced."""
		await self.stop()
		self._installed = False
		self._bridge_exposed = False
