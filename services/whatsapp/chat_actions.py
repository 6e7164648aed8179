"""Page-driving steps for one conversation: open, read, reply."""

from __future__ import annotations

import logging
from typing import Any, Iterable, List, Optional

from models.chat_models import SELF_SENDER, Message
from services.whatsapp import dom
from services.whatsapp.errors import ElementNotFound
from services.whatsapp.pacing import Pacing

LOGGER = logging.getLogger(__name__)


def parse_transcript(rows: Optional[Iterable[Any]], limit: int = 0) -> List[Message]:
	"""Convert raw transcript rows from the page into messages, oldest first.

	Rows without text (media, system notices) are skipped. When ``limit`` is
	positive only the most recent ``limit`` messages are kept.
	"""
	messages: List[Message] = []
	for row in rows or []:
		if not isinstance(row, dict):
			continue
		text = (row.get("text") or "").strip()
		if not text:
			continue
		sender = SELF_SENDER if row.get("outgoing") else (row.get("sender") or "").strip() or "unknown"
		messages.append(Message(sender=sender, text=text, timestamp=(row.get("timestamp") or "").strip()))
	if limit > 0:
		messages = messages[-limit:]
	return messages


class ChatActions:
	"""Open conversations, extract transcripts, and type replies on the shared page."""

	def __init__(
		self,
		browser,
		*,
		pacing: Optional[Pacing] = None,
		input_timeout: float = 10.0,
		transcript_limit: int = 20,
	) -> None:
		self.browser = browser
		self.pacing = pacing or Pacing()
		self.input_timeout = input_timeout
		self.transcript_limit = transcript_limit

	async def open_conversation(self, conversation_id: str) -> bool:
		"""Click the conversation in the chat list. Returns False if it is not visible."""
		chat = await self.browser.query(dom.chat_title(conversation_id))
		if not chat:
			LOGGER.warning('Chat "%s" not found', conversation_id)
			return False
		await self.browser.click(chat)
		await self.pacing.pause_after_open()
		LOGGER.info("Opened chat with %s", conversation_id)
		return True

	async def read_transcript(self) -> List[Message]:
		rows = await self.browser.evaluate(dom.TRANSCRIPT_SCRIPT)
		return parse_transcript(rows, self.transcript_limit)

	async def send_message(self, text: str) -> bool:
		"""Type ``text`` line by line (Shift+Enter between lines) and submit with Enter.

		Returns False when the message input does not show up in time.
		"""
		try:
			box = await self.browser.wait_for_element(dom.MESSAGE_INPUT, timeout=self.input_timeout)
		except ElementNotFound:
			LOGGER.warning("Message box not found within %ss; reply dropped", self.input_timeout)
			return False

		lines = text.split("\n")
		for index, line in enumerate(lines):
			if index:
				await self.browser.press_key(box, "Shift+Enter")
			if line:
				await self.browser.type_text(box, line, self.pacing.typing_delay_ms)
		await self.browser.press_key(box, "Enter")
		LOGGER.info("Message sent")
		return True
