"""Exceptions raised by the chat session, queue, and reply oracle."""

from __future__ import annotations

from typing import Optional


class ChatAgentError(Exception):
	"""Base class for chat automation errors."""


class ElementNotFound(ChatAgentError):
	"""An expected UI element did not appear on the page."""

	def __init__(self, selector: str, timeout: Optional[float] = None) -> None:
		self.selector = selector
		self.timeout = timeout
		detail = f"Element not found: {selector}"
		if timeout is not None:
			detail += f" (waited {timeout:g}s)"
		super().__init__(detail)


class OracleFailure(ChatAgentError):
	"""The reply oracle failed or returned something unusable."""


class SessionPersistFailure(ChatAgentError):
	"""The session blob could not be written to disk."""


class QueueTaskFailure(ChatAgentError):
	"""Processing a single queued conversation failed."""

	def __init__(self, conversation_id: str, cause: BaseException) -> None:
		self.conversation_id = conversation_id
		self.cause = cause
		super().__init__(f"Task for '{conversation_id}' failed: {cause!r}")
