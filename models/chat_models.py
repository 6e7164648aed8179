"""Domain models for the chat session, detected events, and queued work."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union


def _utcnow() -> datetime:
	return datetime.now(timezone.utc)


class LoginState(str, Enum):
	"""Login progress of the single browser session. Only ever moves forward."""

	UNINITIALIZED = "uninitialized"
	AWAITING_QR = "awaiting_qr"
	LOGGED_IN = "logged_in"

	@property
	def rank(self) -> int:
		return _STATE_ORDER.index(self)


_STATE_ORDER = [LoginState.UNINITIALIZED, LoginState.AWAITING_QR, LoginState.LOGGED_IN]


@dataclass
class Session:
	"""Login session owned by the login state machine."""

	session_blob_path: str
	state: LoginState = LoginState.UNINITIALIZED
	last_persisted_at: Optional[datetime] = None


@dataclass(frozen=True)
class SessionProof:
	"""Returned once a login is confirmed."""

	screenshot_path: Optional[str]
	persisted: bool
	logged_in_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class ChatEvent:
	"""An unread conversation detected in the chat list."""

	conversation_id: str
	is_group: bool = False
	detected_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class ConversationTask:
	"""A conversation admitted to the queue and waiting to be answered."""

	conversation_id: str
	is_group: bool = False
	enqueued_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class Message:
	"""One transcript line. ``sender`` is ``"self"`` for outgoing messages."""

	sender: str
	text: str
	timestamp: str = ""

	@property
	def is_self(self) -> bool:
		return self.sender == SELF_SENDER


SELF_SENDER = "self"


@dataclass(frozen=True)
class Send:
	"""Reply with ``text``."""

	text: str


@dataclass(frozen=True)
class Skip:
	"""Stay silent for this conversation."""


SKIP = Skip()

ReplyDecision = Union[Send, Skip]


@dataclass
class QueueStats:
	"""Running counters for the conversation queue."""

	enqueued: int = 0
	processed: int = 0
	sent: int = 0
	skipped: int = 0
	abandoned: int = 0
	failed: int = 0

	def as_dict(self) -> dict:
		return {
			"enqueued": self.enqueued,
			"processed": self.processed,
			"sent": self.sent,
			"skipped": self.skipped,
			"abandoned": self.abandoned,
			"failed": self.failed,
		}
