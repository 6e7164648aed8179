"""Composition root for the WhatsApp auto-responder."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

from models.chat_models import LoginState, SessionProof
from services.browser.session import BrowserSession
from services.openai.reply_oracle import ReplyOracle
from services.whatsapp.chat_actions import ChatActions
from services.whatsapp.conversation_queue import ConversationQueue
from services.whatsapp.login import LoginStateMachine
from services.whatsapp.pacing import Pacing
from services.whatsapp.watcher import ChatEventWatcher
from utils.settings import Settings

LOGGER = logging.getLogger(__name__)


class ChatAgent:
	"""Own the browser session and wire login, watcher, and queue around it."""

	def __init__(
		self,
		browser,
		login: LoginStateMachine,
		watcher: ChatEventWatcher,
		queue: ConversationQueue,
		*,
		url: str,
		watch_retry_attempts: int = 5,
		watch_retry_seconds: float = 3.0,
	) -> None:
		self.browser = browser
		self.login = login
		self.watcher = watcher
		self.queue = queue
		self.url = url
		self.watch_retry_attempts = watch_retry_attempts
		self.watch_retry_seconds = watch_retry_seconds
		self.last_proof: Optional[SessionProof] = None
		self._login_task: Optional[asyncio.Task] = None

	@classmethod
	def from_settings(cls, settings: Settings, openai_client) -> "ChatAgent":
		browser = BrowserSession(
			settings.session_file,
			headless=settings.headless,
			user_agent=settings.user_agent,
		)
		pacing = Pacing(typing_delay_ms=settings.typing_delay_ms) if settings.human_pacing else Pacing.none()
		login = LoginStateMachine(
			browser,
			url=settings.whatsapp_url,
			session_file=settings.session_file,
			proof_dir=settings.proof_dir,
			poll_interval=settings.login_poll_seconds,
			qr_timeout=settings.qr_timeout_seconds,
		)
		actions = ChatActions(
			browser,
			pacing=pacing,
			input_timeout=settings.input_timeout_seconds,
			transcript_limit=settings.transcript_limit,
		)
		oracle = ReplyOracle(openai_client, model=settings.openai_model, timeout=settings.oracle_timeout_seconds)
		return cls(
			browser,
			login,
			ChatEventWatcher(browser),
			ConversationQueue(actions, oracle, pacing),
			url=settings.whatsapp_url,
			watch_retry_attempts=settings.watch_retry_attempts,
			watch_retry_seconds=settings.watch_retry_seconds,
		)

	@property
	def watching(self) -> bool:
		return self.watcher.installed

	@property
	def login_task(self) -> Optional[asyncio.Task]:
		return self._login_task

	@property
	def waiting_for_login(self) -> bool:
		return self._login_task is not None and not self._login_task.done()

	async def activate(self) -> LoginState:
		return await self.login.activate()

	async def status(self) -> str:
		"""Return "logged_in" or "not_logged_in" for the operator surface."""
		await self.activate()
		state = await self.login.probe_status()
		return "logged_in" if state == LoginState.LOGGED_IN else "not_logged_in"

	async def capture_qr(self) -> bytes:
		await self.activate()
		return await self.login.capture_qr_image()

	async def capture_proof(self) -> Optional[bytes]:
		return await self.login.capture_proof()

	def ensure_watching(self) -> Optional[asyncio.Task]:
		"""Start (once) the background flow: wait for login, then install the watcher."""
		if self.watching:
			return None
		if self._login_task is None or self._login_task.done():
			self._login_task = asyncio.create_task(self._login_then_watch(), name="login-then-watch")
		return self._login_task

	async def _login_then_watch(self) -> bool:
		try:
			self.last_proof = await self.login.await_login()
			LOGGER.info("WhatsApp logged in, proof: %s", self.last_proof.screenshot_path)
			for attempt in range(1, self.watch_retry_attempts + 1):
				if await self.watcher.start(self.queue.submit):
					return True
				LOGGER.info("Watcher install attempt %d/%d failed", attempt, self.watch_retry_attempts)
				await asyncio.sleep(self.watch_retry_seconds)
			LOGGER.error("Giving up on installing the chat watcher")
			return False
		except asyncio.CancelledError:
			raise
		except Exception:
			LOGGER.exception("Error during login/watch")
			return False

	async def rearm(self) -> str:
		"""Discard the page, load the chat app again, and re-probe the login state.

		The login-then-watch flow is restarted afterwards so the new page gets
		its own observer once the session is confirmed.
		"""
		if self.queue.draining:
			LOGGER.warning("Re-arming while the queue is busy; the in-flight task may fail")
		await self._cancel_login_task()
		await self.watcher.reset()
		if self.login.activated:
			await self.browser.rearm(self.url)
			self.login.reset()
			await self.login.wait_for_qr_hint()
		else:
			await self.login.activate()
		state = await self.login.probe_status()
		LOGGER.info("Re-armed page, state: %s", state.value)
		self.ensure_watching()
		return "logged_in" if state == LoginState.LOGGED_IN else "not_logged_in"

	def snapshot(self) -> Dict[str, Any]:
		return {
			"state": self.login.state.value,
			"watching": self.watching,
			"waiting_for_login": self.waiting_for_login,
			"queue": {
				"draining": self.queue.draining,
				"pending": self.queue.pending,
				"in_flight": self.queue.in_flight.conversation_id if self.queue.in_flight else None,
				**self.queue.stats.as_dict(),
			},
		}

	async def _cancel_login_task(self) -> None:
		task, self._login_task = self._login_task, None
		if task is None or task.done():
			return
		task.cancel()
		try:
			await task
		except asyncio.CancelledError:
			pass

	async def close(self) -> None:
		await self._cancel_login_task()
		await self.watcher.stop()
		await self.queue.stop()
		await self.browser.close()
