"""Login/session state machine for the single WhatsApp Web account."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from models.chat_models import LoginState, Session, SessionProof
from services.whatsapp import dom
from services.whatsapp.errors import ElementNotFound, SessionPersistFailure

LOGGER = logging.getLogger(__name__)

QR_HINT_WAIT_SECONDS = 2.0


class LoginStateMachine:
	"""Drive the browser session from QR acquisition to a confirmed login.

	State moves forward only (uninitialized -> awaiting_qr -> logged_in); a
	probe that fails or reports a logged-out page never demotes it. The only
	way back is an explicit `reset()` issued by an operator re-arm.
	"""

	def __init__(
		self,
		browser,
		*,
		url: str,
		session_file: str,
		proof_dir: str,
		poll_interval: float = 2.0,
		qr_timeout: float = 60.0,
	) -> None:
		self.browser = browser
		self.url = url
		self.proof_dir = proof_dir
		self.poll_interval = poll_interval
		self.qr_timeout = qr_timeout
		self.session = Session(session_blob_path=session_file)
		self._activated = False

	@property
	def state(self) -> LoginState:
		return self.session.state

	@property
	def activated(self) -> bool:
		return self._activated

	async def activate(self) -> LoginState:
		"""Open the chat app once and determine the initial state."""
		if self._activated:
			return self.session.state
		await self.browser.start()
		await self.browser.navigate(self.url)
		await self.wait_for_qr_hint()
		self._activated = True
		state = await self.probe_status()
		LOGGER.info("Login state after activation: %s", state.value)
		return state

	async def wait_for_qr_hint(self) -> None:
		"""Give a freshly loaded page a short window to render the QR code or the chat UI."""
		try:
			await self.browser.wait_for_element(dom.QR_CANVAS_HINT, timeout=QR_HINT_WAIT_SECONDS)
		except ElementNotFound:
			# Either already logged in or still loading; the probe decides.
			pass

	async def probe_status(self) -> LoginState:
		"""Return the observed login state. Never raises."""
		try:
			marker = await self.browser.query(dom.LOGGED_IN_MARKER)
		except Exception as exc:
			LOGGER.warning("Login probe failed: %s", exc)
			marker = None
		observed = LoginState.LOGGED_IN if marker else LoginState.AWAITING_QR
		self._advance(observed)
		return observed

	def _advance(self, observed: LoginState) -> None:
		if observed.rank > self.session.state.rank:
			LOGGER.info("Login state %s -> %s", self.session.state.value, observed.value)
			self.session.state = observed

	async def capture_qr_image(self) -> bytes:
		"""Wait for the QR code to render and return it as PNG bytes.

		Raises:
			ElementNotFound: If no QR code renders within the startup window.
		"""
		canvas = await self.browser.wait_for_element(dom.QR_CANVAS, timeout=self.qr_timeout)
		return await self.browser.screenshot(element=canvas)

	async def await_login(self) -> SessionProof:
		"""Poll until logged in, persist the session once, and return a proof.

		There is no timeout: a human has to scan the code. Wrap the call in
		`asyncio.wait_for` to bound it.
		"""
		LOGGER.info("Waiting for QR scan/login...")
		while await self.probe_status() != LoginState.LOGGED_IN:
			await asyncio.sleep(self.poll_interval)

		persisted = self.session.last_persisted_at is not None
		if not persisted:
			persisted = await self.persist_session()

		screenshot_path = await self._capture_proof("whatsapp_logged_in.png")
		LOGGER.info("Logged in (session saved: %s)", persisted)
		return SessionProof(screenshot_path=screenshot_path, persisted=persisted)

	async def persist_session(self) -> bool:
		"""Write the session blob. Failures are logged and reported as False."""
		try:
			await self.browser.persist_session(self.session.session_blob_path)
		except SessionPersistFailure as exc:
			LOGGER.error("Session not persisted; it will not survive a restart: %s", exc)
			return False
		self.session.last_persisted_at = datetime.now(timezone.utc)
		LOGGER.info("Session saved to %s", self.session.session_blob_path)
		return True

	async def capture_proof(self, filename: str = "whatsapp_already_logged.png") -> Optional[bytes]:
		"""Screenshot the whole page into the proof directory and return the bytes."""
		path = str(Path(self.proof_dir) / filename)
		try:
			return await self.browser.screenshot(path=path)
		except Exception as exc:
			LOGGER.warning("Could not capture proof screenshot: %s", exc)
			return None

	async def _capture_proof(self, filename: str) -> Optional[str]:
		if await self.capture_proof(filename) is None:
			return None
		return str(Path(self.proof_dir) / filename)

	def reset(self) -> None:
		"""Forget the login state. Only called for an operator re-arm."""
		self.session.state = LoginState.UNINITIALIZED
		self.session.last_persisted_at = None
