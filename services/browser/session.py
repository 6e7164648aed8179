"""Playwright-backed browser session shared by the login, watcher, and queue.

`BrowserSession` owns exactly one browser context and one page. It has no
internal concurrency control: callers are responsible for making sure only one
flow drives the page at a time (the conversation queue does this for
automated replies).
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, List, Optional

from playwright.async_api import Browser, BrowserContext, ElementHandle, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from services.whatsapp.errors import ElementNotFound, SessionPersistFailure

LOGGER = logging.getLogger(__name__)

LAUNCH_ARGS = [
	"--no-sandbox",
	"--disable-setuid-sandbox",
	"--disable-dev-shm-usage",
	"--disable-gpu",
]


class BrowserSession:
	"""Single persistent Chromium context and page."""

	def __init__(
		self,
		session_file: str,
		*,
		headless: bool = True,
		user_agent: Optional[str] = None,
	) -> None:
		self.session_file = session_file
		self.headless = headless
		self.user_agent = user_agent
		self._playwright: Optional[Playwright] = None
		self._browser: Optional[Browser] = None
		self._context: Optional[BrowserContext] = None
		self._page: Optional[Page] = None
		self.restored = False

	@property
	def started(self) -> bool:
		return self._page is not None

	@property
	def page(self) -> Page:
		if self._page is None:
			raise RuntimeError("Browser session has not been started")
		return self._page

	async def start(self) -> Page:
		"""Launch the browser once and open the page, restoring the session blob if present."""
		if self._page is not None:
			return self._page

		self._playwright = await async_playwright().start()
		try:
			self._browser = await self._playwright.chromium.launch(headless=self.headless, args=LAUNCH_ARGS)
		except Exception:
			await self._playwright.stop()
			self._playwright = None
			raise

		if not await self.restore_session(self.session_file):
			await self._open_context(None)
		return self.page

	async def restore_session(self, path: str) -> bool:
		"""Recreate the context from a stored session blob. Returns False when no blob exists."""
		if not Path(path).is_file():
			LOGGER.info("No stored session at %s", path)
			return False
		try:
			await self._open_context(path)
		except PlaywrightError as exc:
			LOGGER.warning("Could not restore session from %s: %s", path, exc)
			await self._open_context(None)
			return False
		self.restored = True
		LOGGER.info("Restored browser session from %s", path)
		return True

	async def _open_context(self, storage_state: Optional[str]) -> None:
		if self._browser is None:
			raise RuntimeError("Browser has not been launched")
		if self._context is not None:
			await self._context.close()
		options: dict[str, Any] = {}
		if storage_state:
			options["storage_state"] = storage_state
		if self.user_agent:
			options["user_agent"] = self.user_agent
		self._context = await self._browser.new_context(**options)
		self._page = await self._context.new_page()

	async def navigate(self, url: str, wait_until: str = "domcontentloaded") -> None:
		await self.page.goto(url, wait_until=wait_until)

	async def wait_for_element(self, selector: str, timeout: Optional[float] = None) -> ElementHandle:
		"""Wait for a visible element. ``timeout`` is in seconds; None waits indefinitely.

		Raises:
			ElementNotFound: If the element does not appear in time.
		"""
		timeout_ms = 0 if timeout is None else max(timeout, 0) * 1000
		try:
			element = await self.page.wait_for_selector(selector, timeout=timeout_ms)
		except PlaywrightTimeoutError as exc:
			raise ElementNotFound(selector, timeout) from exc
		if element is None:
			raise ElementNotFound(selector, timeout)
		return element

	async def query(self, selector: str) -> Optional[ElementHandle]:
		return await self.page.query_selector(selector)

	async def query_all(self, selector: str) -> List[ElementHandle]:
		return await self.page.query_selector_all(selector)

	async def screenshot(
		self,
		path: Optional[str] = None,
		element: Optional[ElementHandle] = None,
		full_page: bool = True,
	) -> bytes:
		"""Capture the page (or a single element) and optionally write it to ``path``."""
		if path:
			Path(path).parent.mkdir(parents=True, exist_ok=True)
		if element is not None:
			return await element.screenshot(path=path)
		return await self.page.screenshot(path=path, full_page=full_page)

	async def evaluate(self, script: str, arg: Any = None) -> Any:
		return await self.page.evaluate(script, arg)

	async def expose_function(self, name: str, callback: Callable[..., Any]) -> None:
		"""Make ``callback`` callable from page scripts as ``window.<name>``."""
		await self.page.expose_function(name, callback)

	async def click(self, element: ElementHandle) -> None:
		await element.click()

	async def type_text(self, element: ElementHandle, text: str, delay_ms: float = 0) -> None:
		await element.focus()
		await self.page.keyboard.type(text, delay=delay_ms)

	async def press_key(self, element: ElementHandle, key: str) -> None:
		await element.press(key)

	async def persist_session(self, path: Optional[str] = None) -> str:
		"""Write the context storage state to ``path``, overwriting any previous blob.

		Raises:
			SessionPersistFailure: If the state cannot be serialized or written.
		"""
		target = path or self.session_file
		if self._context is None:
			raise SessionPersistFailure("No browser context to persist")
		try:
			Path(target).parent.mkdir(parents=True, exist_ok=True)
			await self._context.storage_state(path=target)
		except (OSError, PlaywrightError) as exc:
			raise SessionPersistFailure(f"Failed to write session to {target}: {exc}") from exc
		return target

	async def rearm(self, url: str) -> Page:
		"""Discard the current page and load ``url`` in a fresh one on the same context."""
		if self._context is None:
			await self.start()
		else:
			if self._page is not None:
				try:
					await self._page.close()
				except PlaywrightError as exc:
					LOGGER.debug("Ignoring error while closing page: %s", exc)
			self._page = await self._context.new_page()
		await self.navigate(url)
		return self.page

	async def close(self) -> None:
		"""Release the page, context, browser, and Playwright driver."""
		try:
			if self._context is not None:
				await self._context.close()
			if self._browser is not None:
				await self._browser.close()
		finally:
			if self._playwright is not None:
				await self._playwright.stop()
			self._playwright = None
			self._browser = None
			self._context = None
			self._page = None
