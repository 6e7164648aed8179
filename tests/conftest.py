"""Shared fakes for the browser session and the OpenAI client."""

import asyncio
import os
from dataclasses import dataclass
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest

os.environ.setdefault("OPENAI_API_KEY", "test-key")

from models.chat_models import SKIP, Send  # noqa: E402
from services.whatsapp import dom  # noqa: E402
from services.whatsapp.chat_actions import ChatActions  # noqa: E402
from services.whatsapp.conversation_queue import ConversationQueue  # noqa: E402
from services.whatsapp.errors import ElementNotFound, SessionPersistFailure  # noqa: E402
from services.whatsapp.pacing import Pacing  # noqa: E402


@dataclass(frozen=True)
class FakeElement:
    name: str


class FakeBrowser:
    """In-memory stand-in for `BrowserSession` that records every page action."""

    def __init__(self, chats=(), delay: float = 0.0) -> None:
        self.chats = set(chats)
        self.delay = delay
        self.logged_in = False
        self.qr_present = True
        self.chat_list_present = True
        self.input_present = True
        self.fail_persist = False
        self.fail_navigate = False
        self.transcripts: Dict[str, List[dict]] = {}
        self.current_chat: Optional[str] = None
        self.log: List[tuple] = []
        self.navigations: List[str] = []
        self.persist_calls: List[str] = []
        self.exposed: Dict[str, Any] = {}
        self.observer_installs = 0
        self.started = False
        self.rearms = 0
        self.active = 0
        self.max_active = 0

    async def _tick(self) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        else:
            await asyncio.sleep(0)

    async def start(self):
        self.started = True

    async def navigate(self, url: str, wait_until: str = "domcontentloaded") -> None:
        if self.fail_navigate:
            raise RuntimeError("net::ERR_NAME_NOT_RESOLVED")
        self.navigations.append(url)

    async def rearm(self, url: str):
        self.rearms += 1
        # A fresh page carries no exposed functions.
        self.exposed.clear()
        self.navigations.append(url)

    async def close(self) -> None:
        self.started = False

    async def query(self, selector: str):
        await self._tick()
        if selector == dom.LOGGED_IN_MARKER:
            return FakeElement("main") if self.logged_in else None
        if selector in (dom.CHAT_LIST, dom.CHAT_LIST_FALLBACK):
            return FakeElement("chat-list") if self.chat_list_present else None
        for name in self.chats:
            if selector == dom.chat_title(name):
                return FakeElement(name)
        return None

    async def wait_for_element(self, selector: str, timeout: Optional[float] = None):
        await self._tick()
        if selector in (dom.QR_CANVAS, dom.QR_CANVAS_HINT) and self.qr_present and not self.logged_in:
            return FakeElement("qr")
        if selector == dom.MESSAGE_INPUT and self.input_present:
            return FakeElement("input")
        raise ElementNotFound(selector, timeout)

    async def click(self, element: FakeElement) -> None:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        self.current_chat = element.name
        self.log.append(("open", element.name))
        await self._tick()

    async def evaluate(self, script: str, arg: Any = None):
        await self._tick()
        if script == dom.TRANSCRIPT_SCRIPT:
            self.log.append(("read", self.current_chat))
            default = [{"sender": self.current_chat, "text": "hey", "timestamp": "10:00, 1/1/2026"}]
            return self.transcripts.get(self.current_chat, default)
        if script == dom.INSTALL_OBSERVER_SCRIPT:
            self.observer_installs += 1
            return self.chat_list_present
        return None

    async def expose_function(self, name: str, callback) -> None:
        if name in self.exposed:
            raise RuntimeError(f"Function \"{name}\" has been already registered")
        self.exposed[name] = callback

    async def type_text(self, element: FakeElement, text: str, delay_ms: float = 0) -> None:
        self.log.append(("type", text))
        await self._tick()

    async def press_key(self, element: FakeElement, key: str) -> None:
        self.log.append(("key", key))
        if key == "Enter":
            self.active -= 1
        await self._tick()

    async def screenshot(self, path: Optional[str] = None, element=None, full_page: bool = True) -> bytes:
        return b"\x89PNG-" + (element.name.encode() if element else b"page")

    async def persist_session(self, path: Optional[str] = None) -> str:
        self.persist_calls.append(path)
        if self.fail_persist:
            raise SessionPersistFailure("disk full")
        return path

    def sends(self) -> List[str]:
        return [entry[1] for entry in self.log if entry[0] == "type"]

    def opened(self) -> List[str]:
        return [entry[1] for entry in self.log if entry[0] == "open"]


class FakeOracle:
    """Scripted oracle. ``replies`` maps a conversation (last sender) to a decision or exception."""

    def __init__(self, replies=None, default=None, delay: float = 0.0, log: Optional[list] = None) -> None:
        self.replies = replies or {}
        self.default = default
        self.delay = delay
        self.log = log
        self.calls: List[tuple] = []

    async def decide(self, messages, is_group=False):
        sender = messages[-1].sender if messages else None
        self.calls.append((sender, is_group, list(messages)))
        if self.log is not None:
            self.log.append(("decide", sender))
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.replies.get(sender, self.default)
        if isinstance(outcome, BaseException):
            raise outcome
        if outcome is None:
            return Send(f"reply to {sender}")
        return outcome


class FakeResponses:
    def __init__(self, output_text: str = "", error: Optional[BaseException] = None, delay: float = 0.0) -> None:
        self.output_text = output_text
        self.error = error
        self.delay = delay
        self.requests: List[dict] = []

    async def create(self, **kwargs):
        self.requests.append(kwargs)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(output=[], output_text=self.output_text, usage=None)


class FakeOpenAIClient:
    def __init__(self, **kwargs) -> None:
        self.responses = FakeResponses(**kwargs)


@pytest.fixture
def browser() -> FakeBrowser:
    return FakeBrowser(chats={"Alice", "Bob"})


@pytest.fixture
def make_queue():
    def _make(browser: FakeBrowser, oracle) -> ConversationQueue:
        actions = ChatActions(browser, pacing=Pacing.none(), input_timeout=0.1, transcript_limit=0)
        return ConversationQueue(actions, oracle, Pacing.none())

    return _make


__all__ = ["FakeBrowser", "FakeElement", "FakeOracle", "FakeOpenAIClient", "SKIP"]
