import asyncio
import random

import pytest

from conftest import FakeBrowser, FakeOracle
from models.chat_models import SKIP, ChatEvent, Send
from services.openai.reply_oracle import parse_decision
from services.whatsapp.chat_actions import ChatActions
from services.whatsapp.conversation_queue import ConversationQueue
from services.whatsapp.pacing import Pacing

pytestmark = pytest.mark.asyncio


async def test_sends_oracle_reply_to_opened_conversation(browser, make_queue):
    oracle = FakeOracle(replies={"Alice": Send("Sure, on it!")})
    queue = make_queue(browser, oracle)

    queue.enqueue("Alice", False)
    await queue.join()

    assert browser.opened() == ["Alice"]
    assert browser.sends() == ["Sure, on it!"]
    assert browser.log[-1] == ("key", "Enter")
    sender, is_group, messages = oracle.calls[0]
    assert (sender, is_group) == ("Alice", False)
    assert [(m.sender, m.text) for m in messages] == [("Alice", "hey")]


async def test_processes_in_enqueue_order(browser, make_queue):
    browser.delay = 0.01
    queue = make_queue(browser, FakeOracle())

    queue.enqueue("Bob", True)
    queue.enqueue("Alice", False)
    assert queue.draining
    await queue.join()

    assert browser.opened() == ["Bob", "Alice"]


async def test_flood_of_concurrent_enqueues_never_overlaps():
    names = [f"chat-{i}" for i in range(100)]
    browser = FakeBrowser(chats=names, delay=0.001)
    oracle = FakeOracle(delay=0.001, log=browser.log)
    queue = ConversationQueue(ChatActions(browser, pacing=Pacing.none()), oracle, Pacing.none())
    order = []

    async def admit(name):
        await asyncio.sleep(random.uniform(0, 0.005))
        order.append(name)
        queue.enqueue(name)

    await asyncio.gather(*(admit(name) for name in names))
    await queue.join()

    assert browser.max_active == 1
    assert browser.opened() == order
    expected = []
    for name in order:
        expected += [("open", name), ("read", name), ("decide", name), ("type", f"reply to {name}"), ("key", "Enter")]
    assert browser.log == expected
    assert queue.stats.sent == 100


@pytest.mark.parametrize("raw", ["skip", " Skip \n", "SKIP", "\tsKiP  "])
async def test_skip_token_never_sends(browser, make_queue, raw):
    queue = make_queue(browser, FakeOracle(default=parse_decision(raw)))

    queue.enqueue("Alice")
    await queue.join()

    assert browser.opened() == ["Alice"]
    assert browser.sends() == []
    assert queue.stats.skipped == 1


async def test_oracle_error_is_contained_and_queue_continues(browser, make_queue):
    oracle = FakeOracle(replies={"Bob": RuntimeError("quota exceeded")})
    queue = make_queue(browser, oracle)

    queue.enqueue("Bob")
    queue.enqueue("Alice")
    await queue.join()

    assert browser.sends() == ["reply to Alice"]
    assert queue.stats.failed == 1
    assert queue.stats.sent == 1
    assert not queue.draining


async def test_survives_many_failing_tasks(browser, make_queue):
    queue = make_queue(browser, FakeOracle(default=ValueError("boom")))

    for _ in range(25):
        queue.enqueue("Alice")
    await queue.join()

    assert queue.stats.failed == 25
    assert not queue.draining

    queue.oracle = FakeOracle()
    queue.enqueue("Bob")
    await queue.join()
    assert browser.sends() == ["reply to Bob"]


async def test_missing_conversation_is_abandoned_without_retry(browser, make_queue):
    oracle = FakeOracle()
    queue = make_queue(browser, oracle)

    queue.enqueue("Carol")
    queue.enqueue("Alice")
    await queue.join()

    assert browser.opened() == ["Alice"]
    assert oracle.calls[0][0] == "Alice"
    assert len(oracle.calls) == 1
    assert queue.stats.abandoned == 1


async def test_missing_message_input_drops_reply(browser, make_queue):
    browser.input_present = False
    queue = make_queue(browser, FakeOracle())

    queue.enqueue("Alice")
    await queue.join()

    assert browser.sends() == []
    assert queue.stats.abandoned == 1
    assert queue.stats.sent == 0


async def test_multiline_reply_uses_soft_newlines(browser, make_queue):
    queue = make_queue(browser, FakeOracle(default=Send("first line\nsecond line")))

    queue.enqueue("Alice")
    await queue.join()

    assert browser.log[-4:] == [
        ("type", "first line"),
        ("key", "Shift+Enter"),
        ("type", "second line"),
        ("key", "Enter"),
    ]


async def test_duplicate_events_are_not_coalesced(browser, make_queue):
    queue = make_queue(browser, FakeOracle())

    queue.submit(ChatEvent("Alice"))
    queue.submit(ChatEvent("Alice"))
    await queue.join()

    assert browser.opened() == ["Alice", "Alice"]


async def test_worker_restarts_after_being_stopped(browser, make_queue):
    queue = make_queue(browser, FakeOracle(default=SKIP))
    queue.enqueue("Alice")
    await queue.join()
    await queue.stop()

    queue.enqueue("Bob")
    await queue.join()

    assert browser.opened() == ["Alice", "Bob"]


class CountingPacing:
    typing_delay_ms = 0

    def __init__(self) -> None:
        self.between = 0

    async def pause_after_open(self) -> None:
        await asyncio.sleep(0)

    async def pause_between_tasks(self) -> None:
        self.between += 1
        await asyncio.sleep(0)


async def test_pauses_after_every_task_even_when_queue_empties(browser):
    pacing = CountingPacing()
    actions = ChatActions(browser, pacing=Pacing.none())
    queue = ConversationQueue(actions, FakeOracle(), pacing)

    queue.enqueue("Alice")
    await queue.join()
    assert pacing.between == 1

    queue.enqueue("Bob")
    await queue.join()
    assert pacing.between == 2
    assert browser.opened() == ["Alice", "Bob"]
    await queue.stop()
