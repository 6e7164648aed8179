import asyncio

import pytest

from conftest import FakeBrowser
from models.chat_models import LoginState
from services.whatsapp.errors import ElementNotFound
from services.whatsapp.login import LoginStateMachine

pytestmark = pytest.mark.asyncio


def _machine(browser: FakeBrowser, **kwargs) -> LoginStateMachine:
    options = dict(
        url="https://web.whatsapp.com",
        session_file="/tmp/session.json",
        proof_dir="/tmp/proof",
        poll_interval=0.01,
        qr_timeout=0.05,
    )
    options.update(kwargs)
    return LoginStateMachine(browser, **options)


async def test_activation_without_session_awaits_qr():
    browser = FakeBrowser()
    machine = _machine(browser)

    assert machine.state == LoginState.UNINITIALIZED
    assert await machine.activate() == LoginState.AWAITING_QR
    assert browser.started
    assert browser.navigations == ["https://web.whatsapp.com"]


async def test_activation_with_restored_session_is_logged_in():
    browser = FakeBrowser()
    browser.logged_in = True
    machine = _machine(browser)

    assert await machine.activate() == LoginState.LOGGED_IN
    assert await machine.activate() == LoginState.LOGGED_IN
    assert len(browser.navigations) == 1


async def test_probe_failure_counts_as_awaiting_qr():
    browser = FakeBrowser()

    async def broken(selector):
        raise RuntimeError("page crashed")

    browser.query = broken
    machine = _machine(browser)

    assert await machine.probe_status() == LoginState.AWAITING_QR


async def test_state_never_regresses_on_probe():
    browser = FakeBrowser()
    browser.logged_in = True
    machine = _machine(browser)
    await machine.activate()

    browser.logged_in = False
    assert await machine.probe_status() == LoginState.AWAITING_QR
    assert machine.state == LoginState.LOGGED_IN


async def test_await_login_persists_exactly_once():
    browser = FakeBrowser()
    machine = _machine(browser)
    await machine.activate()

    async def scan_later():
        await asyncio.sleep(0.05)
        browser.logged_in = True

    asyncio.create_task(scan_later())
    proof = await machine.await_login()

    assert proof.persisted
    assert proof.screenshot_path.endswith("whatsapp_logged_in.png")
    assert browser.persist_calls == ["/tmp/session.json"]
    assert machine.session.last_persisted_at is not None

    navigations = len(browser.navigations)
    assert await machine.probe_status() == LoginState.LOGGED_IN
    assert len(browser.navigations) == navigations

    await machine.await_login()
    assert len(browser.persist_calls) == 1


async def test_persist_failure_still_returns_proof():
    browser = FakeBrowser()
    browser.logged_in = True
    browser.fail_persist = True
    machine = _machine(browser)

    proof = await machine.await_login()

    assert proof.persisted is False
    assert proof.screenshot_path is not None
    assert machine.session.last_persisted_at is None


async def test_capture_qr_image_returns_png_bytes():
    browser = FakeBrowser()
    machine = _machine(browser)

    assert (await machine.capture_qr_image()).startswith(b"\x89PNG")


async def test_capture_qr_image_fails_when_code_never_renders():
    browser = FakeBrowser()
    browser.qr_present = False
    machine = _machine(browser)

    with pytest.raises(ElementNotFound):
        await asyncio.wait_for(machine.capture_qr_image(), timeout=1)


async def test_reset_allows_a_new_login_cycle():
    browser = FakeBrowser()
    browser.logged_in = True
    machine = _machine(browser)
    await machine.await_login()

    machine.reset()

    assert machine.state == LoginState.UNINITIALIZED
    assert machine.session.last_persisted_at is None
