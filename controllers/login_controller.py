"""Operator-facing login controllers: status, QR code, and re-arm."""

import base64
import logging
from typing import Any, Dict

from fastapi import HTTPException, Request
from fastapi.responses import HTMLResponse, PlainTextResponse, Response

from services.whatsapp.agent import ChatAgent
from services.whatsapp.errors import ElementNotFound

LOGGER = logging.getLogger(__name__)

POLL_INTERVAL_MS = 3000


def get_agent(request: Request) -> ChatAgent:
    """Retrieve the shared chat agent from the app state."""
    agent = getattr(request.app.state, "agent", None)
    if agent is None:
        raise HTTPException(status_code=503, detail="Chat agent not initialized.")
    return agent


def _logged_in_html(proof_png: bytes | None) -> str:
    if not proof_png:
        return "<p>WhatsApp is logged in.</p>"
    encoded = base64.b64encode(proof_png).decode("ascii")
    return f"<img src='data:image/png;base64,{encoded}' />"


def _qr_page_html(qr_png: bytes) -> str:
    encoded = base64.b64encode(qr_png).decode("ascii")
    return f"""
<html>
  <body>
    <div id="content">
      <h2>Scan this QR code with WhatsApp</h2>
      <img id="qr" src="data:image/png;base64,{encoded}" />
      <div id="status">Waiting for login...</div>
    </div>
    <script>
      const interval = setInterval(async () => {{
        const resp = await fetch('/check-login?poll=1');
        const data = await resp.text();
        if (resp.status === 200) {{
          document.getElementById('content').innerHTML = data;
          clearInterval(interval);
        }}
      }}, {POLL_INTERVAL_MS});
    </script>
  </body>
</html>
"""


async def check_login(request: Request, poll: bool = False) -> Response:
    """Return a proof screenshot when logged in, otherwise the QR page.

    A non-polling request also starts the background flow that waits for the
    scan, saves the session, and installs the chat watcher.

    Args:
        request: FastAPI request (used to reach `app.state.agent`).
        poll: True for the QR page's polling requests; these never render a QR.

    Returns:
        200 HTML when logged in, 401 text while polling, 200 HTML QR page otherwise.
    """
    agent = get_agent(request)
    status = await agent.status()

    if status == "logged_in":
        proof = await agent.capture_proof()
        if not poll:
            agent.ensure_watching()
        return HTMLResponse(_logged_in_html(proof), status_code=200)

    if poll:
        return PlainTextResponse("Not logged in", status_code=401)

    try:
        qr_png = await agent.capture_qr()
    except ElementNotFound as exc:
        raise HTTPException(status_code=504, detail=str(exc)) from exc
    agent.ensure_watching()
    return HTMLResponse(_qr_page_html(qr_png), status_code=200)


async def get_status(request: Request) -> Dict[str, Any]:
    agent = get_agent(request)
    status = await agent.status()
    return {"status": status, **agent.snapshot()}


async def get_qr_image(request: Request) -> Response:
    """Return the QR code as raw PNG bytes.

    Raises:
        HTTPException(409) when already logged in, 404 when no QR code renders.
    """
    agent = get_agent(request)
    if await agent.status() == "logged_in":
        raise HTTPException(status_code=409, detail="Already logged in")
    try:
        qr_png = await agent.capture_qr()
    except ElementNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return Response(content=qr_png, media_type="image/png")


async def rearm(request: Request) -> Dict[str, Any]:
    """Reload the chat page and report the fresh login status."""
    agent = get_agent(request)
    status = await agent.rearm()
    LOGGER.info("Operator re-arm completed: %s", status)
    return {"status": status, **agent.snapshot()}
