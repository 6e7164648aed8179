"""FastAPI entry point for the WhatsApp auto-responder."""

import inspect
import logging
import os
from contextlib import asynccontextmanager

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse
from openai import AsyncOpenAI

from routes.conversation_route import router as conversation_router
from routes.login_route import router as login_router
from services.whatsapp.agent import ChatAgent
from utils.settings import load_settings

load_dotenv()  # Load environment variables from .env file if present

LOGGER = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def _close_client(client) -> None:
    aclose = getattr(client, "aclose", None) or getattr(client, "close", None)
    if aclose is None:
        return
    try:
        if inspect.iscoroutinefunction(aclose):
            await aclose()
        else:
            result = aclose()
            if inspect.isawaitable(result):
                await result
    except Exception:
        # Ignore shutdown errors to avoid masking more important issues.
        LOGGER.debug("Error while closing OpenAI client", exc_info=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan manager to initialize:
      - the OpenAI async client used by the reply oracle
      - the chat agent (browser session, login state machine, watcher, queue)
    and attach them to `app.state`.
    """
    settings = load_settings()
    configure_logging(settings.log_level)

    if not os.getenv("OPENAI_API_KEY"):
        raise RuntimeError("OPENAI_API_KEY environment variable is not set")

    try:
        openai_client = AsyncOpenAI()
    except Exception as exc:
        raise RuntimeError("Failed to initialize OpenAI Async client") from exc
    app.state.openai_client = openai_client

    agent = ChatAgent.from_settings(settings, openai_client)
    app.state.agent = agent
    app.state.settings = settings

    try:
        try:
            state = await agent.activate()
        except Exception:
            # status(), /qr and /check-login activate again on demand.
            LOGGER.exception("Could not open WhatsApp Web at startup; will retry on the next request")
        else:
            LOGGER.info("Chat agent ready (login state: %s)", state.value)
            # Restored sessions start answering without an operator visit.
            agent.ensure_watching()
        yield
    finally:
        await agent.close()
        await _close_client(openai_client)


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application instance.
    """
    app = FastAPI(lifespan=lifespan)

    @app.get("/", include_in_schema=False)
    async def index():
        return PlainTextResponse("WhatsApp Bot is running.")

    @app.get("/health")
    async def health(request: Request):
        """
        Simple health check that reports chat agent and OpenAI client presence.
        """
        agent = getattr(request.app.state, "agent", None)
        has_openai = getattr(request.app.state, "openai_client", None) is not None
        return {
            "ok": True,
            "agent_available": agent is not None,
            "openai_available": has_openai,
            "watching": bool(agent and agent.watching),
        }

    app.include_router(login_router)
    app.include_router(conversation_router)

    return app


app = create_app()


def run() -> None:
    settings = load_settings()
    configure_logging(settings.log_level)
    uvicorn.run("main:app", host=settings.host, port=settings.port, timeout_keep_alive=300)


if __name__ == "__main__":
    run()
