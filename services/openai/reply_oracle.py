"""Reply oracle built on the OpenAI Responses API.

The oracle is stateless: every call carries the full transcript. Anything
that goes wrong (network, quota, timeout, empty output) becomes `Skip`, so a
failing oracle leaves a conversation unanswered instead of sending garbage or
stopping the queue.
"""

import asyncio
import logging
import time
from typing import List, Optional, Sequence

from openai import AsyncOpenAI

from models.chat_models import SKIP, Message, ReplyDecision, Send
from services.openai.reply_prompts import SKIP_TOKEN, reply_system_prompt, reply_user_prompt, transcript_block
from services.openai.response_parser import extract_text, extract_usage
from services.whatsapp.errors import OracleFailure

LOGGER = logging.getLogger(__name__)
DEFAULT_MODEL = "gpt-5"


def parse_decision(text: Optional[str]) -> ReplyDecision:
    """Map raw oracle output to a decision.

    The trimmed output equal to "skip" in any case means silence; an empty
    output is treated the same way. Anything else is sent as-is (trimmed).
    """
    cleaned = (text or "").strip()
    if not cleaned or cleaned.lower() == SKIP_TOKEN:
        return SKIP
    return Send(cleaned)


class ReplyOracle:
    """Ask the model for the next message in a conversation, or for silence."""

    def __init__(
        self,
        client: AsyncOpenAI,
        *,
        model: str = DEFAULT_MODEL,
        timeout: Optional[float] = 60.0,
    ) -> None:
        if client is None:
            raise ValueError("AsyncOpenAI client is required.")
        self.client = client
        self.model = model
        self.timeout = timeout

    def build_input(self, messages: Sequence[Message], is_group: bool) -> List[dict]:
        """Assemble the Responses API input for one decision."""
        return [
            {"type": "message", "role": "system", "content": [{"type": "input_text", "text": reply_system_prompt()}]},
            {"type": "message", "role": "user", "content": [{"type": "input_text", "text": reply_user_prompt(is_group)}]},
            {
                "type": "message",
                "role": "user",
                "content": [{"type": "input_text", "text": f"Current conversation:\n{transcript_block(messages)}"}],
            },
        ]

    async def complete(self, messages: Sequence[Message], is_group: bool) -> str:
        """Return the raw model output.

        Raises:
            OracleFailure: If the request fails or times out.
        """
        start = time.time()
        try:
            request = self.client.responses.create(model=self.model, input=self.build_input(messages, is_group))
            if self.timeout:
                response = await asyncio.wait_for(request, timeout=self.timeout)
            else:
                response = await request
        except asyncio.TimeoutError as exc:
            raise OracleFailure(f"Oracle timed out after {self.timeout}s") from exc
        except Exception as exc:
            raise OracleFailure(f"OpenAI Responses API error: {exc}") from exc

        usage = extract_usage(response)
        LOGGER.info(
            "Reply generation latency: %.3fs (input_tokens=%s, output_tokens=%s)",
            time.time() - start,
            usage["input_tokens"],
            usage["output_tokens"],
        )
        return extract_text(response)

    async def decide(self, messages: Sequence[Message], is_group: bool = False) -> ReplyDecision:
        """Return `Send(text)` or `Skip`. Never raises."""
        try:
            output = await self.complete(messages, is_group)
        except OracleFailure as exc:
            LOGGER.error("Treating oracle failure as skip: %s", exc)
            return SKIP
        decision = parse_decision(output)
        LOGGER.debug("Oracle decision: %r", decision)
        return decision
