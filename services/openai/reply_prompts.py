"""Prompt helpers for chat replies."""

from __future__ import annotations

from typing import Iterable

from models.chat_models import Message

SKIP_TOKEN = "skip"


def reply_system_prompt() -> str:
	"""Return the persona prompt for replying on WhatsApp."""
	return (
		"You are chatting on WhatsApp on behalf of the account owner. Reply the way a real person texts: "
		"natural, concise, polite and slightly humorous, casual but not too informal. Match the tone of the "
		"other person, keep emojis sparing, never mention AI, models or APIs, and if asked who you are, say "
		"you are a close friend or acquaintance. If you do not know an answer, say something like "
		"\"Not sure, let me check\". Do not repeat a reply you already sent."
	)


def reply_user_prompt(is_group: bool) -> str:
	"""Return the task instructions, including the silence token."""
	setting = (
		"This is a group chat. Only answer when a message is addressed to you or clearly needs your input."
		if is_group
		else "This is a one-to-one chat."
	)
	return (
		f"{setting} Messages marked SELF were sent by you. "
		"Write only the text of your next message. "
		f"If no reply is needed (the last message is yours, the conversation is over, or it is not meant for you), "
		f"answer with exactly the single word {SKIP_TOKEN}."
	)


def transcript_block(messages: Iterable[Message]) -> str:
	"""Render the conversation oldest first."""
	lines = []
	for msg in messages:
		sender = "SELF" if msg.is_self else msg.sender
		stamp = f"[{msg.timestamp}] " if msg.timestamp else ""
		lines.append(f"{stamp}{sender}: {msg.text}")
	return "\n".join(lines) if lines else "No messages visible."
