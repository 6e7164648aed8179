"""DOM selectors and in-page scripts for WhatsApp Web."""

from __future__ import annotations

LOGGED_IN_MARKER = 'div[role="textbox"]'
QR_CANVAS = "canvas"
QR_CANVAS_HINT = "canvas[aria-label='Scan me!']"
CHAT_LIST = 'div[aria-label="Chat list"]'
CHAT_LIST_FALLBACK = "#pane-side"
MESSAGE_INPUT = 'div[contenteditable="true"][role="textbox"]:not([aria-label*="Search"])'

EVENT_BINDING = "onNewUnreadChat"


def chat_title(name: str) -> str:
	"""Selector for the chat-list title span of a conversation."""
	escaped = name.replace("\\", "\\\\").replace('"', '\\"')
	return f'span[title="{escaped}"]'


# Resolves the conversation list, installs one MutationObserver on it, and
# reports unread rows through window[binding]. Returns false when the list
# is not on the page yet.
INSTALL_OBSERVER_SCRIPT = r"""
({ binding, selectors }) => {
  const chatList = selectors.map((s) => document.querySelector(s)).find(Boolean);
  if (!chatList) {
    return false;
  }

  const titleOf = (row) => {
    const spans = Array.from(row.querySelectorAll("span[title]"));
    const match = spans.find((span) => span.innerText === span.getAttribute("title"));
    return match ? match.innerText : null;
  };

  const isGroupRow = (row) =>
    Boolean(row.querySelector('[data-icon*="group"], [data-testid*="group"]'));

  const observer = new MutationObserver((mutations) => {
    for (const mutation of mutations) {
      mutation.addedNodes.forEach((node) => {
        if (!(node instanceof HTMLElement)) return;
        const unread = node.matches('span[aria-label*="unread message"]')
          ? node
          : node.querySelector('span[aria-label*="unread message"]');
        if (!unread) return;
        const row = unread.closest("div[role='row']");
        if (!row) return;
        const title = titleOf(row);
        if (!title) return;
        window[binding]({ name: title, isGroup: isGroupRow(row) });
      });
    }
  });

  observer.observe(chatList, {
    childList: true,
    subtree: true,
    attributes: true,
    characterData: true,
  });
  return true;
}
"""


# Collects the open conversation's messages in DOM order (oldest first).
# WhatsApp stamps each bubble with data-pre-plain-text="[time, date] Sender: ".
TRANSCRIPT_SCRIPT = r"""
() => {
  const pane = document.querySelector("#main") || document;
  const rows = Array.from(pane.querySelectorAll("div[data-pre-plain-text]"));
  return rows.map((el) => {
    const pre = el.getAttribute("data-pre-plain-text") || "";
    const match = pre.match(/^\[(.*?)\]\s*(.*?):\s*$/);
    const textNode = el.querySelector("span.selectable-text") || el;
    return {
      outgoing: Boolean(el.closest(".message-out")),
      sender: match ? match[2] : "",
      timestamp: match ? match[1] : "",
      text: (textNode.innerText || "").trim(),
    };
  });
}
"""
