# medimind/history.py
"""Read-only chat history for conversational document types.

The conversation itself is owned by the caller.  The pipeline only sees an
immutable, ordered log of ``(speaker, text)`` turns; appending returns a new
log.
"""

from __future__ import annotations

from typing import Any, Iterable, Literal

from pydantic import BaseModel, ConfigDict

Speaker = Literal["user", "model"]


class ChatTurn(BaseModel):
    """One message of the conversation."""

    model_config = ConfigDict(frozen=True)

    speaker: Speaker
    text: str


class ChatHistory(BaseModel):
    """Append-only, immutable sequence of chat turns."""

    model_config = ConfigDict(frozen=True)

    turns: tuple[ChatTurn, ...] = ()

    def __len__(self) -> int:
        return len(self.turns)

    def append(self, speaker: Speaker, text: str) -> "ChatHistory":
        return ChatHistory(turns=self.turns + (ChatTurn(speaker=speaker, text=text),))

    @classmethod
    def from_messages(cls, messages: Iterable[Any] | None) -> "ChatHistory":
        """Build a history from message dicts.

        Accepts ``{"role": "user"|"model", "text": ...}`` as well as the
        ``{"role": ..., "content": [{"text": ...}]}`` shape used by chat
        front-ends.  ``"assistant"`` is read as ``"model"``.
        """
        turns: list[ChatTurn] = []
        for message in messages or ():
            if isinstance(message, ChatTurn):
                turns.append(message)
                continue
            if not isinstance(message, dict):
                raise ValueError(f"Chat message must be a dict, got {type(message).__name__}")
            role = str(message.get("role") or message.get("speaker") or "").strip().lower()
            speaker: Speaker = "user" if role == "user" else "model"
            text = message.get("text")
            if text is None:
                content = message.get("content")
                if isinstance(content, list):
                    text = " ".join(
                        str(part.get("text", "")) for part in content if isinstance(part, dict)
                    )
                else:
                    text = content
            turns.append(ChatTurn(speaker=speaker, text=str(text or "")))
        return cls(turns=tuple(turns))
