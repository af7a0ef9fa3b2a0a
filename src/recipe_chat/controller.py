"""One chat turn at a time: optimistic append, call the server, reconcile or roll back."""
from __future__ import annotations

import enum
import logging
from typing import Any, Dict, List, Optional, Protocol

from .store import Conversation, ConversationStore
from .types import ChatUsage, UIMessage, generate_id

logger = logging.getLogger(__name__)

SEND_FAILED = "Sending failed, please retry."
SERVICE_UNAVAILABLE = "Service temporarily unavailable."
NO_ANSWER = "Sorry, no answer available right now, please retry."


class Gateway(Protocol):
    def send(self, messages: List[Dict[str, str]]) -> Any: ...


class ChatApiError(Exception):
    """The server answered with an ``{error}`` envelope."""


class SubmissionState(enum.Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    SUCCESS = "success"
    FAILED = "failed"


class ChatController:
    """Owns the in-memory conversation and the input box for one session.

    Every mutation of ``conversation`` is written through the store. Only one
    submission runs at a time; a second ``submit`` while one is in flight is
    dropped, not queued.
    """

    def __init__(self, store: ConversationStore, gateway: Gateway) -> None:
        self.store = store
        self.gateway = gateway
        self.conversation: Conversation = store.welcome()
        self.input_text = ""
        self.error: Optional[str] = None
        self.state = SubmissionState.IDLE
        # Last settled outcome, kept after state returns to IDLE.
        self.last_outcome: Optional[SubmissionState] = None

    @property
    def is_loading(self) -> bool:
        return self.state is SubmissionState.SUBMITTING

    def hydrate(self) -> Conversation:
        self.conversation = self.store.load()
        return self.conversation

    def submit(self, text: Optional[str] = None) -> Conversation:
        """Run one turn and return the resulting conversation."""
        raw = self.input_text if text is None else text
        content = (raw or "").strip()
        if not content or self.is_loading:
            return self.conversation

        user_message = UIMessage(id=generate_id(), role="user", content=content)
        self._commit([*self.conversation, user_message])
        self.input_text = ""
        self.error = None
        self.state = SubmissionState.SUBMITTING

        try:
            payload = self._send()
            assistant = self._assistant_message(payload)
        except Exception as e:
            self._rollback(user_message, e)
        else:
            self._commit([*self.conversation, assistant])
            self.state = SubmissionState.SUCCESS
            self.last_outcome = SubmissionState.SUCCESS
            logger.info("Turn completed (%d messages)", len(self.conversation))
        finally:
            self.state = SubmissionState.IDLE

        return self.conversation

    def clear(self) -> Conversation:
        if self.is_loading:
            return self.conversation
        self.conversation = self.store.clear()
        self.error = None
        return self.conversation

    # --------- internals ----------
    def _send(self) -> Dict[str, Any]:
        payload = self.gateway.send([m.to_chat() for m in self.conversation])
        if not isinstance(payload, dict):
            raise ValueError("Malformed response from chat server")
        if "error" in payload:
            raise ChatApiError(payload.get("error") or SERVICE_UNAVAILABLE)
        return payload

    def _assistant_message(self, payload: Dict[str, Any]) -> UIMessage:
        message = payload.get("message")
        if not isinstance(message, dict):
            message = {}
        usage = payload.get("usage")
        run_id = payload.get("runId")
        if not run_id or any(m.id == run_id for m in self.conversation):
            run_id = generate_id()
        return UIMessage(
            id=run_id,
            role=message.get("role") or "assistant",
            content=message.get("content") or NO_ANSWER,
            usage=ChatUsage.model_validate(usage) if usage else None,
        )

    def _rollback(self, user_message: UIMessage, exc: Exception) -> None:
        self.state = SubmissionState.FAILED
        self.last_outcome = SubmissionState.FAILED
        self.error = str(exc) if isinstance(exc, ChatApiError) else SEND_FAILED
        logger.warning("Turn failed, rolling back: %s", exc)
        self._commit([m for m in self.conversation if m.id != user_message.id])
        self.input_text = user_message.content

    def _commit(self, conversation: Conversation) -> None:
        self.conversation = conversation
        if not self.store.hydrated:
            return
        try:
            self.store.save(conversation)
        except OSError:
            # Non-fatal: the next mutation writes the whole conversation again.
            logger.exception("Failed to persist conversation (%d messages)", len(conversation))
