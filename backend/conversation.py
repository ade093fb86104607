"""Conversation controller: submit flow, reactions and session lifecycle."""

import asyncio
import logging
import re
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional

from cache import ResponseCache
from context import ConversationContext, summarize_context
from llm_router import ApiKeyError, GenerationSettings, ModelError, NetworkError
from models import Message, Reaction, Role
from persistence import MESSAGES_TABLE
from prompts import (
    CONFIG_ERROR_REPLY,
    GENERIC_ERROR_REPLY,
    NETWORK_ERROR_REPLY,
    SYSTEM_PREAMBLE,
    TIMEOUT_REPLY,
    build_prompt,
)
from reactions import apply_dislike, apply_like

logger = logging.getLogger(__name__)

CHAT_TIMEOUT_SECONDS = 30.0
PERSIST_TIMEOUT_SECONDS = 10.0


class ChatState(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    CACHE_HIT = "cache_hit"
    AWAITING_MODEL = "awaiting_model"


_GREETING_RE = re.compile(r"^Hi there!|^Hello!|^Hi,|^Hey,", re.IGNORECASE)
_TRANSITION_RE = re.compile(r"Since we just said|As we discussed earlier", re.IGNORECASE)
_CLOSING_RE = re.compile(
    r"Let me know if you have any questions\.|Feel free to ask anything else\.", re.IGNORECASE
)
_BULLET_RE = re.compile(r"•(?=\S)")
_NUMBERED_RE = re.compile(r"^(\s*\d+\.)(?=\S)", re.MULTILINE)
_EXCESS_NEWLINES_RE = re.compile(r"\n{3,}")


def format_response(text: str) -> str:
    """Strip filler phrases from a model reply and tidy list spacing."""
    text = _GREETING_RE.sub("", text, count=1)
    text = _TRANSITION_RE.sub("", text, count=1)
    text = _CLOSING_RE.sub("", text, count=1)
    text = _BULLET_RE.sub("• ", text)
    text = _NUMBERED_RE.sub(r"\1 ", text)
    text = _EXCESS_NEWLINES_RE.sub("\n\n", text)
    return text.strip()


def classify_error(error: BaseException) -> str:
    """Map a failed generation to the reply shown to the user."""
    if isinstance(error, asyncio.TimeoutError):
        return TIMEOUT_REPLY
    message = str(error)
    if isinstance(error, ApiKeyError) or "API key" in message:
        return CONFIG_ERROR_REPLY
    if isinstance(error, NetworkError) or "network" in message:
        return NETWORK_ERROR_REPLY
    return GENERIC_ERROR_REPLY


def _iso(timestamp_ms: int) -> str:
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).isoformat()


def _discard_late_result(task: asyncio.Future) -> None:
    # Marks a timed-out call's exception as retrieved so it is never reported
    if not task.cancelled():
        task.exception()


class ConversationController:
    """Owns one conversation: its messages, Q/A context and response cache.

    Submits and clears are serialized with a lock, so a second submit waits
    until the first has produced its assistant reply. Reactions only touch
    the like/dislike fields and swap the message at an index in a single step.

    Store writes run as background tasks, one at a time in issue order and
    each bounded by ``persist_timeout``, so a slow store never holds the lock.
    """

    def __init__(
        self,
        model,
        store,
        cache: Optional[ResponseCache] = None,
        timeout: float = CHAT_TIMEOUT_SECONDS,
        preamble: str = SYSTEM_PREAMBLE,
        settings: Optional[GenerationSettings] = None,
        persist_timeout: float = PERSIST_TIMEOUT_SECONDS,
    ):
        self.model = model
        self.store = store
        self.cache = cache if cache is not None else ResponseCache()
        self.timeout = timeout
        self.preamble = preamble
        self.settings = settings or GenerationSettings()
        self.persist_timeout = persist_timeout
        self.context = ConversationContext()
        self.conversation_id = str(uuid.uuid4())
        self.state = ChatState.IDLE
        self._messages: list[Message] = []
        self._lock = asyncio.Lock()
        self._pending: set[asyncio.Task] = set()
        self._last_write: Optional[asyncio.Task] = None

    @property
    def messages(self) -> list[Message]:
        return list(self._messages)

    @property
    def is_loading(self) -> bool:
        return self.state != ChatState.IDLE

    # ── Submit flow ──────────────────────────────────────────────────────────

    async def submit(self, text: str) -> Optional[Message]:
        """Process one user turn and return the assistant reply.

        Blank input is ignored and returns None. Model failures are turned
        into an apologetic assistant message, so this never raises for them.
        """
        query = text.strip()
        if not query:
            return None

        async with self._lock:
            self.state = ChatState.SUBMITTING
            try:
                return await self._run_turn(query)
            finally:
                self.state = ChatState.IDLE

    async def _run_turn(self, query: str) -> Message:
        user_msg = Message(role=Role.USER, content=query, context=self.context.history)
        self._messages.append(user_msg)
        self._store_message(user_msg)

        summary = summarize_context(self._messages, query)

        cached = self.cache.get(query)
        if cached is not None:
            self.state = ChatState.CACHE_HIT
            logger.info(f"Using cached response for: {query[:50]}")
            return await self._reply(query, cached, remember=True)

        self.state = ChatState.AWAITING_MODEL
        prompt = build_prompt(self.preamble, self.context, summary, query)
        try:
            raw = await self._generate(prompt)
            formatted = format_response(raw or "")
            if not formatted:
                raise ModelError("Model returned an empty response")
        except asyncio.TimeoutError as e:
            logger.warning(f"Model call timed out after {self.timeout}s")
            return await self._reply(query, classify_error(e), remember=False)
        except Exception as e:
            logger.warning(f"Model call failed: {e!r}")
            return await self._reply(query, classify_error(e), remember=False)

        self.cache.put(query, formatted)
        return await self._reply(query, formatted, remember=True)

    async def _generate(self, prompt: str) -> str:
        # The call keeps running after a timeout; its eventual result is dropped.
        task = asyncio.ensure_future(self.model.generate(prompt, self.settings))
        task.add_done_callback(_discard_late_result)
        return await asyncio.wait_for(asyncio.shield(task), timeout=self.timeout)

    async def _reply(self, query: str, text: str, remember: bool) -> Message:
        reply = Message(role=Role.ASSISTANT, content=text, context=self.context.history)
        self._messages.append(reply)
        if remember:
            self.context.record(query, text)
        self._store_message(reply)
        return reply

    # ── Reactions ────────────────────────────────────────────────────────────

    async def like(self, index: int) -> Message:
        return await self._react(index, apply_like)

    async def dislike(self, index: int) -> Message:
        return await self._react(index, apply_dislike)

    async def _react(self, index: int, transition: Callable[[Message], Message]) -> Message:
        if not 0 <= index < len(self._messages):
            raise IndexError(f"No message at index {index}")
        updated = transition(self._messages[index])
        self._messages[index] = updated
        self._persist(
            "updating reaction",
            self.store.update,
            MESSAGES_TABLE,
            {
                "likes": updated.likes,
                "dislikes": updated.dislikes,
                "user_action": self._action_column(updated),
            },
            {"conversation_id": self.conversation_id, "message_id": updated.id},
        )
        return updated

    # ── Session lifecycle ────────────────────────────────────────────────────

    async def clear(self) -> str:
        """Drop the conversation and start a new one; returns the new id."""
        async with self._lock:
            self._persist(
                "clearing conversation",
                self.store.delete_where,
                MESSAGES_TABLE,
                {"conversation_id": self.conversation_id},
            )
            self._messages = []
            self.context.reset()
            self.cache.clear()
            self.conversation_id = str(uuid.uuid4())
            return self.conversation_id

    async def flush(self) -> None:
        """Wait until every queued store write has finished or timed out."""
        if self._pending:
            await asyncio.wait(list(self._pending))

    # ── Persistence ──────────────────────────────────────────────────────────

    @staticmethod
    def _action_column(msg: Message) -> Optional[str]:
        return None if msg.userAction == Reaction.NONE else msg.userAction.value

    def _row(self, msg: Message) -> dict[str, Any]:
        return {
            "message_id": msg.id,
            "role": msg.role.value,
            "content": msg.content,
            "conversation_id": self.conversation_id,
            "context": msg.context,
            "likes": msg.likes,
            "dislikes": msg.dislikes,
            "user_action": self._action_column(msg),
            "created_at": _iso(msg.timestamp),
        }

    def _store_message(self, msg: Message) -> None:
        self._persist("storing message", self.store.insert, MESSAGES_TABLE, self._row(msg))

    def _persist(self, operation: str, call: Callable, *args) -> None:
        task = asyncio.ensure_future(
            self._best_effort(self._last_write, self.conversation_id, operation, call, *args)
        )
        self._last_write = task
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _best_effort(
        self,
        previous: Optional[asyncio.Task],
        conversation_id: str,
        operation: str,
        call: Callable,
        *args,
    ) -> None:
        try:
            # Writes apply in issue order so a reaction never lands before its insert
            if previous is not None and not previous.done():
                await asyncio.wait([previous])
            await asyncio.wait_for(call(*args), timeout=self.persist_timeout)
        except asyncio.TimeoutError:
            logger.error(
                f"Timed out {operation} for conversation {conversation_id} "
                f"after {self.persist_timeout}s"
            )
        except Exception as e:
            logger.error(f"Error {operation} for conversation {conversation_id}: {e}")
