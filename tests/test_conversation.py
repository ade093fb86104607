"""Tests for conversation.py – submit state machine, timeout race, reactions and clearing."""

import asyncio
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import pytest
from unittest.mock import AsyncMock, MagicMock

from cache import CACHE_TTL_MS, ResponseCache
from conversation import (
    ChatState,
    ConversationController,
    classify_error,
    format_response,
)
from llm_router import ApiKeyError, GenerationSettings, ModelError, NetworkError
from models import Reaction, Role
from persistence import MESSAGES_TABLE, InMemoryStore
from prompts import (
    CONFIG_ERROR_REPLY,
    GENERIC_ERROR_REPLY,
    NETWORK_ERROR_REPLY,
    TIMEOUT_REPLY,
)


class FakeClock:
    def __init__(self, now=1_000_000):
        self.now = now

    def __call__(self):
        return self.now


def _model(text="Generated answer"):
    model = MagicMock()
    model.generate = AsyncMock(return_value=text)
    return model


def _failing_store():
    store = MagicMock()
    store.insert = AsyncMock(side_effect=RuntimeError("db down"))
    store.update = AsyncMock(side_effect=RuntimeError("db down"))
    store.delete_where = AsyncMock(side_effect=RuntimeError("db down"))
    return store


def _controller(model=None, store=None, **kwargs):
    return ConversationController(model or _model(), store or InMemoryStore(), **kwargs)


# ── format_response ──────────────────────────────────────────────────────────

class TestFormatResponse:
    def test_strips_leading_greeting(self):
        assert format_response("Hello! Here is the answer.") == "Here is the answer."

    def test_greeting_only_at_start(self):
        assert format_response("Answer. Hello! again") == "Answer. Hello! again"

    def test_strips_transition_phrase(self):
        assert format_response("As we discussed earlier, it works.") == ", it works."

    def test_strips_closing_phrase(self):
        assert format_response("Done. Let me know if you have any questions.") == "Done."

    def test_bullet_spacing(self):
        assert format_response("•one\n•two") == "• one\n• two"

    def test_numbered_list_spacing(self):
        assert format_response("1.first\n2.second") == "1. first\n2. second"

    def test_decimals_untouched(self):
        assert format_response("Pi is 3.14") == "Pi is 3.14"

    def test_collapses_blank_lines(self):
        assert format_response("a\n\n\n\nb") == "a\n\nb"

    def test_trims(self):
        assert format_response("  text \n") == "text"


# ── classify_error ───────────────────────────────────────────────────────────

class TestClassifyError:
    def test_timeout(self):
        assert classify_error(asyncio.TimeoutError()) == TIMEOUT_REPLY

    def test_api_key_type(self):
        assert classify_error(ApiKeyError("bad")) == CONFIG_ERROR_REPLY

    def test_api_key_message(self):
        assert classify_error(RuntimeError("API key not valid")) == CONFIG_ERROR_REPLY

    def test_network_type(self):
        assert classify_error(NetworkError("down")) == NETWORK_ERROR_REPLY

    def test_network_message(self):
        assert classify_error(RuntimeError("network unreachable")) == NETWORK_ERROR_REPLY

    def test_generic(self):
        assert classify_error(ModelError("boom")) == GENERIC_ERROR_REPLY


# ── submit ───────────────────────────────────────────────────────────────────

class TestSubmit:
    @pytest.mark.asyncio
    async def test_blank_input_is_noop(self):
        model = _model()
        ctrl = _controller(model)
        assert await ctrl.submit("   \n\t") is None
        assert ctrl.messages == []
        assert ctrl.state == ChatState.IDLE
        model.generate.assert_not_called()

    @pytest.mark.asyncio
    async def test_one_user_and_one_assistant_message(self):
        ctrl = _controller(_model("Hi, Rust is a language."))
        reply = await ctrl.submit("  What is Rust?  ")
        messages = ctrl.messages
        assert [m.role for m in messages] == [Role.USER, Role.ASSISTANT]
        assert messages[0].content == "What is Rust?"
        assert reply.content == "Rust is a language."
        assert ctrl.state == ChatState.IDLE
        assert not ctrl.is_loading

    @pytest.mark.asyncio
    async def test_context_updated_after_success(self):
        ctrl = _controller(_model("answer one"))
        await ctrl.submit("question one")
        assert ctrl.context.lastQuery == "question one"
        assert ctrl.context.lastResponse == "answer one"
        assert "Previous Question: question one" in ctrl.context.history

    @pytest.mark.asyncio
    async def test_prompt_contains_history_and_query(self):
        model = _model("first answer")
        ctrl = _controller(model)
        await ctrl.submit("first question")
        await ctrl.submit("second question")
        prompt = model.generate.call_args.args[0]
        assert "Previous Question: first question" in prompt
        assert 'Current Query: "second question"' in prompt

    @pytest.mark.asyncio
    async def test_generation_settings_passed(self):
        model = _model()
        settings = GenerationSettings(temperature=0.1)
        ctrl = _controller(model, settings=settings)
        await ctrl.submit("hello")
        assert model.generate.call_args.args[1] is settings

    @pytest.mark.asyncio
    async def test_message_context_snapshot(self):
        ctrl = _controller(_model("a1"))
        await ctrl.submit("q1")
        await ctrl.submit("q2")
        messages = ctrl.messages
        assert messages[0].context == ""
        assert "q1" in messages[2].context

    @pytest.mark.asyncio
    async def test_is_loading_while_awaiting_model(self):
        seen = {}
        ctrl = None

        async def generate(prompt, settings=None):
            seen["state"] = ctrl.state
            seen["loading"] = ctrl.is_loading
            return "ok"

        model = MagicMock()
        model.generate = generate
        ctrl = _controller(model)
        await ctrl.submit("question")
        assert seen == {"state": ChatState.AWAITING_MODEL, "loading": True}
        assert not ctrl.is_loading


class TestCaching:
    @pytest.mark.asyncio
    async def test_second_identical_query_served_from_cache(self):
        model = _model("cached answer")
        ctrl = _controller(model)
        first = await ctrl.submit("What is Go?")
        second = await ctrl.submit("  what is go?  ")
        assert model.generate.await_count == 1
        assert second.content == first.content
        assert len(ctrl.messages) == 4

    @pytest.mark.asyncio
    async def test_cache_hit_updates_context(self):
        ctrl = _controller(_model("same"))
        await ctrl.submit("q")
        await ctrl.submit("q")
        assert len(ctrl.context) == 2

    @pytest.mark.asyncio
    async def test_expired_entry_calls_model_again(self):
        clock = FakeClock()
        model = _model("answer")
        ctrl = _controller(model, cache=ResponseCache(clock=clock))
        await ctrl.submit("q")
        clock.now += CACHE_TTL_MS
        await ctrl.submit("q")
        assert model.generate.await_count == 2

    @pytest.mark.asyncio
    async def test_formatted_text_is_cached(self):
        ctrl = _controller(_model("Hello! Formatted"))
        await ctrl.submit("q")
        assert ctrl.cache.get("q") == "Formatted"

    @pytest.mark.asyncio
    async def test_failures_not_cached(self):
        model = MagicMock()
        model.generate = AsyncMock(side_effect=[ModelError("boom"), "recovered"])
        ctrl = _controller(model)
        await ctrl.submit("q")
        reply = await ctrl.submit("q")
        assert reply.content == "recovered"
        assert model.generate.await_count == 2


class TestFailures:
    @pytest.mark.asyncio
    async def test_timeout_reply(self):
        release = asyncio.Event()

        async def slow(prompt, settings=None):
            await release.wait()
            return "too late"

        model = MagicMock()
        model.generate = slow
        ctrl = _controller(model, timeout=0.05)
        reply = await ctrl.submit("slow question")
        assert reply.content == TIMEOUT_REPLY
        assert reply.content != GENERIC_ERROR_REPLY

        # The late result must not change anything already settled
        release.set()
        await asyncio.sleep(0.01)
        assert len(ctrl.messages) == 2
        assert ctrl.cache.get("slow question") is None
        assert ctrl.context.lastQuery == ""

    @pytest.mark.asyncio
    async def test_late_failure_is_swallowed(self):
        release = asyncio.Event()

        async def slow_fail(prompt, settings=None):
            await release.wait()
            raise ModelError("late")

        model = MagicMock()
        model.generate = slow_fail
        ctrl = _controller(model, timeout=0.05)
        reply = await ctrl.submit("q")
        release.set()
        await asyncio.sleep(0.01)
        assert reply.content == TIMEOUT_REPLY
        assert ctrl.messages[-1].content == TIMEOUT_REPLY

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error,expected", [
        (ApiKeyError("API key not valid"), CONFIG_ERROR_REPLY),
        (NetworkError("network down"), NETWORK_ERROR_REPLY),
        (ValueError("something odd"), GENERIC_ERROR_REPLY),
    ])
    async def test_error_replies(self, error, expected):
        model = MagicMock()
        model.generate = AsyncMock(side_effect=error)
        ctrl = _controller(model)
        reply = await ctrl.submit("q")
        assert reply.role == Role.ASSISTANT
        assert reply.content == expected
        assert ctrl.state == ChatState.IDLE

    @pytest.mark.asyncio
    async def test_failure_does_not_update_context(self):
        model = MagicMock()
        model.generate = AsyncMock(side_effect=ModelError("boom"))
        ctrl = _controller(model)
        await ctrl.submit("q")
        assert ctrl.context.history == ""

    @pytest.mark.asyncio
    async def test_error_reply_is_persisted(self):
        store = InMemoryStore()
        model = MagicMock()
        model.generate = AsyncMock(side_effect=ModelError("boom"))
        ctrl = _controller(model, store)
        await ctrl.submit("q")
        await ctrl.flush()
        rows = store.rows(MESSAGES_TABLE)
        assert [r["role"] for r in rows] == ["user", "assistant"]
        assert rows[1]["content"] == GENERIC_ERROR_REPLY

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", ["", "   ", "Hello!", "Let me know if you have any questions.", None])
    async def test_empty_reply_is_a_failure(self, raw):
        model = _model(raw)
        ctrl = _controller(model)
        reply = await ctrl.submit("q")
        assert reply.content == GENERIC_ERROR_REPLY
        assert ctrl.cache.get("q") is None
        assert ctrl.context.history == ""
        await ctrl.submit("q")
        assert model.generate.await_count == 2


class TestSerialization:
    @pytest.mark.asyncio
    async def test_concurrent_submits_do_not_interleave(self):
        order = []

        async def generate(prompt, settings=None):
            order.append("start")
            await asyncio.sleep(0.01)
            order.append("end")
            return "answer"

        model = MagicMock()
        model.generate = generate
        ctrl = _controller(model)
        await asyncio.gather(ctrl.submit("first"), ctrl.submit("second"))
        assert order == ["start", "end", "start", "end"]
        roles = [m.role for m in ctrl.messages]
        assert roles == [Role.USER, Role.ASSISTANT, Role.USER, Role.ASSISTANT]
        assert [m.content for m in ctrl.messages][::2] == ["first", "second"]


# ── persistence ──────────────────────────────────────────────────────────────

class TestPersistence:
    @pytest.mark.asyncio
    async def test_rows_scoped_to_conversation(self):
        store = InMemoryStore()
        ctrl = _controller(_model("a"), store)
        await ctrl.submit("q")
        await ctrl.flush()
        rows = store.rows(MESSAGES_TABLE)
        assert len(rows) == 2
        assert all(r["conversation_id"] == ctrl.conversation_id for r in rows)
        assert [r["message_id"] for r in rows] == [m.id for m in ctrl.messages]
        assert rows[0]["user_action"] is None
        assert rows[0]["likes"] == 0

    @pytest.mark.asyncio
    async def test_hanging_store_does_not_block_submit(self):
        async def hang(*args):
            await asyncio.sleep(3600)

        store = MagicMock()
        store.insert = hang
        store.update = hang
        store.delete_where = hang
        model = _model("fine")
        ctrl = _controller(model, store, timeout=0.05, persist_timeout=0.05)

        reply = await asyncio.wait_for(ctrl.submit("hi"), 1.0)
        assert reply.content == "fine"
        assert len(ctrl.messages) == 2
        assert model.generate.await_count == 1
        await asyncio.wait_for(ctrl.like(1), 1.0)
        await asyncio.wait_for(ctrl.clear(), 1.0)
        # Each stalled write is abandoned after persist_timeout
        await asyncio.wait_for(ctrl.flush(), 1.0)
        assert not ctrl.is_loading

    @pytest.mark.asyncio
    async def test_writes_apply_in_issue_order(self):
        calls = []

        async def insert(table, record):
            await asyncio.sleep(0.01 if record["role"] == "user" else 0)
            calls.append(("insert", record["role"]))

        async def update(table, values, filters):
            calls.append(("update", values["likes"]))

        store = MagicMock()
        store.insert = insert
        store.update = update
        ctrl = _controller(_model("a"), store)
        await ctrl.submit("q")
        await ctrl.like(1)
        await ctrl.flush()
        assert calls == [("insert", "user"), ("insert", "assistant"), ("update", 1)]

    @pytest.mark.asyncio
    async def test_store_failures_do_not_break_submit(self):
        ctrl = _controller(_model("fine"), _failing_store())
        reply = await ctrl.submit("q")
        assert reply.content == "fine"
        assert len(ctrl.messages) == 2

    @pytest.mark.asyncio
    async def test_store_failures_do_not_break_reactions(self):
        ctrl = _controller(_model("fine"), _failing_store())
        await ctrl.submit("q")
        updated = await ctrl.like(1)
        assert updated.likes == 1

    @pytest.mark.asyncio
    async def test_store_failures_do_not_break_clear(self):
        ctrl = _controller(_model("fine"), _failing_store())
        await ctrl.submit("q")
        old_id = ctrl.conversation_id
        new_id = await ctrl.clear()
        assert new_id != old_id
        assert ctrl.messages == []


# ── reactions ────────────────────────────────────────────────────────────────

class TestReactions:
    @pytest.mark.asyncio
    async def test_like_replaces_message_and_updates_row(self):
        store = InMemoryStore()
        ctrl = _controller(_model("a"), store)
        await ctrl.submit("q")
        updated = await ctrl.like(1)
        await ctrl.flush()
        assert ctrl.messages[1] == updated
        assert updated.userAction == Reaction.LIKE
        row = store.rows(MESSAGES_TABLE)[1]
        assert row["likes"] == 1
        assert row["user_action"] == "like"
        assert store.rows(MESSAGES_TABLE)[0]["likes"] == 0

    @pytest.mark.asyncio
    async def test_reaction_targets_one_row_when_rows_look_alike(self):
        store = InMemoryStore()
        ctrl = _controller(_model("a"), store)
        await ctrl.submit("q")
        await ctrl.submit("q")
        await ctrl.flush()
        rows = store.rows(MESSAGES_TABLE)
        for row in rows:
            row["created_at"] = "2024-01-01T00:00:00+00:00"
        await ctrl.like(3)
        await ctrl.flush()
        assert [r["likes"] for r in rows] == [0, 0, 0, 1]

    @pytest.mark.asyncio
    async def test_like_then_dislike(self):
        ctrl = _controller(_model("a"))
        await ctrl.submit("q")
        await ctrl.like(1)
        m = await ctrl.dislike(1)
        assert (m.likes, m.dislikes, m.userAction) == (0, 1, Reaction.DISLIKE)

    @pytest.mark.asyncio
    async def test_double_like_restores_message(self):
        ctrl = _controller(_model("a"))
        await ctrl.submit("q")
        original = ctrl.messages[1]
        await ctrl.like(1)
        await ctrl.like(1)
        assert ctrl.messages[1] == original

    @pytest.mark.asyncio
    async def test_bad_index(self):
        ctrl = _controller()
        with pytest.raises(IndexError):
            await ctrl.like(0)
        with pytest.raises(IndexError):
            await ctrl.dislike(-1)


# ── clear ────────────────────────────────────────────────────────────────────

class TestClear:
    @pytest.mark.asyncio
    async def test_clear_resets_everything(self):
        store = InMemoryStore()
        model = _model("a")
        ctrl = _controller(model, store)
        await ctrl.submit("q")
        old_id = ctrl.conversation_id
        new_id = await ctrl.clear()
        await ctrl.flush()
        assert new_id != old_id
        assert ctrl.conversation_id == new_id
        assert ctrl.messages == []
        assert ctrl.context.history == ""
        assert store.rows(MESSAGES_TABLE) == []

    @pytest.mark.asyncio
    async def test_cache_discarded_on_clear(self):
        model = _model("a")
        ctrl = _controller(model)
        await ctrl.submit("q")
        await ctrl.clear()
        await ctrl.submit("q")
        assert model.generate.await_count == 2

    @pytest.mark.asyncio
    async def test_each_clear_issues_distinct_id(self):
        ctrl = _controller()
        ids = {ctrl.conversation_id}
        for _ in range(3):
            ids.add(await ctrl.clear())
        assert len(ids) == 4
