"""Tests for the Conversation handle."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from pr_review.core.exceptions import ModelInvocationFailed, ReviewError
from pr_review.providers.base import ProviderError
from pr_review.session.conversation import Conversation, ConversationConfig, ConversationDefaults
from pr_review.session.log import SessionLog
from pr_review.tools import ToolAccess
from pr_review.tools.builtin import ReadTool
from tests.fakes import FakeProvider, Round, make_opener


def make_config(repo_dir, model, **overrides) -> ConversationConfig:
    values = dict(
        working_directory=repo_dir,
        model=model,
        system_prompt="You are a test assistant.",
        tool_access=ToolAccess.NONE,
    )
    values.update(overrides)
    return ConversationConfig(**values)


async def open_with(provider, config) -> Conversation:
    return await make_opener(provider)(config)


class TestFragments:
    @pytest.mark.asyncio
    async def test_fragments_delivered_in_production_order(self, repo_dir, model):
        provider = FakeProvider([Round(fragments=["The ", "cat ", "sat."])])
        conversation = await open_with(provider, make_config(repo_dir, model))
        received = []
        conversation.subscribe(received.append)

        answer = await conversation.prompt("Tell me a story")

        assert received == ["The ", "cat ", "sat."]
        assert answer == "The cat sat."

    @pytest.mark.asyncio
    async def test_every_subscriber_sees_every_fragment(self, repo_dir, model):
        provider = FakeProvider([Round(fragments=["a", "b"])])
        conversation = await open_with(provider, make_config(repo_dir, model))
        first, second = [], []
        conversation.subscribe(first.append)
        conversation.subscribe(second.append)

        await conversation.prompt("hi")

        assert first == second == ["a", "b"]

    @pytest.mark.asyncio
    async def test_unsubscribe_stops_delivery(self, repo_dir, model):
        provider = FakeProvider([Round(fragments=["a"]), Round(fragments=["b"])])
        conversation = await open_with(provider, make_config(repo_dir, model))
        received = []
        unsubscribe = conversation.subscribe(received.append)

        await conversation.prompt("one")
        unsubscribe()
        unsubscribe()
        await conversation.prompt("two")

        assert received == ["a"]


class TestTurns:
    @pytest.mark.asyncio
    async def test_ephemeral_by_default(self, repo_dir, model):
        conversation = await open_with(FakeProvider(), make_config(repo_dir, model))

        await conversation.prompt("hi")

        assert conversation.session_file is None
        assert len(conversation.log) == 1

    @pytest.mark.asyncio
    async def test_one_turn_per_prompt_in_durable_log(self, sessions_dir, repo_dir, model):
        log = await SessionLog.create(sessions_dir, repo_dir)
        provider = FakeProvider([Round(fragments=["first"]), Round(fragments=["second"])])
        conversation = await open_with(provider, make_config(repo_dir, model, log=log))

        await conversation.prompt("q1")
        await conversation.prompt("q2")

        reopened = await SessionLog.open(log.path)
        assert [turn.prompt for turn in reopened.turns] == ["q1", "q2"]
        assert [turn.response for turn in reopened.turns] == ["first", "second"]
        assert reopened.turns[0].model == model.qualified_id

    @pytest.mark.asyncio
    async def test_history_is_sent_with_later_prompts(self, sessions_dir, repo_dir, model):
        log = await SessionLog.create(sessions_dir, repo_dir)
        provider = FakeProvider([Round(fragments=["first"]), Round(fragments=["second"])])
        conversation = await open_with(provider, make_config(repo_dir, model, log=log))

        await conversation.prompt("q1")
        await conversation.prompt("q2")

        assert provider.calls[1].messages == [
            {"role": "user", "content": "q1"},
            {"role": "assistant", "content": "first"},
            {"role": "user", "content": "q2"},
        ]
        assert provider.calls[1].system == "You are a test assistant."


class TestFailures:
    @pytest.mark.asyncio
    async def test_failure_wraps_cause_and_appends_nothing(self, sessions_dir, repo_dir, model):
        log = await SessionLog.create(sessions_dir, repo_dir)
        before = log.path.read_bytes()
        cause = ProviderError("bad request", status_code=400)
        provider = FakeProvider([Round(fragments=["partial"], error=cause)])
        conversation = await open_with(provider, make_config(repo_dir, model, log=log))

        with pytest.raises(ModelInvocationFailed) as exc_info:
            await conversation.prompt("q")

        assert exc_info.value.cause is cause
        assert exc_info.value.__cause__ is cause
        assert log.path.read_bytes() == before
        assert len(log) == 0

    @pytest.mark.asyncio
    async def test_handle_unusable_after_failure(self, repo_dir, model):
        provider = FakeProvider([Round(error=ProviderError("bad request", status_code=400))])
        conversation = await open_with(provider, make_config(repo_dir, model))

        with pytest.raises(ModelInvocationFailed):
            await conversation.prompt("q")
        with pytest.raises(RuntimeError, match="cannot be reused"):
            await conversation.prompt("again")

    @pytest.mark.asyncio
    async def test_subscriber_review_error_is_not_wrapped(self, repo_dir, model):
        provider = FakeProvider([Round(fragments=["a", "b"])])
        conversation = await open_with(provider, make_config(repo_dir, model))
        error = ReviewError("renderer went away")

        def handler(fragment):
            raise error

        conversation.subscribe(handler)

        with pytest.raises(ReviewError) as exc_info:
            await conversation.prompt("q")

        assert exc_info.value is error
        assert len(provider.calls) == 1
        assert len(conversation.log) == 0

    @pytest.mark.asyncio
    async def test_transient_failure_before_output_is_retried(self, repo_dir, model):
        provider = FakeProvider(
            [
                Round(error=ProviderError("overloaded", status_code=529, retryable=True)),
                Round(fragments=["recovered"]),
            ]
        )
        conversation = await open_with(provider, make_config(repo_dir, model, max_retries=2))
        received = []
        conversation.subscribe(received.append)

        assert await conversation.prompt("q") == "recovered"
        assert len(provider.calls) == 2
        assert received == ["recovered"]

    @pytest.mark.asyncio
    async def test_transient_failure_after_output_is_not_retried(self, repo_dir, model):
        provider = FakeProvider(
            [
                Round(fragments=["half"], error=ProviderError("overloaded", retryable=True)),
                Round(fragments=["never sent"]),
            ]
        )
        conversation = await open_with(provider, make_config(repo_dir, model, max_retries=2))
        received = []
        conversation.subscribe(received.append)

        with pytest.raises(ModelInvocationFailed) as exc_info:
            await conversation.prompt("q")

        assert len(provider.calls) == 1
        assert received == ["half"]
        assert exc_info.value.attempts == 1

    @pytest.mark.asyncio
    async def test_retries_are_bounded(self, repo_dir, model):
        error = ProviderError("overloaded", retryable=True)
        provider = FakeProvider([Round(error=error)] * 5)
        conversation = await open_with(provider, make_config(repo_dir, model, max_retries=2))

        with pytest.raises(ModelInvocationFailed) as exc_info:
            await conversation.prompt("q")

        assert len(provider.calls) == 3
        assert exc_info.value.attempts == 3


class TestDispose:
    @pytest.mark.asyncio
    async def test_dispose_is_idempotent_and_keeps_file(self, sessions_dir, repo_dir, model):
        log = await SessionLog.create(sessions_dir, repo_dir)
        conversation = await open_with(FakeProvider(), make_config(repo_dir, model, log=log))
        await conversation.prompt("q")

        conversation.dispose()
        conversation.dispose()

        assert log.path.exists()
        with pytest.raises(RuntimeError, match="disposed"):
            await conversation.prompt("again")


class TestToolLoop:
    @pytest.mark.asyncio
    async def test_tool_results_fed_back_until_model_answers(self, repo_dir, model):
        provider = FakeProvider(
            [
                Round(
                    fragments=["Let me look. "],
                    tool_calls=[{"call_id": "c1", "tool": "read", "input": {"filePath": "app.py"}}],
                ),
                Round(fragments=["add() looks fine."]),
            ]
        )
        config = make_config(repo_dir, model, tool_access=ToolAccess.READ_ONLY)
        conversation = await open_with(provider, config)
        received = []
        conversation.subscribe(received.append)

        answer = await conversation.prompt("review")

        assert answer == "add() looks fine."
        assert received == ["Let me look. ", "add() looks fine."]
        tool_message = provider.calls[1].messages[-1]
        assert tool_message["role"] == "tool"
        assert tool_message["tool_call_id"] == "c1"
        assert "return a + b" in tool_message["content"]
        assert len(conversation.log.turns[0].messages) == 4

    @pytest.mark.asyncio
    async def test_tool_outside_capability_set_is_reported_to_model(self, repo_dir, model):
        provider = FakeProvider(
            [
                Round(tool_calls=[{"call_id": "c1", "tool": "write", "input": {"path": "x", "content": ""}}]),
                Round(fragments=["ok"]),
            ]
        )
        conversation = await open_with(
            provider, make_config(repo_dir, model, tool_access=ToolAccess.READ_ONLY)
        )

        await conversation.prompt("review")

        assert provider.calls[1].messages[-1]["content"] == "Unknown tool: write"
        assert not (repo_dir / "x").exists()

    @pytest.mark.asyncio
    async def test_tool_definitions_follow_capability_set(self, repo_dir, model):
        provider = FakeProvider()
        conversation = await open_with(
            provider, make_config(repo_dir, model, tool_access=ToolAccess.READ_ONLY)
        )

        await conversation.prompt("q")

        assert sorted(tool["name"] for tool in provider.calls[0].tools) == ["glob", "grep", "ls", "read"]

    @pytest.mark.asyncio
    async def test_last_round_keeps_tools_but_forbids_calls(self, repo_dir, model):
        looping = Round(tool_calls=[{"call_id": "c", "tool": "ls", "input": {}}])
        provider = FakeProvider([looping, looping, Round(fragments=["done"])])
        config = make_config(
            repo_dir, model, tool_access=ToolAccess.READ_ONLY, max_tool_rounds=3
        )
        conversation = await open_with(provider, config)

        assert await conversation.prompt("q") == "done"
        assert len(provider.calls) == 3
        assert "tool_choice" not in provider.calls[1].options
        # history already holds tool calls, so definitions are still sent
        assert provider.calls[2].tools == provider.calls[1].tools
        assert provider.calls[2].options["tool_choice"] == "none"

    @pytest.mark.asyncio
    async def test_tool_calls_on_last_round_are_dropped(self, repo_dir, model):
        looping = Round(fragments=["partial"], tool_calls=[{"call_id": "c", "tool": "ls", "input": {}}])
        provider = FakeProvider([looping, looping])
        config = make_config(
            repo_dir, model, tool_access=ToolAccess.READ_ONLY, max_tool_rounds=2
        )
        conversation = await open_with(provider, config)

        assert await conversation.prompt("q") == "partial"
        last = conversation.log.turns[0].messages[-1]
        assert last == {"role": "assistant", "content": "partial"}

    @pytest.mark.asyncio
    async def test_no_tool_choice_without_tools(self, repo_dir, model):
        provider = FakeProvider()
        conversation = await open_with(provider, make_config(repo_dir, model, max_tool_rounds=1))

        await conversation.prompt("q")

        assert provider.calls[0].tools == []
        assert "tool_choice" not in provider.calls[0].options

    @pytest.mark.asyncio
    async def test_failing_tool_is_reported_to_model(self, repo_dir, model, monkeypatch):
        monkeypatch.setattr(ReadTool, "execute", AsyncMock(side_effect=PermissionError("denied")))
        provider = FakeProvider(
            [
                Round(tool_calls=[{"call_id": "c1", "tool": "read", "input": {"filePath": "app.py"}}]),
                Round(fragments=["could not read it"]),
            ]
        )
        conversation = await open_with(
            provider, make_config(repo_dir, model, tool_access=ToolAccess.READ_ONLY)
        )

        answer = await conversation.prompt("review")

        assert answer == "could not read it"
        tool_message = provider.calls[1].messages[-1]
        assert tool_message["tool_call_id"] == "c1"
        assert tool_message["content"] == "Error: read failed: denied"
        assert len(conversation.log.turns) == 1


class TestConversationDefaults:
    def test_from_settings(self, test_settings):
        defaults = ConversationDefaults.from_settings(test_settings)

        assert defaults.max_retries == test_settings.max_retries
        assert defaults.max_tool_rounds == test_settings.max_tool_rounds

    def test_config_carries_limits(self, repo_dir, model):
        defaults = ConversationDefaults(max_retries=1, max_tool_rounds=4, max_output_tokens=100)

        config = defaults.config(repo_dir, model, "system", ToolAccess.NONE)

        assert config.max_retries == 1
        assert config.max_tool_rounds == 4
        assert config.options == {"max_tokens": 100}
        assert config.log is None
