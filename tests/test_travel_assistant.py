"""
Travel assistant orchestration tests: retry policy, corrective regeneration,
enrichment fallbacks and per-conversation ordering
"""

import asyncio

import pytest

from app.agents.travel_assistant import (
    InvalidInputError,
    TravelAssistant,
    deduplicate_messages,
    parse_location_answer,
)
from app.core.llm_service import GenerationUnavailable
from app.core.query_classifier import QueryType
from app.memory.conversation_store import ConversationNotFoundError, MessageRole
from app.tools.data_gateway import ExternalDataGateway


@pytest.fixture
def make_assistant(store, gateway):
    def _make(llm):
        return TravelAssistant(
            llm_service=llm, store=store, data_gateway=gateway, retry_attempts=3, retry_delay=0
        )
    return _make


def roles(assistant, conversation_id):
    return [m.role for m in assistant.store.get(conversation_id).messages]


class TestLifecycle:

    def test_start_conversation_seeds_system_prompt(self, assistant):
        started = assistant.start_conversation("alice")
        assert started["message"] == "New conversation started"
        conversation = assistant.store.get(started["conversationId"])
        assert conversation.owner_id == "alice"
        assert [m.role for m in conversation.messages] == [MessageRole.SYSTEM]

    def test_history_hides_system_messages(self, assistant):
        conversation_id = assistant.start_conversation()["conversationId"]
        history = assistant.get_conversation_history(conversation_id)
        assert history["messages"] == []
        assert history["conversationId"] == conversation_id
        assert set(history["context"]) == {"userPreferences", "extractedInfo"}

    def test_unknown_conversation(self, assistant):
        with pytest.raises(ConversationNotFoundError):
            assistant.get_conversation_history("nope")

    @pytest.mark.asyncio
    async def test_update_preferences_returns_context(self, assistant):
        conversation_id = assistant.start_conversation()["conversationId"]
        context = await assistant.update_preferences(conversation_id, {"season": "spring"})
        assert context["userPreferences"] == {"season": "spring"}


class TestChat:

    @pytest.mark.asyncio
    async def test_happy_path(self, assistant, llm):
        conversation_id = assistant.start_conversation()["conversationId"]
        result = await assistant.chat(conversation_id, "Hello there")

        assert result.response == llm.default
        assert result.query_type == QueryType.GENERAL
        assert result.external_data_used == []
        assert result.regenerated is False
        assert roles(assistant, conversation_id) == [
            MessageRole.SYSTEM, MessageRole.USER, MessageRole.ASSISTANT,
        ]

        reply = assistant.store.get(conversation_id).messages[-1]
        assert reply.metadata["queryType"] == "general"
        assert reply.metadata["externalDataUsed"] is False

        payload = result.to_dict()
        assert set(payload) == {"response", "conversationId", "queryType", "externalDataUsed", "timestamp"}
        assert payload["queryType"] == "general"

    @pytest.mark.asyncio
    async def test_blank_message_rejected(self, assistant):
        conversation_id = assistant.start_conversation()["conversationId"]
        with pytest.raises(InvalidInputError):
            await assistant.chat(conversation_id, "   ")
        assert roles(assistant, conversation_id) == [MessageRole.SYSTEM]

    @pytest.mark.asyncio
    async def test_unknown_conversation(self, assistant):
        with pytest.raises(ConversationNotFoundError):
            await assistant.chat("nope", "Hello there")

    @pytest.mark.asyncio
    async def test_generation_exhausts_attempts(self, make_assistant, make_llm):
        llm = make_llm(default=GenerationUnavailable("backend down"))
        assistant = make_assistant(llm)
        conversation_id = assistant.start_conversation()["conversationId"]

        with pytest.raises(GenerationUnavailable):
            await assistant.chat(conversation_id, "Hello there")

        assert len(llm.calls) == 3
        assert roles(assistant, conversation_id) == [MessageRole.SYSTEM, MessageRole.USER]

    @pytest.mark.asyncio
    async def test_backoff_grows_linearly(self, store, gateway, make_llm):
        delays = []

        async def record_sleep(seconds):
            delays.append(seconds)

        llm = make_llm(default=GenerationUnavailable("backend down"))
        assistant = TravelAssistant(llm, store, gateway, retry_delay=1.0, sleep=record_sleep)
        conversation_id = assistant.start_conversation()["conversationId"]

        with pytest.raises(GenerationUnavailable):
            await assistant.chat(conversation_id, "Hello there")

        assert len(llm.calls) == 3
        assert delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_transient_failure_recovers(self, make_assistant, make_llm):
        llm = make_llm(script=[GenerationUnavailable("blip")])
        assistant = make_assistant(llm)
        conversation_id = assistant.start_conversation()["conversationId"]

        result = await assistant.chat(conversation_id, "Hello there")

        assert result.response == llm.default
        assert len(llm.calls) == 2

    @pytest.mark.asyncio
    async def test_other_errors_are_not_retried(self, make_assistant, make_llm):
        llm = make_llm(default=RuntimeError("bug"))
        assistant = make_assistant(llm)
        conversation_id = assistant.start_conversation()["conversationId"]

        with pytest.raises(RuntimeError):
            await assistant.chat(conversation_id, "Hello there")
        assert len(llm.calls) == 1

    @pytest.mark.asyncio
    async def test_corrective_regeneration_runs_once(self, make_assistant, make_llm):
        llm = make_llm(script=["Too short.", "Still short."])
        assistant = make_assistant(llm)
        conversation_id = assistant.start_conversation()["conversationId"]

        result = await assistant.chat(conversation_id, "Hello there")

        assert len(llm.calls) == 2
        assert result.response == "Still short."
        assert result.regenerated is True
        assert result.validation_issues == ["Response too short"]
        recovery_prompt = llm.calls[1][-1]["content"]
        assert "Response too short" in recovery_prompt
        assert "Too short." in recovery_prompt

    @pytest.mark.asyncio
    async def test_advisory_issues_do_not_regenerate(self, make_assistant, make_llm):
        reply = "I think Lisbon is probably a great pick for a relaxed spring city break."
        llm = make_llm(default=reply)
        assistant = make_assistant(llm)
        conversation_id = assistant.start_conversation()["conversationId"]

        result = await assistant.chat(conversation_id, "Hello there")

        assert len(llm.calls) == 1
        assert result.regenerated is False
        assert result.validation_issues

    @pytest.mark.asyncio
    async def test_duplicate_prompt_collapsed(self, assistant, llm):
        conversation_id = assistant.start_conversation()["conversationId"]
        await assistant.chat(conversation_id, "Hello there")

        sent = llm.calls[0]
        assert [m["role"] for m in sent] == ["system", "user"]
        assert sent[1]["content"] == "Hello there"

    @pytest.mark.asyncio
    async def test_second_turn_sends_history(self, assistant, llm):
        conversation_id = assistant.start_conversation()["conversationId"]
        await assistant.chat(conversation_id, "Hello there")
        await assistant.chat(conversation_id, "Hello again")

        sent = llm.calls[1]
        assert [m["role"] for m in sent] == ["system", "user", "assistant", "user", "user"]
        assert "CONVERSATION CONTEXT" in sent[-1]["content"]


class TestExternalData:

    @pytest.mark.asyncio
    async def test_location_from_message(self, assistant, llm, weather_tool, country_tool):
        conversation_id = assistant.start_conversation()["conversationId"]
        result = await assistant.chat(conversation_id, "What is the weather in Paris?")

        assert result.query_type == QueryType.WEATHER
        assert result.external_data_used == ["weather"]
        assert weather_tool.locations == ["Paris"]
        assert country_tool.locations == []
        assert len(llm.calls) == 1
        assert "WEATHER:" in llm.calls[0][-1]["content"]

    @pytest.mark.asyncio
    async def test_location_from_earlier_destination(self, assistant, llm, weather_tool):
        conversation_id = assistant.start_conversation()["conversationId"]
        await assistant.chat(conversation_id, "I want to visit Paris in summer")
        await assistant.chat(conversation_id, "how is the weather looking tomorrow?")

        assert weather_tool.locations == ["Paris"]
        assert len(llm.calls) == 2

    @pytest.mark.asyncio
    async def test_location_resolved_by_model(self, make_assistant, make_llm, weather_tool):
        llm = make_llm(script=["Lisbon"])
        assistant = make_assistant(llm)
        conversation_id = assistant.start_conversation()["conversationId"]

        result = await assistant.chat(conversation_id, "how is the weather looking tomorrow?")

        assert weather_tool.locations == ["Lisbon"]
        assert result.external_data_used == ["weather"]
        assert len(llm.calls) == 2
        assert [m["role"] for m in llm.calls[0]] == ["user"]

    @pytest.mark.asyncio
    async def test_unknown_sentinel_means_no_data(self, make_assistant, make_llm, weather_tool):
        llm = make_llm(script=["unknown"])
        assistant = make_assistant(llm)
        conversation_id = assistant.start_conversation()["conversationId"]

        result = await assistant.chat(conversation_id, "how is the weather looking tomorrow?")

        assert weather_tool.locations == []
        assert result.external_data_used == []

    @pytest.mark.asyncio
    async def test_resolution_failure_degrades(self, make_assistant, make_llm, weather_tool):
        llm = make_llm(script=[GenerationUnavailable("busy")])
        assistant = make_assistant(llm)
        conversation_id = assistant.start_conversation()["conversationId"]

        result = await assistant.chat(conversation_id, "how is the weather looking tomorrow?")

        assert result.response == llm.default
        assert result.external_data_used == []
        assert weather_tool.locations == []

    @pytest.mark.asyncio
    async def test_failed_lookup_is_omitted(self, store, make_tool, country_tool, make_llm):
        gateway = ExternalDataGateway(weather_tool=make_tool("weather", fail=True), country_tool=country_tool)
        assistant = TravelAssistant(make_llm(), store, gateway, retry_delay=0)
        conversation_id = assistant.start_conversation()["conversationId"]

        result = await assistant.chat(conversation_id, "What is the weather in Paris?")

        assert result.external_data_used == []
        assert assistant.store.get(conversation_id).messages[-1].metadata["externalDataUsed"] is False


class TestConcurrency:

    @pytest.mark.asyncio
    async def test_same_conversation_turns_are_serialized(self, make_assistant, make_llm):
        llm = make_llm(delay=0.01)
        assistant = make_assistant(llm)
        conversation_id = assistant.start_conversation()["conversationId"]

        await asyncio.gather(
            assistant.chat(conversation_id, "Hello one"),
            assistant.chat(conversation_id, "Hello two"),
        )

        messages = assistant.store.get(conversation_id).messages
        assert [(m.role, m.content) for m in messages[1:] if m.role == MessageRole.USER] == [
            (MessageRole.USER, "Hello one"), (MessageRole.USER, "Hello two"),
        ]
        assert [m.role for m in messages[1:]] == [
            MessageRole.USER, MessageRole.ASSISTANT, MessageRole.USER, MessageRole.ASSISTANT,
        ]

    @pytest.mark.asyncio
    async def test_reset_waits_for_in_flight_turn(self, make_assistant, make_llm):
        llm = make_llm(delay=0.1)
        assistant = make_assistant(llm)
        conversation_id = assistant.start_conversation()["conversationId"]

        turn = asyncio.create_task(assistant.chat(conversation_id, "Hello there"))
        await asyncio.sleep(0.02)
        await assistant.reset_conversation(conversation_id)

        assert turn.done()
        await turn
        assert roles(assistant, conversation_id) == [MessageRole.SYSTEM]

    @pytest.mark.asyncio
    async def test_preferences_wait_for_in_flight_turn(self, make_assistant, make_llm):
        llm = make_llm(delay=0.1)
        assistant = make_assistant(llm)
        conversation_id = assistant.start_conversation()["conversationId"]

        turn = asyncio.create_task(assistant.chat(conversation_id, "Hello there"))
        await asyncio.sleep(0.02)
        await assistant.update_preferences(conversation_id, {"season": "winter"})

        assert turn.done()
        assert roles(assistant, conversation_id) == [
            MessageRole.SYSTEM, MessageRole.USER, MessageRole.ASSISTANT,
        ]

    @pytest.mark.asyncio
    async def test_delete_waits_for_in_flight_turn(self, make_assistant, make_llm):
        llm = make_llm(delay=0.1)
        assistant = make_assistant(llm)
        conversation_id = assistant.start_conversation()["conversationId"]

        turn = asyncio.create_task(assistant.chat(conversation_id, "Hello there"))
        await asyncio.sleep(0.02)
        assert await assistant.delete_conversation(conversation_id) is True

        result = await turn
        assert result.response == llm.default
        assert assistant.store.get(conversation_id) is None

    @pytest.mark.asyncio
    async def test_lifecycle_on_unknown_id_leaves_no_lock(self, assistant):
        with pytest.raises(ConversationNotFoundError):
            await assistant.reset_conversation("nope")
        assert await assistant.delete_conversation("nope") is False
        assert "nope" not in assistant.store._locks

    @pytest.mark.asyncio
    async def test_different_conversations_run_concurrently(self, make_assistant, make_llm):
        llm = make_llm(delay=0.05)
        assistant = make_assistant(llm)
        first = assistant.start_conversation()["conversationId"]
        second = assistant.start_conversation()["conversationId"]

        await asyncio.gather(
            assistant.chat(first, "Hello one"),
            assistant.chat(second, "Hello two"),
        )

        assert len(assistant.store.get(first).messages) == 3
        assert len(assistant.store.get(second).messages) == 3


class TestHelpers:

    def test_deduplicate_messages(self):
        messages = [
            {"role": "system", "content": "a"},
            {"role": "user", "content": "b"},
            {"role": "user", "content": "b"},
            {"role": "assistant", "content": "a"},
        ]
        assert deduplicate_messages(messages) == [messages[0], messages[1], messages[3]]

    @pytest.mark.parametrize("answer, expected", [
        ("Lisbon", "Lisbon"),
        ('"Kyoto."\n', "Kyoto"),
        ("Unknown", None),
        ("", None),
        ("x" * 80, None),
        ("Rome\nThe user mentions Rome.", "Rome"),
    ])
    def test_parse_location_answer(self, answer, expected):
        assert parse_location_answer(answer) == expected

    @pytest.mark.asyncio
    async def test_health_check(self, assistant):
        assistant.start_conversation()
        health = await assistant.health_check()
        assert health["llm"]["available"] is True
        assert health["conversations"]["total"] == 1
        assert health["dataSources"]["country"]["name"] == "country"
