"""
Tests for the reasoning service client.
"""
import pytest
import httpx
import openai
from unittest.mock import AsyncMock, MagicMock

from fleetdesk.core.exceptions import ReasoningServiceError
from fleetdesk.services.reasoning import ReasoningClient, ReasoningReply, RequestedToolCall


def completion(content=None, tool_calls=None, total_tokens=42):
    message = MagicMock()
    message.content = content
    message.tool_calls = tool_calls
    response = MagicMock()
    response.choices = [MagicMock(message=message)]
    response.usage = MagicMock(total_tokens=total_tokens)
    return response


def tool_call(call_id, name, arguments):
    call = MagicMock()
    call.id = call_id
    call.function.name = name
    call.function.arguments = arguments
    return call


@pytest.fixture
def openai_client():
    client = MagicMock()
    client.chat.completions.create = AsyncMock()
    return client


@pytest.fixture
def reasoning(openai_client, settings):
    return ReasoningClient(client=openai_client, settings=settings)


class TestComplete:
    """Test single completion requests."""

    @pytest.mark.asyncio
    async def test_text_reply(self, reasoning, openai_client):
        openai_client.chat.completions.create.return_value = completion("  You have 3 routes.  ")

        reply = await reasoning.complete([{"role": "user", "content": "routes?"}])

        assert reply.text == "You have 3 routes."
        assert not reply.wants_tools
        assert reply.tokens_used == 42
        assert "tools" not in openai_client.chat.completions.create.call_args.kwargs

    @pytest.mark.asyncio
    async def test_tool_calls_parsed(self, reasoning, openai_client):
        openai_client.chat.completions.create.return_value = completion(
            tool_calls=[tool_call("call_1", "get_routes", '{"status": "Pending"}')]
        )

        reply = await reasoning.complete([], tools=[{"type": "function"}], tool_choice="none")

        kwargs = openai_client.chat.completions.create.call_args.kwargs
        assert kwargs["tool_choice"] == "none"
        assert reply.text is None
        assert reply.tool_calls[0].name == "get_routes"
        assert reply.tool_calls[0].arguments() == {"status": "Pending"}

    @pytest.mark.asyncio
    async def test_api_error_wrapped(self, reasoning, openai_client):
        openai_client.chat.completions.create.side_effect = openai.APIError(
            "boom", request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions"), body=None
        )

        with pytest.raises(ReasoningServiceError):
            await reasoning.complete([])
        assert openai_client.chat.completions.create.call_count == 1


class TestSummarize:
    @pytest.mark.asyncio
    async def test_includes_prior_summary(self, reasoning, openai_client):
        openai_client.chat.completions.create.return_value = completion("- asked about Acme invoice")

        summary = await reasoning.summarize("user: hi", prior_summary="- added driver Musa")

        messages = openai_client.chat.completions.create.call_args.kwargs["messages"]
        assert "added driver Musa" in messages[0]["content"]
        assert summary == "- asked about Acme invoice"

    @pytest.mark.asyncio
    async def test_empty_summary_is_an_error(self, reasoning, openai_client):
        openai_client.chat.completions.create.return_value = completion("")

        with pytest.raises(ReasoningServiceError):
            await reasoning.summarize("user: hi")


class TestReplyModels:
    def test_assistant_message_carries_tool_calls(self):
        reply = ReasoningReply(tool_calls=[RequestedToolCall(id="c1", name="analyze_fleet", raw_arguments="{}")])

        message = reply.as_assistant_message()

        assert message["role"] == "assistant"
        assert message["tool_calls"][0]["function"] == {"name": "analyze_fleet", "arguments": "{}"}

    def test_non_object_arguments_rejected(self):
        with pytest.raises(ValueError):
            RequestedToolCall(id="c1", name="get_routes", raw_arguments="[1, 2]").arguments()

    def test_malformed_json_rejected(self):
        with pytest.raises(ValueError):
            RequestedToolCall(id="c1", name="get_routes", raw_arguments="{oops").arguments()
