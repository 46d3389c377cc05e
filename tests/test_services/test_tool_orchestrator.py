"""
Tests for the bounded tool-calling loop.
"""
import json

import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock

from fleetdesk.core.exceptions import (
    BusinessRuleException,
    DocumentStoreError,
    ReasoningServiceError,
    ServiceUnavailableError,
    ValidationException,
)
from fleetdesk.models.results import ActionResult
from fleetdesk.models.session import Session, Turn, TurnRole
from fleetdesk.services.reasoning import ReasoningReply, RequestedToolCall
from fleetdesk.services.tool_orchestrator import ToolOrchestrator, turn_pair
from factories import OWNER_PHONE, seed_organization


def call(name, arguments="{}", call_id=None):
    return RequestedToolCall(id=call_id or f"call_{name}", name=name, raw_arguments=arguments)


def wants(*calls):
    return ReasoningReply(tool_calls=list(calls))


def says(text):
    return ReasoningReply(text=text)


@pytest.fixture
def reasoning():
    client = MagicMock()
    client.complete = AsyncMock()
    client.summarize = AsyncMock(return_value="- earlier: added driver Musa")
    return client


@pytest.fixture
def orchestrator(reasoning, executor, settings, clock):
    return ToolOrchestrator(reasoning, executor, settings=settings, clock=clock)


@pytest.fixture
def session():
    return Session(phone_number=OWNER_PHONE, tenant_id="org-1", user_id="user-org-1")


def tool_messages(reasoning, request_index=-1):
    messages = reasoning.complete.call_args_list[request_index].args[0]
    return [m for m in messages if m["role"] == "tool"]


class TestConverse:
    """Test the loop control flow."""

    @pytest.mark.asyncio
    async def test_plain_answer(self, orchestrator, reasoning, session, flow_context):
        reasoning.complete.return_value = says("Hello! How can I help?")

        reply = await orchestrator.converse(session, "hi", flow_context, tenant_name="Swift Logistics")

        assert reply == "Hello! How can I help?"
        messages = reasoning.complete.call_args.args[0]
        assert "Swift Logistics" in messages[0]["content"]
        assert "2026-10-18" in messages[0]["content"]
        assert messages[-1] == {"role": "user", "content": "hi"}

    @pytest.mark.asyncio
    async def test_tool_result_returned_under_call_id(self, orchestrator, reasoning, session, flow_context, store):
        await seed_organization(store, "org-1", OWNER_PHONE, wallet_balance=12500)
        reasoning.complete.side_effect = [wants(call("get_wallet_balance", call_id="c-42")), says("₦12,500.00")]

        reply = await orchestrator.converse(session, "balance?", flow_context)

        assert reply == "₦12,500.00"
        second_request = reasoning.complete.call_args_list[1].args[0]
        assert second_request[-2]["role"] == "assistant"
        assert second_request[-2]["tool_calls"][0]["id"] == "c-42"
        result = tool_messages(reasoning)[0]
        assert result["tool_call_id"] == "c-42"
        assert json.loads(result["content"])["data"]["balance"] == 12500

    @pytest.mark.asyncio
    async def test_batch_runs_in_requested_order(self, orchestrator, reasoning, session, flow_context):
        reasoning.complete.side_effect = [
            wants(call("get_drivers", call_id="a"), call("get_vehicles", call_id="b"), call("get_clients", call_id="c")),
            says("done"),
        ]

        await orchestrator.converse(session, "overview", flow_context)

        assert [m["tool_call_id"] for m in tool_messages(reasoning)] == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_bad_tool_arguments_go_back_to_reasoning(self, orchestrator, reasoning, session, flow_context):
        arguments = json.dumps({"company_name": "Acme", "contact_person": "Jo Doe", "email": "a@acme.ng",
                                "phone": "unknown", "address": "Lekki Phase 1"})
        reasoning.complete.side_effect = [
            wants(call("create_client", arguments, call_id="c-1")),
            says("What is Acme's phone number?"),
        ]

        reply = await orchestrator.converse(session, "add client Acme", flow_context)

        assert reply == "What is Acme's phone number?"
        assert reasoning.complete.call_count == 2
        result = tool_messages(reasoning)[0]
        assert result["tool_call_id"] == "c-1"
        assert json.loads(result["content"])["error"] == "invalid_arguments"

    @pytest.mark.asyncio
    async def test_iteration_cap_forces_final_answer(self, orchestrator, reasoning, session, flow_context):
        reasoning.complete.side_effect = [wants(call("get_routes"))] * 5 + [says("Here is what I found.")]

        reply = await orchestrator.converse(session, "loop forever", flow_context)

        assert reply == "Here is what I found."
        assert reasoning.complete.call_count == 6
        assert reasoning.complete.call_args.kwargs["tool_choice"] == "none"

    @pytest.mark.asyncio
    async def test_reasoning_failure_returns_apology(self, orchestrator, reasoning, session, flow_context):
        reasoning.complete.side_effect = ReasoningServiceError("down")

        reply = await orchestrator.converse(session, "hi", flow_context)
        assert reply.startswith("Sorry, I'm having trouble")

    @pytest.mark.asyncio
    async def test_empty_answer_returns_apology_in_language(self, orchestrator, reasoning, session, flow_context):
        reasoning.complete.return_value = says(None)
        flow_context.language = "pidgin"

        assert (await orchestrator.converse(session, "abeg", flow_context)).startswith("Abeg no vex")

    @pytest.mark.asyncio
    async def test_history_and_summary_included(self, orchestrator, reasoning, session, flow_context):
        session.summary = "- owner asked about Acme"
        session.turn_history = turn_pair("show routes", "You have 2 routes.")
        reasoning.complete.return_value = says("ok")

        await orchestrator.converse(session, "and drivers?", flow_context)

        messages = reasoning.complete.call_args.args[0]
        assert messages[1]["content"].endswith("- owner asked about Acme")
        assert messages[2] == {"role": "user", "content": "show routes"}
        assert messages[3] == {"role": "assistant", "content": "You have 2 routes."}


class TestRunTool:
    """Every tool call yields a serializable payload."""

    @pytest.mark.asyncio
    async def test_unknown_tool(self, orchestrator, flow_context):
        payload = await orchestrator.run_tool(call("launch_rocket"), flow_context)
        assert payload == {"error": "unknown_tool", "tool": "launch_rocket"}

    @pytest.mark.asyncio
    async def test_invalid_arguments_listed(self, orchestrator, flow_context):
        payload = await orchestrator.run_tool(call("create_route", '{"pickup_location": "Apapa"}'), flow_context)

        assert payload["error"] == "invalid_arguments"
        fields = [detail["field"] for detail in payload["details"]]
        assert any(f.endswith("delivery_location") for f in fields)
        assert any(f.endswith("date") for f in fields)

    @pytest.mark.asyncio
    async def test_malformed_json(self, orchestrator, flow_context):
        payload = await orchestrator.run_tool(call("get_routes", "{not json"), flow_context)
        assert payload["error"] == "invalid_arguments"

    @pytest.mark.asyncio
    async def test_tenant_id_in_arguments_is_ignored(self, orchestrator, flow_context, store):
        arguments = json.dumps({"pickup_location": "Apapa", "delivery_location": "Ikeja",
                                "date": "2026-10-20", "organizationId": "org-evil", "tenant_id": "org-evil"})

        payload = await orchestrator.run_tool(call("create_route", arguments), flow_context)

        stored = await store.get("routes", payload["data"]["id"])
        assert stored["organizationId"] == "org-1"

    @pytest.mark.asyncio
    async def test_repeated_call_is_idempotent(self, orchestrator, flow_context, store):
        arguments = json.dumps({"pickup_location": "Apapa", "delivery_location": "Ikeja", "date": "2026-10-20"})

        first = await orchestrator.run_tool(call("create_route", arguments), flow_context, occurrence=1)
        again = await orchestrator.run_tool(call("create_route", arguments), flow_context, occurrence=1)
        other = await orchestrator.run_tool(call("create_route", arguments), flow_context, occurrence=2)

        assert first["data"]["id"] == again["data"]["id"]
        assert other["data"]["id"] != first["data"]["id"]
        assert len(await store.query("routes", {"organizationId": "org-1"})) == 2

    @pytest.mark.asyncio
    async def test_business_failure_passed_back(self, orchestrator, flow_context):
        payload = await orchestrator.run_tool(call("delete_invoice", '{"invoice_id": "INV-missing"}'), flow_context)
        assert payload == {"success": False, "error": "Invoice INV-missing not found", "error_code": "NOT_FOUND"}

    @pytest.mark.asyncio
    async def test_storage_failure(self, reasoning, settings, flow_context):
        executor = MagicMock()
        executor.execute = AsyncMock(side_effect=DocumentStoreError("write failed"))
        orchestrator = ToolOrchestrator(reasoning, executor, settings=settings)

        payload = await orchestrator.run_tool(call("get_routes"), flow_context)
        assert payload == {"error": "execution_failed", "tool": "get_routes"}

    @pytest.mark.asyncio
    async def test_bad_phone_is_invalid_arguments(self, orchestrator, flow_context, store):
        arguments = json.dumps({"company_name": "Acme", "contact_person": "Jo Doe", "email": "a@acme.ng",
                                "phone": "unknown", "address": "Lekki Phase 1"})

        payload = await orchestrator.run_tool(call("create_client", arguments), flow_context)

        assert payload["error"] == "invalid_arguments"
        assert [detail["field"].split(".")[-1] for detail in payload["details"]] == ["phone"]
        assert await store.query("clients", {"organizationId": "org-1"}) == []

    @pytest.mark.asyncio
    async def test_non_finite_rate_is_invalid_arguments(self, orchestrator, flow_context):
        arguments = '{"pickup_location": "Apapa", "delivery_location": "Ikeja", "date": "2026-10-20", "rate": Infinity}'

        payload = await orchestrator.run_tool(call("create_route", arguments), flow_context)
        assert payload["error"] == "invalid_arguments"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        ValidationException("Address has no digits", field="phone_number"),
        BusinessRuleException("already bound"),
    ])
    async def test_rejected_execution_returns_details(self, reasoning, settings, flow_context, error):
        executor = MagicMock()
        executor.execute = AsyncMock(side_effect=error)
        orchestrator = ToolOrchestrator(reasoning, executor, settings=settings)

        payload = await orchestrator.run_tool(call("get_routes"), flow_context)
        assert payload == {"error": "execution_failed", "tool": "get_routes", "details": error.detail}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        httpx.ConnectError("connection refused"),
        ServiceUnavailableError("Bank Verification"),
        json.JSONDecodeError("Expecting value", "<html>", 0),
    ])
    async def test_provider_failure_returns_payload(self, reasoning, settings, flow_context, error):
        executor = MagicMock()
        executor.execute = AsyncMock(side_effect=error)
        orchestrator = ToolOrchestrator(reasoning, executor, settings=settings)

        arguments = '{"account_number": "0123456789", "bank_code": "058"}'
        payload = await orchestrator.run_tool(call("verify_bank_account", arguments), flow_context)
        assert payload == {"error": "execution_failed", "tool": "verify_bank_account"}

    @pytest.mark.asyncio
    async def test_only_mutating_tools_get_idempotency_key(self, reasoning, settings, flow_context):
        executor = MagicMock()
        executor.execute = AsyncMock(return_value=ActionResult.ok({}))
        orchestrator = ToolOrchestrator(reasoning, executor, settings=settings)

        await orchestrator.run_tool(call("get_routes"), flow_context)
        await orchestrator.run_tool(call("delete_invoice", '{"invoice_id": "INV-1"}'), flow_context)

        read_key = executor.execute.call_args_list[0].kwargs["idempotency_key"]
        write_key = executor.execute.call_args_list[1].kwargs["idempotency_key"]
        assert read_key is None
        assert write_key.endswith(":delete_invoice:1")


class TestCompactHistory:
    """History reaching the cap is folded into the summary."""

    @staticmethod
    def history(count):
        return [Turn(role=TurnRole.USER, text=f"t{i}") for i in range(count)]

    @pytest.mark.asyncio
    async def test_below_cap_untouched(self, orchestrator, reasoning, session):
        session.turn_history = self.history(19)

        await orchestrator.compact_history(session)

        assert len(session.turn_history) == 19
        reasoning.summarize.assert_not_called()

    @pytest.mark.asyncio
    async def test_at_cap_keeps_newest_ten(self, orchestrator, reasoning, session):
        session.turn_history = self.history(20)
        session.summary = "- old"

        await orchestrator.compact_history(session)

        assert [t.text for t in session.turn_history] == [f"t{i}" for i in range(10, 20)]
        assert session.summary == "- earlier: added driver Musa"
        transcript, prior = reasoning.summarize.call_args.args
        assert "user: t0" in transcript and "t9" in transcript and "t10" not in transcript
        assert prior == "- old"

    @pytest.mark.asyncio
    async def test_summary_failure_drops_older_turns(self, orchestrator, reasoning, session):
        session.turn_history = self.history(22)
        session.summary = "- old"
        reasoning.summarize.side_effect = ReasoningServiceError("down")

        await orchestrator.compact_history(session)

        assert len(session.turn_history) == 10
        assert session.summary == "- old"
