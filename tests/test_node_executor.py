"""
Unit tests for node dispatch.
"""

import logging
from typing import Any, Dict
from unittest.mock import AsyncMock, MagicMock

import pytest

from payflow_engine.engine.interpolation import Interpolator
from payflow_engine.engine.node_executor import NodeExecutor
from payflow_engine.exceptions import NodeExecutionError
from payflow_engine.models.credential import CredentialType, ProviderCredential
from payflow_engine.models.workflow import Node
from payflow_engine.nodes.adapter_node import AdapterNodeHandler
from payflow_engine.nodes.base import NodeHandler, NodeRun, is_trigger_node
from payflow_engine.nodes.factory import NodeHandlerFactory, create_default_factory
from payflow_engine.services.api_adapters import AdapterContext, AdapterResult, set_adapter


class EchoHandler(NodeHandler):
    node_types = ("echo",)

    def __init__(self):
        super().__init__()
        self.calls = []

    async def execute(self, config: Dict[str, Any], run: NodeRun) -> Any:
        self.calls.append((config, run))
        run.log("echoed")
        return dict(config)


class FailingHandler(NodeHandler):
    node_types = ("explode",)

    async def execute(self, config: Dict[str, Any], run: NodeRun) -> Any:
        raise NodeExecutionError("kaboom", node_id=run.node.id, node_type=run.node.type)


@pytest.fixture
def echo_handler():
    return EchoHandler()


@pytest.fixture
def executor(echo_handler):
    factory = NodeHandlerFactory()
    factory.register_handler(echo_handler)
    factory.register_handler(FailingHandler())
    return NodeExecutor(factory=factory, interpolator=Interpolator())


@pytest.mark.unit
class TestNodeExecutor:
    @pytest.mark.asyncio
    async def test_input_wins_over_configuration(self, executor, make_context):
        context = make_context({"name": "Jane"})
        node = Node(id="n1", type="echo", data={"to": "config@x.com", "subject": "Hi {{trigger.name}}"})

        result = await executor.execute(node, {"to": "input@x.com"}, context)

        assert result.success is True
        assert result.output["to"] == "input@x.com"
        assert result.output["subject"] == "Hi Jane"
        assert result.logs == ["echoed"]

    @pytest.mark.asyncio
    async def test_handler_receives_resolved_input_separately(self, executor, echo_handler, make_context):
        node_input = {"previous": {"content": "x"}}
        await executor.execute(Node(id="n1", type="echo", data={}), node_input, make_context())

        config, run = echo_handler.calls[0]
        assert run.input is node_input
        assert run.node.id == "n1"
        assert config["previous"] == {"content": "x"}

    @pytest.mark.asyncio
    async def test_unknown_type_passes_input_through(self, executor, make_context, caplog):
        node_input = {"previous": {"a": 1}, "trigger": {}}
        with caplog.at_level(logging.WARNING):
            result = await executor.execute(Node(id="n1", type="mystery", data={"x": 1}), node_input, make_context())

        assert result.output == node_input
        assert "Unknown node type: mystery" in caplog.text

    @pytest.mark.asyncio
    async def test_trigger_node_resolves_to_trigger_payload(self, executor, make_context):
        result = await executor.execute(Node(id="t", type="phantomWatch"), {}, make_context({"amount": 2}))
        assert result.output == {"amount": 2}

    @pytest.mark.asyncio
    async def test_handler_errors_propagate(self, executor, make_context):
        with pytest.raises(NodeExecutionError, match="kaboom"):
            await executor.execute(Node(id="n1", type="explode"), {}, make_context())

    def test_trigger_types(self):
        for node_type in ("trigger", "phantomWatch", "metamaskWatch", "webhook", "schedule", "coingateWebhook"):
            assert is_trigger_node(node_type)
        assert not is_trigger_node("openai")


@pytest.mark.unit
class TestDefaultDispatchTable:
    def test_every_documented_type_has_a_handler(self):
        factory = create_default_factory()
        for node_type in (
            "aiAgent", "ai-agent", "webhookResponse", "respondToWebhook", "respond-to-webhook", "respond",
            "openai", "email", "gmail", "gmailSend", "googleSheets", "http", "httpRequest",
            "postgres", "slack", "telegram", "code", "alchemy", "coingate",
        ):
            assert factory.is_supported(node_type), node_type
        assert not factory.is_supported("trigger")
        assert factory.get_supported_node_types()[0] == "aiAgent"
        assert "telegram" in factory.get_supported_node_types()
        assert factory.get_handler("mystery") is None

    def test_adapter_routes(self):
        handler = AdapterNodeHandler()
        assert handler.resolve_route("aiAgent", {}) == ("agent", "agent.tools")
        assert handler.resolve_route("respond-to-webhook", {"operation": "other"}) == ("webhook", "respond")
        assert handler.resolve_route("postgres", {}) == ("postgres", "postgres.query")
        assert handler.resolve_route("postgres", {"operation": "postgres.getRows"}) == ("postgres", "postgres.getRows")
        assert handler.resolve_route("coingate", {}) == ("coingate", "payment.create")
        assert handler.resolve_route("alchemy", {"operation": "alchemy.watchAddress"}) == (
            "alchemy",
            "alchemy.watchAddress",
        )

    @pytest.mark.asyncio
    async def test_webhook_response_node_defaults_body_to_previous(self, make_context):
        executor = NodeExecutor(factory=create_default_factory(), interpolator=Interpolator())
        node = Node(id="reply", type="webhookResponse", data={"statusCode": 201})

        result = await executor.execute(node, {"previous": {"content": "done"}}, make_context())

        assert result.output["statusCode"] == 201
        assert result.output["body"] == {"content": "done"}
        assert any("respond" in line for line in result.logs)

    @pytest.mark.asyncio
    async def test_agent_node_uses_openai_credential(self, make_context):
        adapter = MagicMock()
        adapter.credential_key = "openai"
        adapter.execute = AsyncMock(return_value=AdapterResult(success=True, output={"content": "ok"}, logs=[]))
        set_adapter("agent", adapter)

        credential = ProviderCredential(type=CredentialType.API_KEY, api_key="sk-user")
        context = make_context({"q": "balance"}, credentials={"openai": credential})
        executor = NodeExecutor(factory=create_default_factory(), interpolator=Interpolator())
        node = Node(id="agent-1", type="ai-agent", data={"prompt": "Check {{trigger.q}}"})

        result = await executor.execute(node, {}, context)

        assert result.output == {"content": "ok"}
        operation, config, passed_credential, adapter_context = adapter.execute.call_args.args
        assert operation == "agent.tools"
        assert config["prompt"] == "Check balance"
        assert passed_credential is credential
        assert adapter_context == AdapterContext(
            user_id="user-1", execution_id="exec-1", workflow_id="wf-1", node_id="agent-1"
        )
