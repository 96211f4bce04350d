"""
Tests for the workflow executor: ordering, persistence, events and failure handling.
"""

import base64
import email
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy import create_engine, text

from payflow_engine.core.config import Settings
from payflow_engine.engine.events import (
    EXECUTION_COMPLETED,
    EXECUTION_FAILED,
    EXECUTION_STARTED,
    NODE_OUTPUT,
    EventPublisher,
    InMemoryEventBus,
)
from payflow_engine.engine.interpolation import Interpolator
from payflow_engine.engine.node_executor import NodeExecutor
from payflow_engine.engine.workflow_executor import WorkflowExecutor, execute_workflow
from payflow_engine.exceptions import NodeExecutionError, WorkflowCycleError, WorkflowValidationError
from payflow_engine.models.db_models import CredentialRow, WorkflowRow
from payflow_engine.models.execution import ExecutionStatus
from payflow_engine.nodes.factory import create_default_factory
from payflow_engine.services.credential_service import CredentialService
from payflow_engine.services.execution_repository import ExecutionRepository
from payflow_engine.services.workflow_cache import WorkflowCache


def code_node(node_id, code):
    return {"id": node_id, "type": "code", "data": {"code": code}}


def trigger_node(node_id="trigger"):
    return {"id": node_id, "type": "trigger", "data": {}}


def edge(source, target, **kwargs):
    return {"id": f"{source}-{target}", "source": source, "target": target, **kwargs}


def add_rows(session_factory, *rows):
    with session_factory() as session:
        session.add_all(rows)
        session.commit()


class FailingPublisher(EventPublisher):
    async def publish(self, workflow_id, event):
        raise RuntimeError("bus down")


class BrokenLiveUpdates(ExecutionRepository):
    async def update_node_output(self, workflow_id, node_id, output):
        raise RuntimeError("db hiccup")


@pytest.fixture
def repository(session_factory):
    return ExecutionRepository(session_factory)


@pytest.fixture
def build_executor(session_factory, repository):
    def factory(http_client=None, publisher=None, repo=None, **settings):
        return WorkflowExecutor(
            repository=repo or repository,
            credential_service=CredentialService(session_factory),
            cache=WorkflowCache(redis_url=""),
            event_publisher=publisher,
            node_executor=NodeExecutor(
                factory=create_default_factory(http_client=http_client), interpolator=Interpolator()
            ),
            settings=Settings(**settings),
        )

    return factory


@pytest.fixture
def start_execution(repository):
    async def factory(trigger_output=None, user_id="user-1", workflow_id="wf-1", execution_id="exec-1"):
        await repository.create_execution(
            user_id, trigger_output or {}, workflow_id=workflow_id, execution_id=execution_id
        )
        return execution_id

    return factory


@pytest.mark.integration
class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_trigger_openai_gmail(self, session_factory, repository, build_executor, start_execution, mock_http):
        definition = {
            "nodes": [
                trigger_node(),
                {"id": "openai-1", "type": "openai", "data": {"prompt": "Say hi to {{trigger.name}}"}},
                {
                    "id": "gmail-1",
                    "type": "gmail",
                    "data": {"to": "{{trigger.email}}", "subject": "Hello", "body": "{{openai-1.content}}"},
                },
            ],
            "edges": [edge("trigger", "openai-1"), edge("openai-1", "gmail-1")],
        }
        add_rows(
            session_factory,
            WorkflowRow(id="wf-1", user_id="user-1", content=definition),
            CredentialRow(user_id="user-1", provider="openai", type="api_key", data={"apiKey": "sk-user"}),
            CredentialRow(user_id="user-1", provider="gmail", type="oauth2", data={"accessToken": "ya29.token"}),
        )
        trigger = {"name": "Jane", "email": "jane@x.com"}
        await start_execution(trigger)

        message = SimpleNamespace(content="Hi Jane", tool_calls=None)
        client = MagicMock()
        client.chat.completions.create = AsyncMock(
            return_value=SimpleNamespace(choices=[SimpleNamespace(message=message)], model="gpt-4o-mini", usage=None)
        )
        client.close = AsyncMock()
        gmail = mock_http(json_body={"id": "msg-1", "threadId": "thread-1"})
        executor = build_executor(http_client=gmail.client())

        with patch("payflow_engine.services.openai_client.AsyncOpenAI", return_value=client):
            outcome = await executor.execute_workflow("exec-1", definition, trigger, "user-1", workflow_id="wf-1")

        sent = client.chat.completions.create.call_args.kwargs["messages"]
        assert sent[-1] == {"role": "user", "content": "Say hi to Jane"}

        assert gmail.last_request.headers["Authorization"] == "Bearer ya29.token"
        raw = gmail.last_json()["raw"]
        mail = email.message_from_bytes(base64.urlsafe_b64decode(raw))
        assert mail["To"] == "jane@x.com"
        assert mail.get_payload(decode=True).decode().strip() == "Hi Jane"

        assert outcome["context"]["openai-1"] == {"output": {"content": "Hi Jane", "model": "gpt-4o-mini", "usage": {}}}
        assert outcome["context"]["gmail-1"]["output"]["messageId"] == "msg-1"
        assert [entry["nodeId"] for entry in outcome["log"]] == ["openai-1", "gmail-1"]

        record = await repository.get_execution("exec-1")
        assert record.status == ExecutionStatus.COMPLETED
        assert record.completed_at is not None
        assert len(record.execution_log) == 2
        assert record.result["trigger"] == {"output": trigger}

        workflow = await repository.get_workflow("wf-1")
        openai_node = next(node for node in workflow.content["nodes"] if node["id"] == "openai-1")
        assert openai_node["data"]["lastOutput"]["content"] == "Hi Jane"
        assert "lastExecutedAt" in openai_node["data"]

    @pytest.mark.asyncio
    async def test_credentials_are_scoped_to_the_executing_user(
        self, session_factory, repository, build_executor, start_execution, tmp_path
    ):
        urls = {}
        for user, label in (("user-1", "one"), ("user-2", "two")):
            url = f"sqlite:///{tmp_path / (label + '.db')}"
            engine = create_engine(url)
            with engine.begin() as conn:
                conn.execute(text("CREATE TABLE owner (label TEXT)"))
                conn.execute(text("INSERT INTO owner VALUES (:label)"), {"label": label})
            engine.dispose()
            urls[user] = url
            add_rows(
                session_factory,
                CredentialRow(user_id=user, provider="postgres", type="api_key", data={"connectionString": url}),
            )

        definition = {
            "nodes": [trigger_node(), {"id": "db", "type": "postgres", "data": {"query": "SELECT label FROM owner"}}],
            "edges": [edge("trigger", "db")],
        }
        executor = build_executor()
        results = {}
        for user in ("user-1", "user-2"):
            execution_id = await start_execution(user_id=user, workflow_id=None, execution_id=f"exec-{user}")
            outcome = await executor.execute_workflow(execution_id, definition, {}, user)
            results[user] = outcome["context"]["db"]["output"]["rows"]

        assert results == {"user-1": [{"label": "one"}], "user-2": [{"label": "two"}]}


@pytest.mark.integration
class TestExecutionFlow:
    @pytest.mark.asyncio
    async def test_outputs_flow_along_edges(self, build_executor, start_execution):
        definition = {
            "nodes": [
                code_node("b", "return {'v': input['previous']['v'] + 1}"),
                code_node("a", "return {'v': 1}"),
                trigger_node(),
            ],
            "edges": [edge("trigger", "a"), edge("a", "b")],
        }
        await start_execution()

        outcome = await build_executor().execute_workflow("exec-1", definition, {}, "user-1", workflow_id="wf-1")

        assert [entry["nodeId"] for entry in outcome["log"]] == ["a", "b"]
        assert outcome["context"]["b"] == {"output": {"v": 2}}
        assert all(entry["status"] == "success" for entry in outcome["log"])

    @pytest.mark.asyncio
    async def test_first_failure_stops_the_run(self, repository, build_executor, start_execution):
        definition = {
            "nodes": [trigger_node(), code_node("a", "raise ValueError('boom')"), code_node("b", "return {}")],
            "edges": [edge("trigger", "a"), edge("a", "b")],
        }
        await start_execution()

        with pytest.raises(NodeExecutionError, match="boom"):
            await build_executor().execute_workflow("exec-1", definition, {}, "user-1", workflow_id="wf-1")

        record = await repository.get_execution("exec-1")
        assert record.status == ExecutionStatus.FAILED
        assert "boom" in record.error
        assert record.result == {"error": record.error}
        assert len(record.execution_log) == 1
        assert record.execution_log[0]["status"] == "error"
        assert record.execution_log[0]["nodeId"] == "a"

    @pytest.mark.asyncio
    async def test_non_json_outputs_still_complete(self, session_factory, repository, build_executor, start_execution):
        definition = {
            "nodes": [
                trigger_node(),
                code_node(
                    "a",
                    "import datetime, decimal\n"
                    "return {'when': datetime.date(2024, 1, 2), 'fee': decimal.Decimal('1.5')}",
                ),
            ],
            "edges": [edge("trigger", "a")],
        }
        add_rows(session_factory, WorkflowRow(id="wf-1", user_id="user-1", content=definition))
        await start_execution()

        outcome = await build_executor().execute_workflow("exec-1", definition, {}, "user-1", workflow_id="wf-1")

        record = await repository.get_execution("exec-1")
        assert record.status == ExecutionStatus.COMPLETED
        assert record.error is None
        assert record.result["a"]["output"]["when"] == "2024-01-02"
        assert outcome["context"]["a"]["output"]["when"] == "2024-01-02"
        assert [(entry["nodeId"], entry["status"]) for entry in record.execution_log] == [("a", "success")]

        workflow = await repository.get_workflow("wf-1")
        assert workflow.content["nodes"][1]["data"]["lastOutput"]["when"] == "2024-01-02"

    @pytest.mark.asyncio
    async def test_input_resolution_failure_is_logged(self, repository, build_executor, start_execution):
        definition = {
            "nodes": [trigger_node(), code_node("a", "return {}")],
            "edges": [edge("trigger", "a")],
        }
        await start_execution()

        with patch(
            "payflow_engine.engine.workflow_executor.resolve_node_input", side_effect=RuntimeError("bad snapshot")
        ):
            with pytest.raises(RuntimeError, match="bad snapshot"):
                await build_executor().execute_workflow("exec-1", definition, {}, "user-1", workflow_id="wf-1")

        record = await repository.get_execution("exec-1")
        assert record.status == ExecutionStatus.FAILED
        assert len(record.execution_log) == 1
        entry = record.execution_log[0]
        assert entry["nodeId"] == "a"
        assert entry["status"] == "error"
        assert entry["input"] is None
        assert entry["error"] == "bad snapshot"

    @pytest.mark.asyncio
    async def test_unknown_node_type_passes_input_through(self, build_executor, start_execution):
        definition = {
            "nodes": [trigger_node(), code_node("a", "return {'v': 1}"), {"id": "m", "type": "mystery"}],
            "edges": [edge("trigger", "a"), edge("a", "m")],
        }
        await start_execution()

        outcome = await build_executor().execute_workflow("exec-1", definition, {}, "user-1")

        assert outcome["context"]["m"]["output"]["previous"] == {"v": 1}
        assert outcome["log"][-1]["status"] == "success"

    @pytest.mark.asyncio
    async def test_invalid_edge_fails_before_any_node(self, repository, build_executor, start_execution):
        definition = {"nodes": [trigger_node()], "edges": [edge("trigger", "ghost")]}
        await start_execution()

        with pytest.raises(WorkflowValidationError, match="ghost"):
            await build_executor().execute_workflow("exec-1", definition, {}, "user-1")

        record = await repository.get_execution("exec-1")
        assert record.status == ExecutionStatus.FAILED
        assert record.execution_log == []

    @pytest.mark.asyncio
    async def test_cycle_is_skipped_by_default(self, build_executor, start_execution):
        definition = {
            "nodes": [trigger_node(), code_node("a", "return {}"), code_node("b", "return {}")],
            "edges": [edge("a", "b"), edge("b", "a")],
        }
        await start_execution()

        outcome = await build_executor().execute_workflow("exec-1", definition, {}, "user-1")

        assert outcome["log"] == []
        assert "a" not in outcome["context"]

    @pytest.mark.asyncio
    async def test_cycle_fails_when_configured(self, repository, build_executor, start_execution):
        definition = {
            "nodes": [trigger_node(), code_node("a", "return {}"), code_node("b", "return {}")],
            "edges": [edge("a", "b"), edge("b", "a")],
        }
        await start_execution()

        with pytest.raises(WorkflowCycleError):
            await build_executor(cycle_policy="fail").execute_workflow("exec-1", definition, {}, "user-1")
        assert (await repository.get_execution("exec-1")).status == ExecutionStatus.FAILED

    @pytest.mark.asyncio
    async def test_blockchain_trigger_is_flattened(self, build_executor, start_execution):
        trigger = {
            "transactions": [
                {
                    "signature": "sig-1",
                    "slot": 42,
                    "meta": {"preBalances": [3_000_000_000, 0], "postBalances": [1_000_000_000, 2_000_000_000]},
                    "transaction": {"message": {"accountKeys": ["wallet-a", "wallet-b"]}},
                }
            ]
        }
        definition = {
            "nodes": [trigger_node(), code_node("a", "return {'amount': input['trigger']['amount']}")],
            "edges": [edge("trigger", "a")],
        }
        await start_execution(trigger)

        outcome = await build_executor().execute_workflow("exec-1", definition, trigger, "user-1")

        flattened = outcome["context"]["trigger"]["output"]
        assert flattened["signature"] == "sig-1"
        assert flattened["from"] == "wallet-a" and flattened["to"] == "wallet-b"
        assert outcome["context"]["a"]["output"] == {"amount": 2.0}


@pytest.mark.integration
class TestParallelExecution:
    DIAMOND = {
        "nodes": [
            trigger_node(),
            code_node("x", "return {'v': 1}"),
            code_node("y", "return {'v': 2}"),
            code_node("z", "return {'sum': sum(p['v'] for p in input['previous'])}"),
        ],
        "edges": [edge("trigger", "x"), edge("trigger", "y"), edge("x", "z"), edge("y", "z")],
    }

    @pytest.mark.asyncio
    async def test_diamond_matches_sequential_result(self, build_executor, start_execution):
        await start_execution()

        outcome = await build_executor(max_concurrent_nodes=3).execute_workflow(
            "exec-1", self.DIAMOND, {}, "user-1"
        )

        assert outcome["context"]["z"] == {"output": {"sum": 3}}
        assert [entry["nodeId"] for entry in outcome["log"]] == ["x", "y", "z"]

    @pytest.mark.asyncio
    async def test_failure_in_a_level_stops_later_levels(self, repository, build_executor, start_execution):
        definition = {
            "nodes": [*self.DIAMOND["nodes"][:1], code_node("x", "raise RuntimeError('x broke')"),
                      *self.DIAMOND["nodes"][2:]],
            "edges": self.DIAMOND["edges"],
        }
        await start_execution()

        with pytest.raises(NodeExecutionError, match="x broke"):
            await build_executor(max_concurrent_nodes=3).execute_workflow("exec-1", definition, {}, "user-1")

        record = await repository.get_execution("exec-1")
        assert [(entry["nodeId"], entry["status"]) for entry in record.execution_log] == [
            ("x", "error"),
            ("y", "success"),
        ]


@pytest.mark.integration
class TestSideEffects:
    DEFINITION = {
        "nodes": [trigger_node(), code_node("a", "return {'v': 1}"), code_node("b", "return {'v': 2}")],
        "edges": [edge("trigger", "a"), edge("a", "b")],
    }

    @pytest.mark.asyncio
    async def test_events_are_published_in_order(self, build_executor, start_execution):
        bus = InMemoryEventBus()
        queue = bus.subscribe("wf-1")
        await start_execution()

        await build_executor(publisher=bus).execute_workflow("exec-1", self.DEFINITION, {}, "user-1", workflow_id="wf-1")

        events = [queue.get_nowait() for _ in range(queue.qsize())]
        assert [event["type"] for event in events] == [
            EXECUTION_STARTED,
            NODE_OUTPUT,
            NODE_OUTPUT,
            EXECUTION_COMPLETED,
        ]
        assert [event.get("nodeId") for event in events[1:3]] == ["a", "b"]
        assert events[2]["output"] == {"v": 2}

    @pytest.mark.asyncio
    async def test_failure_event(self, build_executor, start_execution):
        bus = InMemoryEventBus()
        queue = bus.subscribe("wf-1")
        definition = {"nodes": [trigger_node(), code_node("a", "raise KeyError('k')")], "edges": [edge("trigger", "a")]}
        await start_execution()

        with pytest.raises(NodeExecutionError):
            await build_executor(publisher=bus).execute_workflow("exec-1", definition, {}, "user-1", workflow_id="wf-1")

        events = [queue.get_nowait() for _ in range(queue.qsize())]
        assert events[-1]["type"] == EXECUTION_FAILED
        assert "k" in events[-1]["error"]

    @pytest.mark.asyncio
    async def test_publisher_errors_do_not_abort_the_run(self, repository, build_executor, start_execution):
        await start_execution()

        await build_executor(publisher=FailingPublisher()).execute_workflow(
            "exec-1", self.DEFINITION, {}, "user-1", workflow_id="wf-1"
        )

        assert (await repository.get_execution("exec-1")).status == ExecutionStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_live_update_errors_do_not_abort_the_run(self, session_factory, build_executor, start_execution):
        repo = BrokenLiveUpdates(session_factory)
        await start_execution()

        outcome = await build_executor(repo=repo).execute_workflow(
            "exec-1", self.DEFINITION, {}, "user-1", workflow_id="wf-1"
        )

        assert outcome["context"]["b"] == {"output": {"v": 2}}
        assert (await repo.get_execution("exec-1")).status == ExecutionStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_live_updates_can_be_disabled(self, session_factory, build_executor, start_execution):
        repo = ExecutionRepository(session_factory)
        repo.update_node_output = AsyncMock(return_value=True)
        await start_execution()

        await build_executor(repo=repo, live_node_updates=False).execute_workflow(
            "exec-1", self.DEFINITION, {}, "user-1", workflow_id="wf-1"
        )

        repo.update_node_output.assert_not_awaited()


@pytest.mark.unit
class TestModuleLevelEntryPoint:
    @pytest.mark.asyncio
    async def test_delegates_to_a_default_executor(self):
        instance = MagicMock()
        instance.execute_workflow = AsyncMock(return_value={"context": {}, "log": []})

        with patch("payflow_engine.engine.workflow_executor.WorkflowExecutor", return_value=instance):
            outcome = await execute_workflow("exec-9", {"nodes": [], "edges": []}, {"a": 1}, "user-9", workflow_id="wf-9")

        assert outcome == {"context": {}, "log": []}
        instance.execute_workflow.assert_awaited_once_with(
            "exec-9", {"nodes": [], "edges": []}, {"a": 1}, "user-9", workflow_id="wf-9"
        )
