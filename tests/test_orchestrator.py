"""Tests for the Orchestrator: routing, lifecycle, and session commands."""

import asyncio
import json

import pytest
from conftest import ScriptedClient, is_new_event, make_settings, native_call, text_reply

from forge_agent.eventlog import EventLog
from forge_agent.exceptions import AuthenticationError, DispatchDepthExceededError
from forge_agent.orchestrator import Orchestrator
from forge_agent.types import AgentStatus, InstanceKey, MessageRole, Mode


def hanging_responder(started: asyncio.Event):
    async def respond(messages, tools, model):
        started.set()
        await asyncio.Event().wait()

    return respond


@pytest.fixture
def make_orchestrator(executor, environment):
    def _make(workflow, client, **kwargs):
        kwargs.setdefault("environment", environment)
        settings = kwargs.pop("settings", None) or make_settings()
        return Orchestrator(workflow, client, executor, settings, **kwargs)

    return _make


@pytest.fixture
def engineer_workflow(make_workflow):
    return make_workflow({
        "id": "engineer",
        "tools": ["fs_read", "think", "event_dispatch"],
        "subscribe": ["user_task_init", "user_task_update"],
    })


class TestRouting:
    """Tests for event delivery and instance lifecycle."""

    @pytest.mark.asyncio
    async def test_persistent_conversation_grows_across_events(self, make_orchestrator, engineer_workflow):
        client = ScriptedClient([text_reply("first answer"), text_reply("second answer")])
        orchestrator = make_orchestrator(engineer_workflow, client)

        assert orchestrator.publish("user_task_init", "start") == 1
        await orchestrator.wait_idle()
        assert orchestrator.publish("user_task_update", "more") == 1
        await orchestrator.wait_idle()

        instance = orchestrator.get_instance("engineer")
        assert instance.status == AgentStatus.COMPLETED
        assert [m.content for m in instance.conversation.messages] == [
            "start", "first answer", "more", "second answer",
        ]
        # the second call carries the history of the first
        assert len(client.calls[1]["messages"]) == 3
        await orchestrator.shutdown()

    @pytest.mark.asyncio
    async def test_ephemeral_agent_starts_fresh_each_event(self, make_orchestrator, make_workflow):
        workflow = make_workflow({"id": "titler", "ephemeral": True, "subscribe": ["user_task_init"]})
        client = ScriptedClient([text_reply("Title one"), text_reply("Title two")])
        finished = []
        orchestrator = make_orchestrator(workflow, client, on_outcome=lambda key, outcome: finished.append(key))

        orchestrator.publish("user_task_init", "first task")
        await orchestrator.wait_idle()
        orchestrator.publish("user_task_init", "second task")
        await orchestrator.wait_idle()

        assert finished == [InstanceKey("titler", 1), InstanceKey("titler", 2)]
        assert orchestrator.instances == {}
        assert [len(call["messages"]) for call in client.calls] == [1, 1]
        assert client.calls[1]["messages"][0].content == "second task"
        await orchestrator.shutdown()

    @pytest.mark.asyncio
    async def test_one_failing_instance_does_not_affect_others(self, make_orchestrator, make_workflow):
        workflow = make_workflow(
            {"id": "good", "model": "good-model", "subscribe": ["user_task_init"]},
            {"id": "bad", "model": "bad-model", "subscribe": ["user_task_init"]},
        )

        def respond(messages, tools, model):
            if model == "bad-model":
                return AuthenticationError("invalid key")
            return text_reply("fine")

        outcomes = {}
        orchestrator = make_orchestrator(
            workflow, ScriptedClient(responder=respond),
            on_outcome=lambda key, outcome: outcomes.__setitem__(key.agent_id, outcome),
        )

        assert orchestrator.publish("user_task_init", "go") == 2
        await orchestrator.wait_idle()

        assert outcomes["good"].is_completed
        assert outcomes["bad"].is_failed
        assert "invalid key" in outcomes["bad"].error
        assert orchestrator.get_instance("bad").status == AgentStatus.FAILED
        assert orchestrator.get_instance("good").status == AgentStatus.COMPLETED
        await orchestrator.shutdown()

    @pytest.mark.asyncio
    async def test_unknown_event_reaches_nobody(self, make_orchestrator, engineer_workflow):
        orchestrator = make_orchestrator(engineer_workflow, ScriptedClient())
        assert orchestrator.publish("nobody_listens", "x") == 0
        assert not orchestrator.is_busy()
        await orchestrator.shutdown()

    @pytest.mark.asyncio
    async def test_busy_instance_queues_events_in_order(self, make_orchestrator, engineer_workflow):
        seen = []
        active = 0
        peak = 0

        async def respond(messages, tools, model):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            seen.append(messages[-1].content)
            await asyncio.sleep(0.01)
            active -= 1
            return text_reply(f"re {messages[-1].content}")

        orchestrator = make_orchestrator(engineer_workflow, ScriptedClient(responder=respond))
        for value in ("1", "2", "3"):
            assert orchestrator.publish("user_task_update", value) == 1
        await orchestrator.wait_idle()

        assert seen == ["1", "2", "3"]
        assert peak == 1
        assert [m.content for m in orchestrator.get_instance("engineer").conversation.messages] == [
            "1", "re 1", "2", "re 2", "3", "re 3",
        ]
        await orchestrator.shutdown()


def think_then_answer(messages, tools, model):
    if is_new_event(messages):
        return native_call("tool_forge_think", '{"thought": "hmm"}')
    return text_reply("done")


class TestThinkScratchpad:
    """The think tool is shared, its recorded thoughts are not."""

    @pytest.mark.asyncio
    async def test_numbering_is_private_to_each_agent(self, make_orchestrator, make_workflow):
        workflow = make_workflow(
            {"id": "a", "tools": ["think"], "subscribe": ["user_task_init"]},
            {"id": "b", "tools": ["think"], "subscribe": ["user_task_init"]},
        )
        orchestrator = make_orchestrator(workflow, ScriptedClient(responder=think_then_answer))
        orchestrator.publish("user_task_init", "go")
        await orchestrator.wait_idle()

        for agent_id in ("a", "b"):
            instance = orchestrator.get_instance(agent_id)
            tool_message = instance.conversation.messages[2]
            assert tool_message.role == MessageRole.TOOL
            assert tool_message.content == "Thought 1/1 recorded (done)"
            assert instance.thoughts == ["hmm"]
        await orchestrator.shutdown()

    @pytest.mark.asyncio
    async def test_each_ephemeral_generation_starts_empty(self, make_orchestrator, make_workflow):
        workflow = make_workflow(
            {"id": "scratch", "ephemeral": True, "tools": ["think"], "subscribe": ["user_task_init"]}
        )
        client = ScriptedClient(responder=think_then_answer)
        orchestrator = make_orchestrator(workflow, client)

        for value in ("first", "second"):
            orchestrator.publish("user_task_init", value)
            await orchestrator.wait_idle()

        tool_results = [
            call["messages"][-1].content for call in client.calls
            if call["messages"][-1].role == MessageRole.TOOL
        ]
        assert tool_results == ["Thought 1/1 recorded (done)", "Thought 1/1 recorded (done)"]
        await orchestrator.shutdown()

    @pytest.mark.asyncio
    async def test_reset_clears_thoughts(self, make_orchestrator, engineer_workflow):
        orchestrator = make_orchestrator(engineer_workflow, ScriptedClient(responder=think_then_answer))
        orchestrator.publish("user_task_init", "go")
        await orchestrator.wait_idle()
        assert orchestrator.get_instance("engineer").thoughts == ["hmm"]

        await orchestrator.reset()
        assert orchestrator.get_instance("engineer").thoughts == []
        await orchestrator.shutdown()


class TestDispatch:
    """Tests for agent-originated events and the depth guard."""

    @pytest.mark.asyncio
    async def test_dispatch_reaches_subscriber(self, make_orchestrator, make_workflow):
        workflow = make_workflow(
            {"id": "engineer", "tools": ["event_dispatch"], "subscribe": ["user_task_init"]},
            {"id": "reviewer", "subscribe": ["review"]},
        )

        def respond(messages, tools, model):
            if messages[-1].content == "write code":
                return native_call("tool_forge_event_dispatch", '{"name": "review", "value": "the diff"}')
            return text_reply("ok")

        orchestrator = make_orchestrator(workflow, ScriptedClient(responder=respond))
        orchestrator.publish("user_task_init", "write code")
        await orchestrator.wait_idle()

        reviewer = orchestrator.get_instance("reviewer")
        assert reviewer is not None
        assert reviewer.conversation.messages[0].content == "the diff"
        engineer = orchestrator.get_instance("engineer")
        assert engineer.conversation.messages[2].content == "Event 'review' dispatched to 1 agent(s)"
        await orchestrator.shutdown()

    @pytest.mark.asyncio
    async def test_self_dispatch_is_cut_off_at_depth_limit(self, make_orchestrator, make_workflow):
        workflow = make_workflow({"id": "echo", "tools": ["event_dispatch"], "subscribe": ["ping"]})

        def respond(messages, tools, model):
            if is_new_event(messages):
                return native_call("tool_forge_event_dispatch", '{"name": "ping", "value": "again"}')
            return text_reply("stopped")

        client = ScriptedClient(responder=respond)
        orchestrator = make_orchestrator(workflow, client, settings=make_settings(max_dispatch_depth=1))

        orchestrator.publish("ping", "start")
        await orchestrator.wait_idle()

        tool_results = [
            m for m in orchestrator.get_instance("echo").conversation.messages if m.role == MessageRole.TOOL
        ]
        assert len(tool_results) == 2
        assert not tool_results[0].is_error
        assert tool_results[1].is_error
        assert "suppressed: depth 2 exceeds limit 1" in tool_results[1].content
        assert len(client.calls) == 4
        await orchestrator.shutdown()

    @pytest.mark.asyncio
    async def test_dispatch_raises_past_limit(self, make_orchestrator, engineer_workflow):
        orchestrator = make_orchestrator(engineer_workflow, ScriptedClient(), max_dispatch_depth=2)

        with pytest.raises(DispatchDepthExceededError):
            await orchestrator.dispatch("user_task_update", "x", 2, "engineer")
        assert not orchestrator.is_busy()
        await orchestrator.shutdown()


class TestInterrupt:
    """Tests for interrupting the foreground turn."""

    @pytest.mark.asyncio
    async def test_interrupt_running_turn(self, make_orchestrator, engineer_workflow):
        started = asyncio.Event()
        outcomes = []
        orchestrator = make_orchestrator(
            engineer_workflow, ScriptedClient(responder=hanging_responder(started)),
            on_outcome=lambda key, outcome: outcomes.append(outcome),
        )

        orchestrator.publish("user_task_init", "long job")
        await started.wait()
        assert orchestrator.foreground == InstanceKey("engineer", 0)
        assert orchestrator.interrupt()
        await orchestrator.wait_idle()

        assert outcomes[0].interrupted
        assert orchestrator.get_instance("engineer").status == AgentStatus.IDLE
        await orchestrator.shutdown()

    @pytest.mark.asyncio
    async def test_interrupt_when_idle(self, make_orchestrator, engineer_workflow):
        orchestrator = make_orchestrator(engineer_workflow, ScriptedClient())
        assert orchestrator.interrupt() is False

        orchestrator.publish("user_task_init", "quick")
        await orchestrator.wait_idle()
        assert orchestrator.interrupt() is False
        await orchestrator.shutdown()

    @pytest.mark.asyncio
    async def test_instance_accepts_events_after_interrupt(self, make_orchestrator, engineer_workflow):
        started = asyncio.Event()
        replies = iter([None, text_reply("recovered")])

        async def respond(messages, tools, model):
            reply = next(replies)
            if reply is None:
                started.set()
                await asyncio.Event().wait()
            return reply

        orchestrator = make_orchestrator(engineer_workflow, ScriptedClient(responder=respond))
        orchestrator.publish("user_task_init", "first")
        await started.wait()
        orchestrator.interrupt()
        await orchestrator.wait_idle()

        orchestrator.publish("user_task_update", "second")
        await orchestrator.wait_idle()
        instance = orchestrator.get_instance("engineer")
        assert instance.status == AgentStatus.COMPLETED
        assert instance.conversation.messages[-1].content == "recovered"
        await orchestrator.shutdown()


class TestSessionText:
    @pytest.mark.asyncio
    async def test_learnings_and_instructions_reach_system_prompt(self, make_orchestrator, make_workflow):
        workflow = make_workflow(
            {"id": "engineer", "subscribe": ["user_task_init"], "system_prompt": "system"},
            templates={"system": "Learned: {learnings}\nRules: {custom_instructions}"},
        )
        client = ScriptedClient()
        orchestrator = make_orchestrator(
            workflow, client, learnings="Run the tests with -x.", custom_instructions="Be brief.",
        )
        orchestrator.publish("user_task_init", "go")
        await orchestrator.wait_idle()

        system = client.calls[0]["messages"][0]
        assert system.role == MessageRole.SYSTEM
        assert system.content == "Learned: Run the tests with -x.\nRules: Be brief."
        await orchestrator.shutdown()


class TestCommands:
    """Tests for the session commands."""

    @pytest.mark.asyncio
    async def test_reset_clears_persistent_history(self, make_orchestrator, engineer_workflow):
        orchestrator = make_orchestrator(engineer_workflow, ScriptedClient())
        orchestrator.publish("user_task_init", "hello")
        await orchestrator.wait_idle()

        assert await orchestrator.reset() == 1
        instance = orchestrator.get_instance("engineer")
        assert len(instance.conversation) == 0
        assert instance.status == AgentStatus.IDLE
        await orchestrator.shutdown()

    @pytest.mark.asyncio
    async def test_reset_interrupts_running_turn(self, make_orchestrator, engineer_workflow):
        started = asyncio.Event()
        orchestrator = make_orchestrator(engineer_workflow, ScriptedClient(responder=hanging_responder(started)))
        orchestrator.publish("user_task_init", "long job")
        await started.wait()

        assert await orchestrator.reset("engineer") == 1
        await orchestrator.wait_idle()
        assert len(orchestrator.get_instance("engineer").conversation) == 0
        await orchestrator.shutdown()

    @pytest.mark.asyncio
    async def test_reset_unknown_agent(self, make_orchestrator, engineer_workflow):
        orchestrator = make_orchestrator(engineer_workflow, ScriptedClient())
        assert await orchestrator.reset("nobody") == 0
        await orchestrator.shutdown()

    @pytest.mark.asyncio
    async def test_mode_commands(self, make_orchestrator, engineer_workflow):
        orchestrator = make_orchestrator(engineer_workflow, ScriptedClient())

        assert orchestrator.handle_command("/plan") == Mode.PLAN
        assert orchestrator.mode.mode == Mode.PLAN
        assert orchestrator.handle_command("hello") is None
        assert orchestrator.set_mode(Mode.ACT) is True
        assert orchestrator.set_mode(Mode.ACT) is False
        await orchestrator.shutdown()

    @pytest.mark.asyncio
    async def test_dump(self, tmp_path, make_orchestrator, engineer_workflow):
        orchestrator = make_orchestrator(engineer_workflow, ScriptedClient([text_reply("answer")]))
        orchestrator.publish("user_task_init", "question")
        await orchestrator.wait_idle()

        path = orchestrator.dump(tmp_path / "out" / "dump.json")
        payload = json.loads(path.read_text())

        assert payload["mode"] == "ACT"
        [entry] = payload["instances"]
        assert entry["key"] == "engineer#0"
        assert entry["generation"] == 0
        assert entry["status"] == "completed"
        assert entry["conversation"] == [
            {"role": "user", "content": "question"},
            {"role": "assistant", "content": "answer"},
        ]
        await orchestrator.shutdown()

    @pytest.mark.asyncio
    async def test_dump_default_path(self, tmp_path, make_orchestrator, engineer_workflow):
        orchestrator = make_orchestrator(engineer_workflow, ScriptedClient())
        path = orchestrator.dump()
        assert path.parent == tmp_path
        assert path.name.startswith("forge-dump-")
        assert json.loads(path.read_text())["instances"] == []
        await orchestrator.shutdown()

    @pytest.mark.asyncio
    async def test_info(self, make_orchestrator, engineer_workflow, environment):
        orchestrator = make_orchestrator(engineer_workflow, ScriptedClient())
        orchestrator.publish("user_task_init", "x")
        await orchestrator.wait_idle()

        info = orchestrator.info()
        assert info["provider"] == "scripted"
        assert info["model"] == "test-model"
        assert info["mode"] == "ACT"
        assert info["max_dispatch_depth"] == 4
        assert info["agents"] == ["engineer"]
        assert info["environment"]["cwd"] == environment.cwd
        assert info["instances"] == [
            {"key": "engineer#0", "status": "completed", "messages": 2, "pending_events": 0}
        ]
        await orchestrator.shutdown()

    @pytest.mark.asyncio
    async def test_models(self, make_orchestrator, engineer_workflow):
        orchestrator = make_orchestrator(engineer_workflow, ScriptedClient())
        assert await orchestrator.models() == ["model-a", "model-b"]
        await orchestrator.shutdown()


class TestShutdown:
    @pytest.mark.asyncio
    async def test_shutdown_cancels_work_and_closes(self, make_orchestrator, engineer_workflow):
        started = asyncio.Event()
        orchestrator = make_orchestrator(engineer_workflow, ScriptedClient(responder=hanging_responder(started)))
        orchestrator.publish("user_task_init", "long job")
        await started.wait()

        await orchestrator.shutdown()

        assert orchestrator.instances == {}
        assert not orchestrator.is_busy()
        assert orchestrator.publish("user_task_update", "late") == 0


class TestEventLogIntegration:
    @pytest.mark.asyncio
    async def test_events_and_messages_are_logged(self, tmp_path, make_orchestrator, engineer_workflow):
        log = EventLog(tmp_path / "log.jsonl")
        orchestrator = make_orchestrator(engineer_workflow, ScriptedClient([text_reply("hi")]), event_log=log)

        orchestrator.publish("user_task_init", "hello")
        await orchestrator.wait_idle()
        await orchestrator.shutdown()

        records = [json.loads(line) for line in log.path.read_text().splitlines()]
        assert [r["kind"] for r in records] == ["event", "message", "message"]
        assert records[0]["name"] == "user_task_init"
        assert records[1]["agent"] == "engineer"
        assert records[2]["content"] == "hi"
