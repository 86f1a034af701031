import asyncio

import pytest

from tdd_orchestrator.domain.models import StateMachineDefinition
from tdd_orchestrator.execution.engine import WorkflowEngine
from tdd_orchestrator.repositories.workflow import InMemoryWorkflowRepository, WorkflowRepository
from tdd_orchestrator.services.exceptions import (
    GuardRejectedError,
    InvalidTransitionError,
    NotFoundError,
    PausedError,
    UnknownStrategyError,
    WorkflowNotFoundError,
)

GUARDED = StateMachineDefinition.model_validate(
    {
        "name": "guarded",
        "initial": "pending",
        "states": {
            "pending": {"on": {"START": "in_progress"}},
            "in_progress": {"on": {"TESTS_WRITTEN": "red"}},
            "red": {"on": {"TESTS_PASS": {"target": "green", "guard": "hasTests"}}},
            "green": {},
        },
    }
)


class CountingRepository(InMemoryWorkflowRepository):
    def __init__(self, workflows):
        super().__init__(workflows)
        self.reads = 0

    def get_workflow(self, name):
        self.reads += 1
        return super().get_workflow(name)


class BrokenRepository(WorkflowRepository):
    def get_workflow(self, name):
        raise ConnectionError("database unavailable")

    def list_workflows(self):
        return []

    def save_workflow(self, definition):
        pass

    def update_workflow(self, definition):
        pass


def test_guard_scenario(engine, workflow_repository):
    workflow_repository.save_workflow(GUARDED)

    with pytest.raises(InvalidTransitionError):
        asyncio.run(engine.transition("guarded", "red", "TESTS_PASS", {"testsExist": False}))

    assert asyncio.run(
        engine.transition("guarded", "red", "TESTS_PASS", {"testsExist": True})
    ) == "green"


def test_guard_rejection_is_distinguishable_from_undefined_event(engine, workflow_repository):
    workflow_repository.save_workflow(GUARDED)

    with pytest.raises(GuardRejectedError) as guard_error:
        asyncio.run(engine.transition("guarded", "red", "TESTS_PASS", {}))
    with pytest.raises(InvalidTransitionError) as event_error:
        asyncio.run(engine.transition("guarded", "red", "NOPE", {}))

    assert guard_error.value.guard == "hasTests"
    assert not isinstance(event_error.value, GuardRejectedError)
    assert "Invalid transition" in str(event_error.value)


def test_unregistered_guard_fails_closed(workflow_repository):
    workflow_repository.save_workflow(
        StateMachineDefinition.model_validate(
            {
                "name": "unknown_guard",
                "initial": "a",
                "states": {"a": {"on": {"GO": {"target": "b", "guard": "isFriday"}}}, "b": {}},
            }
        )
    )
    engine = WorkflowEngine(workflow_repository)

    with pytest.raises(GuardRejectedError):
        asyncio.run(engine.transition("unknown_guard", "a", "GO"))

    engine.register_guard("isFriday", lambda ctx: True)
    assert asyncio.run(engine.transition("unknown_guard", "a", "GO")) == "b"


def test_undefined_event_leaves_context_and_definition_untouched(engine):
    context = {"strategy": "standard", "nested": {"keep": True}}
    before = engine.load_workflow("subtask_lifecycle")

    for _ in range(2):
        with pytest.raises(InvalidTransitionError):
            asyncio.run(engine.transition("subtask_lifecycle", "pending", "VERIFY", context))

    assert context == {"strategy": "standard", "nested": {"keep": True}}
    assert engine.load_workflow("subtask_lifecycle") is before


def test_unknown_current_state_is_invalid(engine):
    with pytest.raises(InvalidTransitionError, match="does not exist"):
        asyncio.run(engine.transition("subtask_lifecycle", "limbo", "START"))


def test_final_state_rejects_every_event(engine):
    with pytest.raises(InvalidTransitionError):
        asyncio.run(engine.transition("agent_loop", "COMPLETE", "ERROR_OCCURRED"))


@pytest.mark.parametrize("state", ["OBSERVE", "THINK", "ACT", "WAIT", "VERIFY"])
def test_error_occurred_is_a_universal_escape_hatch(engine, state):
    assert asyncio.run(engine.transition("agent_loop", state, "ERROR_OCCURRED")) == "ERROR"


def test_pause_rejects_until_resume(engine):
    engine.pause()

    assert engine.is_paused()
    with pytest.raises(PausedError, match="Workflow execution is paused"):
        asyncio.run(engine.transition("subtask_lifecycle", "pending", "START"))
    with pytest.raises(PausedError):
        asyncio.run(engine.transition("agent_loop", "OBSERVE", "OBSERVE_COMPLETE"))

    engine.resume()
    assert asyncio.run(engine.transition("subtask_lifecycle", "pending", "START")) == "in_progress"


def test_paused_engine_runs_no_handlers(engine):
    calls = []
    engine.register_action_handler("log_state_change", calls.append)
    engine.pause()

    with pytest.raises(PausedError):
        asyncio.run(engine.transition("subtask_lifecycle", "in_progress", "TESTS_WRITTEN"))

    assert calls == []


def test_pause_single_workflow(engine):
    engine.pause("agent_loop")

    assert engine.is_paused("agent_loop")
    assert not engine.is_paused()
    with pytest.raises(PausedError):
        asyncio.run(engine.transition("agent_loop", "OBSERVE", "OBSERVE_COMPLETE"))
    assert asyncio.run(engine.transition("subtask_lifecycle", "pending", "START")) == "in_progress"

    engine.resume("agent_loop")
    assert asyncio.run(engine.transition("agent_loop", "OBSERVE", "OBSERVE_COMPLETE")) == "THINK"


def test_bug_escalation_overrides_strategy(engine):
    target = asyncio.run(
        engine.transition(
            "task_planning", "intake", "PLAN", {"isBugEscalation": True, "strategy": "standard"}
        )
    )

    assert target == "strategic_planning"


def test_escalation_from_devon_routes_to_strategic_planning(engine):
    target = asyncio.run(
        engine.transition("task_planning", "intake", "PLAN", {"escalated_from": "devon"})
    )

    assert target == "strategic_planning"


@pytest.mark.parametrize(
    "strategy, expected",
    [("three-tier", "strategic_planning"), ("standard", "standard_planning")],
)
def test_strategy_routing(engine, strategy, expected):
    assert asyncio.run(
        engine.transition("task_planning", "intake", "PLAN", {"strategy": strategy})
    ) == expected


def test_unknown_strategy(engine):
    with pytest.raises(UnknownStrategyError):
        asyncio.run(engine.transition("task_planning", "intake", "PLAN", {"strategy": "yolo"}))


def test_strategy_is_ignored_outside_planning_targets(engine):
    assert asyncio.run(
        engine.transition("task_planning", "intake", "REJECT", {"strategy": "yolo"})
    ) == "rejected"


def test_escalate_between_planning_states_keeps_its_target(engine):
    context = {"strategy": "standard"}

    assert asyncio.run(
        engine.transition("task_planning", "standard_planning", "ESCALATE", context)
    ) == "strategic_planning"
    assert asyncio.run(
        engine.transition("task_planning", "standard_planning", "ESCALATE", {"strategy": "yolo"})
    ) == "strategic_planning"


def test_actions_run_exit_entry_then_auto_action(workflow_repository):
    workflow_repository.save_workflow(
        StateMachineDefinition.model_validate(
            {
                "name": "ordered",
                "initial": "a",
                "states": {
                    "a": {"exit": ["leave_a"], "on": {"GO": "b"}},
                    "b": {"entry": ["enter_b", "unregistered"]},
                },
                "metadata": {"auto_actions": {"b": "auto_b"}},
            }
        )
    )
    engine = WorkflowEngine(workflow_repository)
    order = []
    for action_id in ("leave_a", "enter_b", "auto_b"):
        engine.register_action_handler(action_id, lambda ctx, a=action_id: order.append(a))

    assert asyncio.run(engine.transition("ordered", "a", "GO")) == "b"
    assert order == ["leave_a", "enter_b", "auto_b"]


def test_async_handlers_get_an_enriched_copy_of_the_context(engine):
    seen = []

    async def assign(ctx):
        ctx["mutated"] = True
        seen.append(ctx)

    engine.register_action_handler("assign_orchestrator", assign)
    context = {"strategy": "three-tier"}

    asyncio.run(engine.transition("task_planning", "intake", "PLAN", context))

    assert context == {"strategy": "three-tier"}
    assert seen[0]["workflow"] == "task_planning"
    assert seen[0]["from_state"] == "intake"
    assert seen[0]["to_state"] == "strategic_planning"
    assert seen[0]["event"] == "PLAN"


def test_last_handler_registration_wins(engine):
    calls = []
    engine.register_action_handler("close_task", lambda ctx: calls.append("first"))
    engine.register_action_handler("close_task", lambda ctx: calls.append("second"))

    asyncio.run(engine.transition("task_planning", "execution", "DONE"))

    assert calls == ["second"]


def test_definitions_are_cached_until_invalidated():
    repo = CountingRepository({"guarded": GUARDED})
    engine = WorkflowEngine(repo)

    engine.load_workflow("guarded")
    engine.load_workflow("guarded")
    assert repo.reads == 1

    engine.invalidate("guarded")
    engine.load_workflow("guarded")
    assert repo.reads == 2


def test_update_workflow_replaces_cached_definition(engine, workflow_repository):
    workflow_repository.save_workflow(GUARDED)
    engine.load_workflow("guarded")

    data = GUARDED.to_storage()
    data["states"]["red"] = {"on": {"TESTS_PASS": "green"}}
    engine.update_workflow(StateMachineDefinition.model_validate(data))

    assert asyncio.run(engine.transition("guarded", "red", "TESTS_PASS")) == "green"


def test_missing_workflow(engine):
    with pytest.raises(WorkflowNotFoundError, match="Workflow not found"):
        engine.load_workflow("nope")
    with pytest.raises(NotFoundError):
        asyncio.run(engine.transition("nope", "a", "GO"))
    assert engine.get_workflow("nope") is None


def test_storage_errors_are_not_swallowed():
    engine = WorkflowEngine(BrokenRepository())

    with pytest.raises(ConnectionError):
        engine.load_workflow("anything")


def test_validate_state(engine):
    assert engine.validate_state("subtask_lifecycle", "integration_red")
    assert not engine.validate_state("subtask_lifecycle", "ready_for_review")


def test_list_workflows(engine):
    assert engine.list_workflows() == sorted(
        ["agent_loop", "standard_tdd", "subtask_lifecycle", "task_planning"]
    )
