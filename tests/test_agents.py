import asyncio

import pytest

from tdd_orchestrator.agents.base import Agent, coerce_context
from tdd_orchestrator.agents.developer import BACKEND_TARGET, FRONTEND_TARGET, DeveloperAgent
from tdd_orchestrator.agents.orchestrator import OrchestratorAgent
from tdd_orchestrator.agents.runtime import AgentRuntime
from tdd_orchestrator.agents.tester import TesterAgent
from tdd_orchestrator.llm.interface import AuthenticationError, RateLimitError
from tdd_orchestrator.prompts.loader import FilePromptStore
from tdd_orchestrator.schemas.actions import ActionType, AgentResult, TaskContext
from tdd_orchestrator.services.exceptions import AgentExecutionError


def _types(result):
    return [action.type for action in result.actions]


def _run(agent, context):
    return asyncio.run(agent.execute(context))


@pytest.mark.parametrize("agent_cls", [OrchestratorAgent, TesterAgent, DeveloperAgent])
def test_every_role_has_a_prompt(agent_cls):
    agent = agent_cls()

    assert agent.prompt.strip()
    assert agent.name in agent.prompt.lower()


@pytest.mark.parametrize("agent_cls", [OrchestratorAgent, TesterAgent, DeveloperAgent])
@pytest.mark.parametrize("context", [None, {}, {"currentTask": None}])
def test_no_current_task_means_no_actions(agent_cls, context):
    result = _run(agent_cls(), context)

    assert result.actions == []
    assert result.error is None


def test_camel_case_dict_context_is_accepted():
    ctx = coerce_context({"currentTask": {"id": "7", "status": "pending"}, "availableAgents": ["devon"]})

    assert ctx.current_task.id == "7"
    assert ctx.available_agents == ["devon"]


def test_numeric_task_ids_are_accepted():
    result = _run(
        OrchestratorAgent(), {"currentTask": {"id": 42, "status": "pending"}, "availableAgents": ["tara"]}
    )

    assert result.error is None
    assert _types(result) == [ActionType.ASSIGN_TASK, ActionType.TRIGGER_TRANSITION]
    assert all(action.subtask_id == "42" for action in result.actions)


def test_malformed_context_is_reported_not_raised():
    result = _run(OrchestratorAgent(), {"current_task": {"id": "7"}})

    assert result.actions == []
    assert "status" in result.error


# --- Orion ---


def test_orion_assigns_pending_work():
    result = _run(
        OrchestratorAgent(),
        {"currentTask": {"id": "7", "status": "pending"}, "availableAgents": ["devon", "tara"]},
    )

    assert _types(result) == [ActionType.ASSIGN_TASK, ActionType.TRIGGER_TRANSITION]
    assert result.actions[0].payload == {"agent": "devon"}
    assert result.actions[1].payload == {"from": "pending", "to": "in_progress"}
    assert all(action.subtask_id == "7" for action in result.actions)


def test_orion_does_not_assign_without_agents():
    result = _run(OrchestratorAgent(), {"currentTask": {"id": "7", "status": "pending"}})

    assert result.actions == []


def test_orion_approves_reviewed_work():
    result = _run(
        OrchestratorAgent(),
        {"current_task": {"id": "7", "status": "ready_for_review"}, "approved": True},
    )

    assert _types(result) == [ActionType.APPROVE_COMPLETION, ActionType.TRIGGER_TRANSITION]
    assert result.actions[1].payload["to"] == "completed"


def test_orion_rejects_work_with_issues():
    result = _run(
        OrchestratorAgent(),
        {"current_task": {"id": "7", "status": "ready_for_review"}, "issues": ["flaky test", "lint"]},
    )

    assert _types(result) == [ActionType.REJECT_COMPLETION]
    assert result.actions[0].payload == {"reason": "flaky test"}


def test_orion_escalates_blockers():
    result = _run(
        OrchestratorAgent(),
        {"currentTask": {"id": "7", "status": "blocked"}, "blockedFor": "2h"},
    )

    assert _types(result) == [ActionType.ESCALATE_BLOCKER]
    assert result.actions[0].payload == {"issue": "Unknown blocker", "duration": "2h"}


def test_orion_requests_review_when_work_completes():
    result = _run(
        OrchestratorAgent(),
        TaskContext.model_validate(
            {"current_task": {"id": "7", "status": "in_progress"}, "completed": True}
        ),
    )

    assert result.actions[0].payload == {"from": "in_progress", "to": "ready_for_review"}


def test_orion_ignores_unknown_statuses():
    result = _run(OrchestratorAgent(), {"current_task": {"id": "7", "status": "archived"}})

    assert result.actions == []


# --- Tara ---


def test_tara_generates_unit_tests_with_default_path():
    result = _run(
        TesterAgent(), {"current_task": {"id": "ST-1", "status": "pending"}, "test_phase": "unit"}
    )

    assert _types(result) == [ActionType.GENERATE_UNIT_TESTS, ActionType.WRITE_TEST_FILE]
    assert result.actions[0].payload == {"test_type": "unit"}
    assert result.actions[1].payload["path"] == "tests/unit/test_ST-1.py"
    assert "def test_st_1_placeholder" in result.actions[1].payload["content"]


def test_tara_generates_integration_tests_at_target_path():
    result = _run(
        TesterAgent(),
        {
            "current_task": {"id": "7", "status": "pending"},
            "testPhase": "integration",
            "targetPath": "tests/it/test_api.py",
        },
    )

    assert _types(result) == [ActionType.GENERATE_INTEGRATION_TESTS, ActionType.WRITE_TEST_FILE]
    assert result.actions[1].payload["path"] == "tests/it/test_api.py"


def test_tara_checks_coverage_while_in_progress():
    result = _run(TesterAgent(), {"current_task": {"id": "7", "status": "in_progress"}})

    assert _types(result) == [ActionType.RUN_COVERAGE_CHECK]


def test_tara_reports_verification_status():
    result = _run(
        TesterAgent(),
        {
            "current_task": {"id": "7", "status": "ready_for_review"},
            "tests_passed": True,
            "coverage": 91.5,
        },
    )

    assert _types(result) == [ActionType.REPORT_VERIFICATION_STATUS]
    assert result.actions[0].payload == {"passed": True, "coverage": 91.5}


# --- Devon ---


def test_devon_implements_pending_backend_work():
    result = _run(
        DeveloperAgent(),
        {"current_task": {"id": "7", "status": "pending"}, "test_file": "tests/test_x.py"},
    )

    assert _types(result) == [ActionType.IMPLEMENT_CODE, ActionType.WRITE_IMPLEMENTATION_FILE]
    assert result.actions[0].payload == {"test_file": "tests/test_x.py", "target_path": BACKEND_TARGET}
    assert result.actions[1].payload["path"] == BACKEND_TARGET


def test_devon_targets_the_frontend_for_frontend_tasks():
    result = _run(
        DeveloperAgent(), {"current_task": {"id": "7", "status": "pending"}, "taskType": "frontend"}
    )

    assert result.actions[0].payload["target_path"] == FRONTEND_TARGET


def test_devon_refactors_and_fixes_failures():
    result = _run(
        DeveloperAgent(),
        {
            "current_task": {"id": "7", "status": "in_progress"},
            "refactor_needed": True,
            "test_errors": ["AssertionError: 1 != 2"],
        },
    )

    assert _types(result) == [ActionType.REFACTOR_CODE, ActionType.FIX_FAILING_TESTS]
    assert result.actions[1].payload == {"errors": ["AssertionError: 1 != 2"]}


def test_devon_fix_run_with_empty_error_list():
    result = _run(
        DeveloperAgent(), {"current_task": {"id": "7", "status": "in_progress"}, "test_errors": []}
    )

    assert _types(result) == [ActionType.FIX_FAILING_TESTS]


# --- LLM consultation ---


def test_llm_tool_calls_are_appended(scripted_llm):
    llm = scripted_llm(['<tool name="ShellTool" action="run"><command>pytest -q</command></tool>'])
    agent = DeveloperAgent(llm=llm)

    result = _run(
        agent,
        {"current_task": {"id": "7", "status": "in_progress"}, "instruction": "Run the suite"},
    )

    assert _types(result) == [ActionType.TOOL_CALL]
    assert result.actions[0].payload["command"] == "pytest -q"
    assert result.actions[0].subtask_id == "7"

    system, user = llm.calls[0]
    assert system == {"role": "system", "content": agent.prompt}
    assert "Run the suite" in user["content"]
    assert "7" in user["content"]


def test_llm_natural_language_reply_is_parsed(scripted_llm):
    agent = TesterAgent(llm=scripted_llm(["Create the file tests/test_cli.py"]))

    result = _run(agent, {"current_task": {"id": "7", "status": "pending"}, "instruction": "Go"})

    assert _types(result) == [ActionType.CREATE_FILE]


def test_llm_is_not_called_without_instruction(scripted_llm):
    llm = scripted_llm(["ignored"])

    _run(OrchestratorAgent(llm=llm), {"current_task": {"id": "7", "status": "pending"}})

    assert llm.calls == []


def test_llm_errors_propagate_from_the_agent(scripted_llm):
    agent = OrchestratorAgent(llm=scripted_llm([AuthenticationError("bad key")]))

    with pytest.raises(AuthenticationError):
        _run(agent, {"current_task": {"id": "7", "status": "pending"}, "instruction": "Plan"})


# --- Retry policy ---


class FlakyAgent(Agent):
    def __init__(self, failures):
        self.name = "flaky"
        self.role = "developer"
        self.prompt = "You are flaky."
        self.failures = list(failures)
        self.calls = 0

    async def execute(self, context=None):
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return AgentResult(agent=self.name)


def test_rate_limits_are_retried_until_success():
    agent = FlakyAgent([RateLimitError("slow down"), RateLimitError("slow down")])
    runtime = AgentRuntime(agent, max_attempts=3, backoff_seconds=0)

    result = asyncio.run(runtime.execute())

    assert result == AgentResult(agent="flaky")
    assert agent.calls == 3


def test_persistent_rate_limit_gives_up_as_retriable():
    agent = FlakyAgent([RateLimitError("slow down")] * 5)
    runtime = AgentRuntime(agent, max_attempts=3, backoff_seconds=0)

    with pytest.raises(AgentExecutionError) as error:
        asyncio.run(runtime.execute())

    assert error.value.retriable
    assert error.value.agent == "flaky"
    assert agent.calls == 3


def test_non_transient_failures_are_not_retried():
    agent = FlakyAgent([AuthenticationError("bad key")])
    runtime = AgentRuntime(agent, max_attempts=3, backoff_seconds=0)

    with pytest.raises(AgentExecutionError) as error:
        asyncio.run(runtime.execute())

    assert not error.value.retriable
    assert isinstance(error.value.cause, AuthenticationError)
    assert agent.calls == 1


def test_runtime_exposes_the_wrapped_agent():
    runtime = AgentRuntime(TesterAgent())

    assert runtime.name == "tara"
    assert runtime.prompt == runtime.agent.prompt


# --- Prompt store ---


def test_unknown_role_has_no_prompt():
    with pytest.raises(KeyError):
        FilePromptStore().read_prompt("designer")


def test_orchestrator_prompt_lists_available_agents():
    prompt = FilePromptStore().read_prompt("orchestrator", available_agents=["tara", "devon"])

    assert "AVAILABLE AGENTS: tara, devon" in prompt


def test_custom_template_directory_must_be_complete(tmp_path):
    (tmp_path / "tester.jinja2").write_text("You are Tara.")

    with pytest.raises(FileNotFoundError, match="orchestrator"):
        FilePromptStore(tmp_path)
