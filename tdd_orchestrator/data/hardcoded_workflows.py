from tdd_orchestrator.domain.models import StateMachineDefinition

# ==============================================================================
# SUBTASK LIFECYCLE
# ==============================================================================

# The TDD lifecycle every subtask goes through. The OrchestratorService
# validates against this definition directly; it is also seeded into storage
# so the UI and the engine can render and traverse it.
SUBTASK_LIFECYCLE = StateMachineDefinition.model_validate(
    {
        "name": "subtask_lifecycle",
        "title": "Subtask TDD Lifecycle",
        "initial_state": "pending",
        "states": {
            "pending": {"on": {"START": "in_progress"}},
            "in_progress": {
                "on": {
                    "TESTS_WRITTEN": "red",
                    "BLOCK": "blocked",
                    "FAIL": "failed",
                }
            },
            "red": {
                "entry": ["log_state_change"],
                "on": {"TESTS_PASS": {"target": "green", "guard": "testsExist"}},
            },
            "green": {
                "entry": ["log_state_change"],
                "on": {"REFACTOR": "refactor"},
            },
            "refactor": {"on": {"INTEGRATION_TEST": "integration_red"}},
            "integration_red": {
                "entry": ["log_state_change"],
                "on": {"INTEGRATION_PASS": "integration_green"},
            },
            "integration_green": {
                "entry": ["log_state_change"],
                "on": {"VERIFY": "verification"},
            },
            "verification": {"on": {"VERIFICATION_PASS": "completed"}},
            "completed": {"type": "final"},
            "blocked": {"on": {"UNBLOCK": "in_progress"}},
            "failed": {"type": "final"},
        },
        "metadata": {"version": 1},
    }
)

# ==============================================================================
# AGENT EXECUTION LOOP
# ==============================================================================

# ERROR_OCCURRED is accepted from every non-terminal state: a universal
# escape hatch into ERROR. ERROR_HANDLED restarts the loop at OBSERVE.
AGENT_LOOP = StateMachineDefinition.model_validate(
    {
        "name": "agent_loop",
        "title": "Agent Observe/Think/Act Loop",
        "initial_state": "OBSERVE",
        "states": {
            "OBSERVE": {
                "on": {"OBSERVE_COMPLETE": "THINK", "ERROR_OCCURRED": "ERROR"}
            },
            "THINK": {"on": {"THINK_COMPLETE": "ACT", "ERROR_OCCURRED": "ERROR"}},
            "ACT": {"on": {"ACTION_COMPLETE": "WAIT", "ERROR_OCCURRED": "ERROR"}},
            "WAIT": {"on": {"WAIT_COMPLETE": "VERIFY", "ERROR_OCCURRED": "ERROR"}},
            "VERIFY": {
                "on": {
                    "VERIFICATION_PASSED": "COMPLETE",
                    "VERIFICATION_FAILED": "THINK",
                    "ERROR_OCCURRED": "ERROR",
                }
            },
            "COMPLETE": {"type": "final"},
            "ERROR": {"on": {"ERROR_HANDLED": "OBSERVE"}},
        },
        "metadata": {"version": 1},
    }
)

# ==============================================================================
# TASK PLANNING
# ==============================================================================

# PLAN is routed by the engine's planning rule: 'three-tier' strategies and
# bug escalations go to strategic_planning, 'standard' to standard_planning.
TASK_PLANNING = StateMachineDefinition.model_validate(
    {
        "name": "task_planning",
        "title": "Task Intake and Planning",
        "initial_state": "intake",
        "states": {
            "intake": {"on": {"PLAN": "standard_planning", "REJECT": "rejected"}},
            "standard_planning": {
                "on": {"PLAN_READY": "execution", "ESCALATE": "strategic_planning"}
            },
            "strategic_planning": {"on": {"PLAN_READY": "execution"}},
            "execution": {"on": {"DONE": "done"}},
            "done": {"type": "final"},
            "rejected": {"type": "final"},
        },
        "metadata": {
            "version": 1,
            "auto_actions": {
                "strategic_planning": "assign_orchestrator",
                "standard_planning": "assign_developer",
                "done": "close_task",
            },
        },
    }
)

# ==============================================================================
# STANDARD TDD (review loop)
# ==============================================================================

STANDARD_TDD = StateMachineDefinition.model_validate(
    {
        "name": "standard_tdd",
        "title": "Standard TDD",
        "initial_state": "pending",
        "states": {
            "pending": {"description": "Task is waiting to start", "on": {"START_TASK": "red"}},
            "red": {"description": "Failing tests", "on": {"TESTS_PASS": "green"}},
            "green": {
                "description": "Passing tests",
                "on": {"IMPLEMENTATION_COMPLETE": "refactor"},
            },
            "refactor": {
                "description": "Cleanup and optimization",
                "on": {"REFACTOR_COMPLETE": "review"},
            },
            "review": {
                "description": "Ready for QA/Code Review",
                "on": {
                    "APPROVE": "completed",
                    "REJECT_LOGIC": "red",
                    "REJECT_QUALITY": "refactor",
                },
            },
            "completed": {"description": "Task finished and merged", "type": "final"},
        },
        "metadata": {"version": 1},
    }
)

HARDCODED_WORKFLOWS = {
    wf.name: wf for wf in (SUBTASK_LIFECYCLE, AGENT_LOOP, TASK_PLANNING, STANDARD_TDD)
}
