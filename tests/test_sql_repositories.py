import pytest
from sqlmodel import Session

from tdd_orchestrator.data.hardcoded_workflows import HARDCODED_WORKFLOWS, SUBTASK_LIFECYCLE
from tdd_orchestrator.domain.models import WorkflowPatch
from tdd_orchestrator.infrastructure.database.tables import SubtaskDBModel, WorkflowDBModel
from tdd_orchestrator.repositories.outcome import SqlOutcomeRepository
from tdd_orchestrator.repositories.subtask import SqlSubtaskRepository
from tdd_orchestrator.repositories.transition_log import SqlTransitionLogRepository
from tdd_orchestrator.repositories.workflow import SqlWorkflowRepository
from tdd_orchestrator.scripts.db_seed_workflows import seed_workflows
from tdd_orchestrator.services.exceptions import (
    InvalidDefinitionError,
    SubtaskNotFoundError,
    WorkflowNotFoundError,
)


@pytest.fixture
def workflows(sqlite_engine):
    return SqlWorkflowRepository(sqlite_engine)


def test_seeded_workflows_round_trip(sqlite_engine, workflows):
    assert seed_workflows(sqlite_engine) == len(HARDCODED_WORKFLOWS)

    assert workflows.list_workflows() == sorted(HARDCODED_WORKFLOWS)
    assert workflows.get_workflow("subtask_lifecycle") == SUBTASK_LIFECYCLE


def test_seeding_twice_is_idempotent(sqlite_engine, workflows):
    seed_workflows(sqlite_engine)
    seed_workflows(sqlite_engine)

    assert len(workflows.list_workflows()) == len(HARDCODED_WORKFLOWS)


def test_update_workflow_persists_the_patched_definition(workflows):
    workflows.save_workflow(SUBTASK_LIFECYCLE)
    patched = SUBTASK_LIFECYCLE.apply_patch(
        WorkflowPatch.model_validate(
            {
                "add": {
                    "states": {"recovery": {"on": {"RETRY": "in_progress"}}},
                    "transitions": {"in_progress": {"TIMEOUT": "recovery"}},
                }
            }
        )
    )

    workflows.update_workflow(patched)

    stored = workflows.get_workflow("subtask_lifecycle")
    assert stored.version == SUBTASK_LIFECYCLE.version + 1
    assert stored.states["in_progress"].on["TIMEOUT"].target == "recovery"


def test_missing_workflow(workflows):
    with pytest.raises(WorkflowNotFoundError):
        workflows.get_workflow("nope")
    with pytest.raises(WorkflowNotFoundError):
        workflows.update_workflow(SUBTASK_LIFECYCLE)


def test_inactive_workflows_are_hidden(sqlite_engine, workflows):
    workflows.save_workflow(SUBTASK_LIFECYCLE)
    with Session(sqlite_engine) as db:
        row = db.get(WorkflowDBModel, "subtask_lifecycle")
        row.is_active = False
        db.add(row)
        db.commit()

    assert workflows.list_workflows() == []
    with pytest.raises(WorkflowNotFoundError):
        workflows.get_workflow("subtask_lifecycle")


def test_corrupt_stored_definition_is_reported(sqlite_engine, workflows):
    with Session(sqlite_engine) as db:
        db.add(
            WorkflowDBModel(
                name="broken",
                title="Broken",
                workflow_data={"name": "broken", "initial": "a", "states": {"a": {"on": {"GO": "ghost"}}}},
            )
        )
        db.commit()

    with pytest.raises(InvalidDefinitionError):
        workflows.get_workflow("broken")


def test_subtask_state_is_persisted(sqlite_engine):
    repo = SqlSubtaskRepository(sqlite_engine)
    repo.create("42", "Parse config files")

    repo.update_subtask_state("42", "in_progress")

    # A fresh repository on the same database sees the write.
    fresh = SqlSubtaskRepository(sqlite_engine)
    assert fresh.get_subtask_state("42") == "in_progress"
    assert fresh.get("42").title == "Parse config files"
    assert [s.id for s in fresh.list_subtasks()] == ["42"]


def test_subtask_update_requires_an_existing_row(sqlite_engine):
    repo = SqlSubtaskRepository(sqlite_engine)

    with pytest.raises(SubtaskNotFoundError):
        repo.update_subtask_state("404", "red")

    repo.save_subtask_state("404", "red")
    assert repo.get_subtask_state("404") == "red"
    assert repo.get_subtask_state("405") is None


def test_outcomes_are_appended_in_order(sqlite_engine):
    repo = SqlOutcomeRepository(sqlite_engine)
    repo.log_outcome("wf1", True, {})
    repo.log_outcome("wf2", False, {"error": "timeout", "state": "red"})
    repo.log_outcome("wf1", False, {"error": "lint"})

    assert [o.success for o in repo.list_outcomes("wf1")] == [True, False]
    assert repo.list_outcomes("wf2")[0].metrics == {"error": "timeout", "state": "red"}
    assert len(repo.list_outcomes()) == 3


def test_transition_log_queries(sqlite_engine):
    log = SqlTransitionLogRepository(sqlite_engine)
    log.log_transition("42", "devon", "OBSERVE", "THINK")
    log.log_transition("7", "tara", "OBSERVE", "THINK")
    log.log_transition("42", "devon", "THINK", "ACT")

    assert [e.to_state for e in log.list_by_subtask("42")] == ["THINK", "ACT"]
    assert log.latest("42").to_state == "ACT"
    assert log.latest("nope") is None
    assert [e.subtask_id for e in log.recent(limit=2)] == ["42", "7"]


def test_rows_carry_timezone_aware_timestamps(sqlite_engine):
    repo = SqlSubtaskRepository(sqlite_engine)
    repo.create("42", "Parse config files")
    before = repo.get("42").updated_at

    repo.save_subtask_state("42", "red")
    SqlOutcomeRepository(sqlite_engine).log_outcome("wf1", True, {})

    assert repo.get("42").updated_at >= before
    with Session(sqlite_engine) as db:
        row = SubtaskDBModel(id="43")
        assert row.created_at.tzinfo is not None
        db.add(row)
        db.commit()
    assert repo.get_subtask_state("43") == "pending"
