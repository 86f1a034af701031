from typing import Any, Dict, List, Optional, Union

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import create_engine

from tdd_orchestrator.data.hardcoded_workflows import HARDCODED_WORKFLOWS
from tdd_orchestrator.execution.engine import WorkflowEngine
from tdd_orchestrator.infrastructure.database.connection import init_db
from tdd_orchestrator.llm.interface import ChatCompletion, LLMProvider, Usage
from tdd_orchestrator.repositories.subtask import InMemorySubtaskRepository
from tdd_orchestrator.repositories.workflow import InMemoryWorkflowRepository
from tdd_orchestrator.services.notifier import Notifier


class ScriptedLLM(LLMProvider):
    """Replies from a script; an Exception entry is raised instead of returned."""

    def __init__(self, replies: List[Union[str, Exception]]):
        self.replies = list(replies)
        self.calls: List[List[Dict[str, str]]] = []

    async def chat(self, messages, temperature=None) -> ChatCompletion:
        self.calls.append(messages)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        return ChatCompletion(content=reply, usage=Usage(total_tokens=len(reply)))


class RecordingNotifier(Notifier):
    def __init__(self, fail_with: Optional[Exception] = None):
        self.notifications: List[tuple] = []
        self.broadcasts: List[tuple] = []
        self.fail_with = fail_with

    async def notify_agent(self, subtask_id: str, new_state: str):
        if self.fail_with:
            raise self.fail_with
        self.notifications.append((subtask_id, new_state))

    async def broadcast(self, event: str, payload: Dict[str, Any]):
        self.broadcasts.append((event, payload))


class CountingSubtaskRepository(InMemorySubtaskRepository):
    def __init__(self):
        super().__init__()
        self.update_calls: List[tuple] = []

    def update_subtask_state(self, subtask_id: str, state: str):
        self.update_calls.append((subtask_id, state))
        super().update_subtask_state(subtask_id, state)


@pytest.fixture
def workflow_repository():
    return InMemoryWorkflowRepository(HARDCODED_WORKFLOWS)


@pytest.fixture
def engine(workflow_repository):
    return WorkflowEngine(workflow_repository)


@pytest.fixture
def subtask_repository():
    return CountingSubtaskRepository()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def scripted_llm():
    return ScriptedLLM


@pytest.fixture
def make_notifier():
    return RecordingNotifier


@pytest.fixture
def sqlite_engine():
    # One shared in-memory connection so every Session sees the same tables.
    bind = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind)
    yield bind
    bind.dispose()
