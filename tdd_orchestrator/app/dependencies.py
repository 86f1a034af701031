"""
Dependency Injection Wiring (Composition Root).

This module acts as the central "container" for the application's services.
It is responsible for:
1. Choosing the storage backend (STORAGE_BACKEND: memory or database).
2. Instantiating the singleton repositories, engine, services and agents.
3. Wiring them together, using @lru_cache so each is created once per process.

Tests replace any of these through app.dependency_overrides.
"""

import logging
from functools import lru_cache
from typing import Any, Dict, Optional

from fastapi import Depends
from sqlalchemy.engine import Engine

from ..agents.developer import DeveloperAgent
from ..agents.orchestrator import OrchestratorAgent
from ..agents.runtime import AgentRuntime
from ..agents.tester import TesterAgent
from ..config import settings
from ..data.hardcoded_workflows import HARDCODED_WORKFLOWS
from ..execution.agent_loop import AgentLoop
from ..execution.engine import WorkflowEngine
from ..infrastructure.database.connection import engine as db_engine, init_db
from ..llm.adapters.openai_adapter import OpenAIAdapter
from ..llm.interface import LLMProvider
from ..prompts.loader import FilePromptStore
from ..repositories.outcome import (
    InMemoryOutcomeRepository,
    OutcomeRepository,
    SqlOutcomeRepository,
)
from ..repositories.subtask import (
    InMemorySubtaskRepository,
    SqlSubtaskRepository,
    SubtaskRepository,
)
from ..repositories.transition_log import (
    InMemoryTransitionLogRepository,
    SqlTransitionLogRepository,
    TransitionLogRepository,
)
from ..repositories.workflow import (
    InMemoryWorkflowRepository,
    SqlWorkflowRepository,
    WorkflowRepository,
)
from ..services.dispatcher import ActionDispatcher
from ..services.evolution import EvolutionService
from ..services.notifier import LoggingNotifier, Notifier
from ..services.orchestrator import OrchestratorService

logger = logging.getLogger(__name__)


def _uses_database() -> bool:
    return settings.STORAGE_BACKEND == "database"


# Database Engine (Singleton)
@lru_cache()
def get_db_engine() -> Engine:
    init_db(db_engine)
    return db_engine


# LLM Provider (Singleton). Agents run rule-only when no key is configured.
@lru_cache()
def get_llm_provider() -> Optional[LLMProvider]:
    if not settings.OPENAI_API_KEY:
        logger.warning("OPENAI_API_KEY is not set; agents will not consult the LLM")
        return None
    return OpenAIAdapter(
        api_key=settings.OPENAI_API_KEY,
        model_name=settings.OPENAI_MODEL,
        temperature=settings.LLM_TEMPERATURE,
    )


# Workflow Repository (Singleton)
@lru_cache()
def get_workflow_repository() -> WorkflowRepository:
    if not _uses_database():
        return InMemoryWorkflowRepository(HARDCODED_WORKFLOWS)

    repo = SqlWorkflowRepository(get_db_engine())
    existing = set(repo.list_workflows())
    for name, definition in HARDCODED_WORKFLOWS.items():
        if name not in existing:
            logger.info(f"Seeding built-in workflow '{name}'")
            repo.save_workflow(definition)
    return repo


# Subtask Repository (Singleton)
# Note: In-memory storage must be a singleton so data persists across requests!
@lru_cache()
def get_subtask_repository() -> SubtaskRepository:
    if not _uses_database():
        return InMemorySubtaskRepository()
    return SqlSubtaskRepository(get_db_engine())


@lru_cache()
def get_outcome_repository() -> OutcomeRepository:
    if not _uses_database():
        return InMemoryOutcomeRepository()
    return SqlOutcomeRepository(get_db_engine())


@lru_cache()
def get_transition_log() -> TransitionLogRepository:
    if not _uses_database():
        return InMemoryTransitionLogRepository()
    return SqlTransitionLogRepository(get_db_engine())


@lru_cache()
def get_notifier() -> Notifier:
    return LoggingNotifier()


def _log_auto_action(context: Dict[str, Any]):
    logger.info(
        f"[{context['workflow']}] auto-action on entering '{context['to_state']}' "
        f"(event {context['event']})"
    )


# The Engine (Singleton Service)
@lru_cache()
def get_workflow_engine(
    repo: WorkflowRepository = Depends(get_workflow_repository),
) -> WorkflowEngine:
    engine = WorkflowEngine(repository=repo)
    for action_id in ("assign_orchestrator", "assign_developer", "close_task", "log_state_change"):
        engine.register_action_handler(action_id, _log_auto_action)
    return engine


# The Orchestrator Service (Singleton Service)
@lru_cache()
def get_orchestrator_service(
    repo: SubtaskRepository = Depends(get_subtask_repository),
    notifier: Notifier = Depends(get_notifier),
) -> OrchestratorService:
    return OrchestratorService(repository=repo, notifier=notifier)


@lru_cache()
def get_evolution_service(
    outcome_repo: OutcomeRepository = Depends(get_outcome_repository),
    workflow_repo: WorkflowRepository = Depends(get_workflow_repository),
    engine: WorkflowEngine = Depends(get_workflow_engine),
) -> EvolutionService:
    return EvolutionService(
        outcome_repository=outcome_repo, workflow_repository=workflow_repo, engine=engine
    )


# Agents (Singleton registry, keyed by agent name)
@lru_cache()
def get_agents(
    llm: Optional[LLMProvider] = Depends(get_llm_provider),
) -> Dict[str, AgentRuntime]:
    store = FilePromptStore()
    agents = (
        OrchestratorAgent(prompt_store=store, llm=llm),
        TesterAgent(prompt_store=store, llm=llm),
        DeveloperAgent(prompt_store=store, llm=llm),
    )
    return {agent.name: AgentRuntime(agent) for agent in agents}


# Action Dispatcher (Singleton). Lifecycle actions go to the OrchestratorService;
# no tools are registered, so tool calls come back as unknown-tool failures.
@lru_cache()
def get_action_dispatcher(
    orchestrator: OrchestratorService = Depends(get_orchestrator_service),
) -> ActionDispatcher:
    return ActionDispatcher(orchestrator)


# Agent Loop (Singleton). Without an LLM provider there is nothing to observe.
@lru_cache()
def get_agent_loop(
    engine: WorkflowEngine = Depends(get_workflow_engine),
    llm: Optional[LLMProvider] = Depends(get_llm_provider),
    dispatcher: ActionDispatcher = Depends(get_action_dispatcher),
    transition_log: TransitionLogRepository = Depends(get_transition_log),
    notifier: Notifier = Depends(get_notifier),
    evolution: EvolutionService = Depends(get_evolution_service),
) -> Optional[AgentLoop]:
    if llm is None:
        return None
    return AgentLoop(
        engine,
        llm,
        dispatcher,
        transition_log=transition_log,
        notifier=notifier,
        evolution=evolution,
    )
