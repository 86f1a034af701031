import logging
from typing import Any, Dict, List, Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from ..config import settings
from ..domain.models import StateMachineDefinition
from ..execution.agent_loop import AgentLoop
from ..execution.engine import WorkflowEngine
from ..repositories.transition_log import TransitionLogRepository
from ..schemas.actions import AgentResult
from ..services.evolution import EvolutionService, SuccessRate
from ..services.exceptions import (
    AgentExecutionError,
    InvalidDefinitionError,
    InvalidTransitionError,
    NotFoundError,
    PausedError,
    UnknownStrategyError,
)
from ..services.orchestrator import OrchestratorService
from ..state.models import AgentTransition
from .dependencies import (
    get_agent_loop,
    get_agents,
    get_orchestrator_service,
    get_evolution_service,
    get_transition_log,
    get_workflow_engine,
)
from .schemas import (
    AgentInfo,
    AgentRunRequest,
    AgentRunResponse,
    CreateSubtaskRequest,
    PauseRequest,
    PauseStatus,
    SubtaskRead,
    SubtaskTransitionRequest,
    SubtaskTransitionResponse,
    WorkflowList,
    WorkflowTransitionRequest,
    WorkflowTransitionResponse,
)

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="TDD Orchestrator")

# --- Error Mapping ---


def _error(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return _error(status.HTTP_404_NOT_FOUND, exc)


@app.exception_handler(InvalidTransitionError)
async def invalid_transition_handler(request: Request, exc: InvalidTransitionError):
    return _error(status.HTTP_409_CONFLICT, exc)


@app.exception_handler(UnknownStrategyError)
async def unknown_strategy_handler(request: Request, exc: UnknownStrategyError):
    return _error(422, exc)


@app.exception_handler(InvalidDefinitionError)
async def invalid_definition_handler(request: Request, exc: InvalidDefinitionError):
    return _error(422, exc)


@app.exception_handler(PausedError)
async def paused_handler(request: Request, exc: PausedError):
    # 423 Locked: "this will work once resumed"
    return _error(status.HTTP_423_LOCKED, exc)


@app.exception_handler(AgentExecutionError)
async def agent_error_handler(request: Request, exc: AgentExecutionError):
    if exc.retriable:
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, exc)
    return _error(status.HTTP_502_BAD_GATEWAY, exc)


# --- Subtasks ---


def _subtask_read(service: OrchestratorService, subtask_id: str) -> SubtaskRead:
    subtask = service.repository.get(subtask_id) if service.repository else None
    if not subtask:
        raise HTTPException(status_code=404, detail=f"Subtask not found: {subtask_id}")
    return SubtaskRead(
        id=subtask.id,
        title=subtask.title,
        status=subtask.status.value,
        updated_at=subtask.updated_at,
        allowed_events=dict(service.allowed_events(subtask.status.value)),
    )


@app.post("/subtasks", response_model=SubtaskRead, status_code=status.HTTP_201_CREATED)
def create_subtask(
    request: CreateSubtaskRequest,
    service: OrchestratorService = Depends(get_orchestrator_service),
):
    """Registers a subtask in the 'pending' state."""
    service.create_subtask(request.id, request.title)
    return _subtask_read(service, request.id)


@app.get("/subtasks/{subtask_id}", response_model=SubtaskRead)
def get_subtask(
    subtask_id: str,
    service: OrchestratorService = Depends(get_orchestrator_service),
):
    return _subtask_read(service, subtask_id)


@app.post("/subtasks/{subtask_id}/start", response_model=SubtaskTransitionResponse)
async def start_subtask(
    subtask_id: str,
    service: OrchestratorService = Depends(get_orchestrator_service),
):
    new_state = await service.start_subtask(subtask_id)
    return SubtaskTransitionResponse(subtask_id=subtask_id, status=new_state)


@app.post("/subtasks/{subtask_id}/approve", response_model=SubtaskTransitionResponse)
async def approve_subtask(
    subtask_id: str,
    service: OrchestratorService = Depends(get_orchestrator_service),
):
    """Verification passed: the subtask is completed."""
    new_state = await service.complete_subtask(subtask_id)
    return SubtaskTransitionResponse(subtask_id=subtask_id, status=new_state)


@app.post("/subtasks/{subtask_id}/transitions", response_model=SubtaskTransitionResponse)
async def transition_subtask(
    subtask_id: str,
    request: SubtaskTransitionRequest,
    service: OrchestratorService = Depends(get_orchestrator_service),
):
    if request.event:
        new_state = await service.transition(subtask_id, request.event, **request.context)
    else:
        new_state = await service.transition_to_state(
            subtask_id, request.target, **request.context
        )
    return SubtaskTransitionResponse(subtask_id=subtask_id, status=new_state)


# --- Agents ---


@app.get("/agents", response_model=List[AgentInfo])
def list_agents(agents=Depends(get_agents)):
    return [
        AgentInfo(
            name=runtime.agent.name,
            role=runtime.agent.role,
            llm_enabled=getattr(runtime.agent, "llm", None) is not None,
        )
        for runtime in agents.values()
    ]


@app.post("/agents/{name}/execute", response_model=AgentResult)
async def execute_agent(
    name: str,
    context: Optional[Dict[str, Any]] = Body(default=None),
    agents=Depends(get_agents),
):
    runtime = agents.get(name)
    if runtime is None:
        raise HTTPException(status_code=404, detail=f"Agent not found: {name}")
    return await runtime.execute(context or {})


@app.post("/agents/{name}/run", response_model=AgentRunResponse)
async def run_agent(
    name: str,
    request: AgentRunRequest,
    agents=Depends(get_agents),
    loop: Optional[AgentLoop] = Depends(get_agent_loop),
):
    """
    Drives the agent through the observe/think/act loop on one subtask.
    The run is recorded in the agent transition log and as an outcome of
    the `agent_loop` workflow.
    """
    runtime = agents.get(name)
    if runtime is None:
        raise HTTPException(status_code=404, detail=f"Agent not found: {name}")
    if loop is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="No LLM provider is configured; agent loops cannot run",
        )

    result = await loop.run(request.subtask_id, runtime.agent, request.context)
    return AgentRunResponse(
        subtask_id=result.subtask_id,
        agent=result.agent,
        state=result.state.value,
        completed=result.completed,
        steps=result.context.get("step_count", 0),
        error=result.context.get("error"),
        results=result.results,
    )


@app.get("/events", response_model=List[AgentTransition])
def list_events(
    limit: int = Query(default=50, ge=1, le=500),
    log: TransitionLogRepository = Depends(get_transition_log),
):
    """Most recent agent loop transitions, newest first."""
    return log.recent(limit)


@app.get("/agent-fsm-log/{subtask_id}", response_model=List[AgentTransition])
def agent_fsm_log(
    subtask_id: str,
    log: TransitionLogRepository = Depends(get_transition_log),
):
    """Agent loop transitions of one subtask, oldest first."""
    return log.list_by_subtask(subtask_id)


# --- Workflows ---


@app.get("/workflows", response_model=WorkflowList)
def list_workflows(engine: WorkflowEngine = Depends(get_workflow_engine)):
    return WorkflowList(workflows=engine.list_workflows(), paused=engine.is_paused())


@app.post("/workflows/pause", response_model=PauseStatus)
def pause_workflows(
    request: Optional[PauseRequest] = None,
    engine: WorkflowEngine = Depends(get_workflow_engine),
):
    workflow = request.workflow if request else None
    engine.pause(workflow)
    return PauseStatus(workflow=workflow, paused=engine.is_paused(workflow))


@app.post("/workflows/resume", response_model=PauseStatus)
def resume_workflows(
    request: Optional[PauseRequest] = None,
    engine: WorkflowEngine = Depends(get_workflow_engine),
):
    workflow = request.workflow if request else None
    engine.resume(workflow)
    return PauseStatus(workflow=workflow, paused=engine.is_paused(workflow))


@app.get("/workflows/{name}", response_model=Dict[str, Any])
def get_workflow(name: str, engine: WorkflowEngine = Depends(get_workflow_engine)):
    return engine.load_workflow(name).to_storage()


@app.put("/workflows/{name}", response_model=Dict[str, Any])
def replace_workflow(
    name: str,
    definition: Dict[str, Any] = Body(...),
    engine: WorkflowEngine = Depends(get_workflow_engine),
):
    """Replaces a stored definition; the body is validated like a stored one."""
    if definition.get("name", name) != name:
        raise InvalidDefinitionError(
            f"Workflow name '{definition['name']}' does not match '{name}'"
        )
    try:
        parsed = StateMachineDefinition.model_validate({**definition, "name": name})
    except ValidationError as e:
        raise InvalidDefinitionError(f"Workflow '{name}' is invalid: {e}") from e

    engine.update_workflow(parsed)
    return parsed.to_storage()


@app.post("/workflows/{name}/transition", response_model=WorkflowTransitionResponse)
async def transition_workflow(
    name: str,
    request: WorkflowTransitionRequest,
    engine: WorkflowEngine = Depends(get_workflow_engine),
):
    to_state = await engine.transition(
        name, request.current_state, request.event, request.context
    )
    return WorkflowTransitionResponse(
        workflow=name,
        from_state=request.current_state,
        event=request.event,
        to_state=to_state,
    )


@app.get("/workflows/{name}/success-rate", response_model=SuccessRate)
def workflow_success_rate(
    name: str,
    service: EvolutionService = Depends(get_evolution_service),
):
    return service.calculate_success_rate(name)
