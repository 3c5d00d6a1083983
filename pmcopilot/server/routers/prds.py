"""
PRD endpoints.

GET    /prds                 - List saved PRDs
POST   /prds                 - Create a PRD
GET    /prds/{prd_id}        - Fetch one PRD
PUT    /prds/{prd_id}        - Update title, content or template
DELETE /prds/{prd_id}        - Delete a PRD and its session
GET    /prds/{prd_id}/session - Interactive session state
POST   /prds/{prd_id}/session - Save interactive session state
POST   /prds/{prd_id}/generate - Interactive PRD generation
POST   /prds/{prd_id}/critique - Review a PRD
POST   /prds/{prd_id}/question - Answer a question about a PRD

CRUD handlers are plain functions so FastAPI runs the blocking database
calls in its thread pool.
"""
from typing import List

from fastapi import APIRouter, Depends, Request, Response
from starlette.concurrency import run_in_threadpool

from pmcopilot import prompts
from pmcopilot.server.deps import get_prd_service, get_repository
from pmcopilot.server.exceptions import NotFoundError
from pmcopilot.server.middleware import get_request_id
from pmcopilot.server.schemas import (
    CritiqueRequest,
    GenerateRequest,
    PRDCreate,
    PRDRecord,
    PRDResponse,
    PRDUpdate,
    QuestionRequest,
    SessionRecord,
    SessionSaveRequest,
    SessionSaveResponse,
    TraceData,
    UsageInfo,
)
from pmcopilot.server.services.prd_service import PRDService, ServiceResult
from pmcopilot.storage import PRDRepository


router = APIRouter(prefix="/prds", tags=["prds"])


def _caller(request: Request):
    return (
        getattr(request.state, "user_id", None),
        getattr(request.state, "session_id", None),
    )


def _to_response(result: ServiceResult, request: Request) -> PRDResponse:
    request_id = getattr(request.state, "request_id", None) or get_request_id() or "unknown"
    trace = None
    if result.trace is not None:
        trace = TraceData(
            trace_id=result.trace.trace_id,
            user_id=result.trace.user_id,
            session_id=result.trace.session_id,
        )
    return PRDResponse(
        content=result.content,
        model_used=result.model,
        generation_time=result.elapsed_seconds,
        usage=UsageInfo(
            input_tokens=result.input_tokens,
            output_tokens=result.output_tokens,
            total_tokens=result.total_tokens,
        ),
        trace=trace,
        tracing_degraded=result.tracing_degraded,
        request_id=request_id,
    )


async def _stored_content(repository: PRDRepository, prd_id: str) -> str:
    prd = await run_in_threadpool(repository.get_prd, prd_id)
    if prd is None:
        raise NotFoundError("PRD not found")
    return prd.content


# =============================================================================
# Stored PRDs
# =============================================================================


@router.get("", response_model=List[PRDRecord])
def list_prds(repository: PRDRepository = Depends(get_repository)) -> List[PRDRecord]:
    return [PRDRecord.model_validate(prd) for prd in repository.list_prds()]


@router.post("", response_model=PRDRecord, status_code=201)
def create_prd(
    body: PRDCreate, repository: PRDRepository = Depends(get_repository)
) -> PRDRecord:
    prd = repository.create_prd(
        title=body.title, content=body.content, template_id=body.template_id
    )
    return PRDRecord.model_validate(prd)


@router.get("/{prd_id}", response_model=PRDRecord)
def get_prd(prd_id: str, repository: PRDRepository = Depends(get_repository)) -> PRDRecord:
    prd = repository.get_prd(prd_id)
    if prd is None:
        raise NotFoundError("PRD not found")
    return PRDRecord.model_validate(prd)


@router.put("/{prd_id}", response_model=PRDRecord)
def update_prd(
    prd_id: str, body: PRDUpdate, repository: PRDRepository = Depends(get_repository)
) -> PRDRecord:
    prd = repository.update_prd(prd_id, **body.model_dump(exclude_unset=True))
    if prd is None:
        raise NotFoundError("PRD not found")
    return PRDRecord.model_validate(prd)


@router.delete("/{prd_id}", status_code=204)
def delete_prd(prd_id: str, repository: PRDRepository = Depends(get_repository)) -> Response:
    if not repository.delete_prd(prd_id):
        raise NotFoundError("PRD not found")
    return Response(status_code=204)


@router.get("/{prd_id}/session", response_model=SessionRecord)
def get_session(
    prd_id: str, repository: PRDRepository = Depends(get_repository)
) -> SessionRecord:
    record = repository.get_session(prd_id)
    if record is None:
        raise NotFoundError("Session not found")
    return SessionRecord.model_validate(record)


@router.post("/{prd_id}/session", response_model=SessionSaveResponse)
def save_session(
    prd_id: str,
    body: SessionSaveRequest,
    repository: PRDRepository = Depends(get_repository),
) -> SessionSaveResponse:
    record, _created = repository.save_session(
        prd_id,
        [m.model_dump(exclude_none=True) for m in body.conversation_history],
        body.settings,
    )
    if record is None:
        raise NotFoundError("PRD not found")
    return SessionSaveResponse(success=True, id=record.id)


# =============================================================================
# AI operations
# =============================================================================


@router.post("/{prd_id}/generate", response_model=PRDResponse)
async def generate(
    prd_id: str,
    body: GenerateRequest,
    request: Request,
    service: PRDService = Depends(get_prd_service),
    repository: PRDRepository = Depends(get_repository),
) -> PRDResponse:
    outline = ""
    if body.template_id:
        # Unknown templates are ignored; generation proceeds unstructured.
        template = await run_in_threadpool(repository.get_template, body.template_id)
        if template is not None:
            outline = prompts.template_outline(template)

    user_id, session_id = _caller(request)
    result = await service.generate(
        prd_id,
        body.prompt,
        conversation_history=[m.model_dump() for m in body.conversation_history],
        tone=body.tone,
        length=body.length,
        model=body.model,
        template_outline=outline,
        user_id=user_id,
        session_id=session_id,
    )
    return _to_response(result, request)


@router.post("/{prd_id}/critique", response_model=PRDResponse)
async def critique(
    prd_id: str,
    body: CritiqueRequest,
    request: Request,
    service: PRDService = Depends(get_prd_service),
    repository: PRDRepository = Depends(get_repository),
) -> PRDResponse:
    content = body.existing_content
    if not content.strip():
        content = await _stored_content(repository, prd_id)

    user_id, session_id = _caller(request)
    result = await service.critique(
        prd_id,
        content,
        include_suggestions=body.include_suggestions,
        model=body.model,
        user_id=user_id,
        session_id=session_id,
    )
    return _to_response(result, request)


@router.post("/{prd_id}/question", response_model=PRDResponse)
async def question(
    prd_id: str,
    body: QuestionRequest,
    request: Request,
    service: PRDService = Depends(get_prd_service),
    repository: PRDRepository = Depends(get_repository),
) -> PRDResponse:
    content = body.prd_content
    if not content.strip():
        content = await _stored_content(repository, prd_id)

    user_id, session_id = _caller(request)
    result = await service.answer_question(
        prd_id,
        body.question,
        content,
        context=body.context,
        model=body.model,
        user_id=user_id,
        session_id=session_id,
    )
    return _to_response(result, request)
