"""API endpoints for the application builder service."""

from collections.abc import AsyncIterator
from contextlib import aclosing
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import Response, StreamingResponse

from studio import __version__
from studio.models.conversation import (
    ChatRequest,
    EnhancePromptRequest,
    EnhancePromptResponse,
    FilesResponse,
    GenerateNameRequest,
    GenerateNameResponse,
    HealthResponse,
    MessagesResponse,
)
from studio.protocol.codec import encode_event
from studio.protocol.events import StreamEvent
from studio.services.chat import ChatService, get_chat_service
from studio.services.file_store import FileStore, get_file_store
from studio.services.message_store import InMemoryMessageStore, get_message_store
from studio.services.project_assist import ProjectAssistService, ProjectNotFoundError, get_project_assist_service
from studio.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


async def stream_events(request: Request, events: AsyncIterator[StreamEvent]) -> AsyncIterator[str]:
    """Encode events as NDJSON lines until the stream ends or the client goes away.

    Closing ``events`` on exit stops the orchestrator, so nothing else is
    produced once the client has disconnected.
    """
    async with aclosing(events) as stream:
        async for event in stream:
            if await request.is_disconnected():
                logger.info("Client disconnected, stopping chat turn")
                break
            yield encode_event(event)


@router.post("/chat", tags=["Chat"])
async def chat(
    request: Request,
    chat_request: ChatRequest,
    chat_service: ChatService = Depends(get_chat_service),
) -> StreamingResponse:
    """Run one chat turn and stream its events as newline-delimited JSON."""
    try:
        logger.info(f"Chat request for project {chat_request.project_id} with {len(chat_request.messages)} messages")
        turn = await chat_service.prepare_turn(chat_request)
    except ValueError as e:
        logger.warning(f"Chat request rejected for project {chat_request.project_id}: {e}")
        raise HTTPException(status_code=400, detail=str(e)) from e
    except Exception as e:
        logger.error(f"Failed to prepare chat turn for project {chat_request.project_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to start chat turn") from e

    return StreamingResponse(
        stream_events(request, chat_service.stream_turn(turn)),
        media_type="application/x-ndjson",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("/projects/{project_id}/files", response_model=FilesResponse, tags=["Projects"])
async def list_project_files(project_id: str, file_store: FileStore = Depends(get_file_store)) -> FilesResponse:
    """List a project's files with their content, for editor and preview resync."""
    files = await file_store.list_files(project_id)
    return FilesResponse(project_id=project_id, files=[project_file.as_dict() for project_file in files])


@router.get("/projects/{project_id}/messages", response_model=MessagesResponse, tags=["Projects"])
async def list_project_messages(
    project_id: str,
    message_store: InMemoryMessageStore = Depends(get_message_store),
) -> MessagesResponse:
    """Get a project's chat history in sequence order."""
    return MessagesResponse(
        project_id=project_id,
        messages=message_store.list_messages(project_id),
        last_message_at=message_store.get_last_message_at(project_id),
    )


@router.post("/enhance-prompt", response_model=EnhancePromptResponse, tags=["Chat"])
async def enhance_prompt(
    enhance_request: EnhancePromptRequest,
    assist_service: ProjectAssistService = Depends(get_project_assist_service),
) -> EnhancePromptResponse:
    """Rewrite a prompt so it is clear and actionable, using the project summary as context."""
    try:
        enhanced = await assist_service.enhance_prompt(
            enhance_request.prompt,
            project_summary=enhance_request.project_summary,
            is_first_message=enhance_request.is_first_message,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except Exception as e:
        logger.error(f"Failed to enhance prompt: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to enhance prompt") from e

    return EnhancePromptResponse(enhanced_prompt=enhanced)


@router.post("/projects/{project_id}/generate-name", response_model=GenerateNameResponse, tags=["Projects"])
async def generate_project_name(
    project_id: str,
    name_request: GenerateNameRequest,
    assist_service: ProjectAssistService = Depends(get_project_assist_service),
) -> GenerateNameResponse:
    """Generate a short title for a project from its idea."""
    try:
        title = await assist_service.generate_name(project_id, name_request.idea)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except Exception as e:
        logger.error(f"Failed to generate name for project {project_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to generate project name") from e

    return GenerateNameResponse(title=title)


@router.get("/projects/{project_id}/export", tags=["Projects"])
async def export_project(
    project_id: str,
    assist_service: ProjectAssistService = Depends(get_project_assist_service),
) -> Response:
    """Download a project's files as a ZIP archive."""
    try:
        file_name, data = await assist_service.export_project(project_id)
    except ProjectNotFoundError as e:
        raise HTTPException(status_code=404, detail="Project not found") from e
    except Exception as e:
        logger.error(f"Failed to export project {project_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to export project") from e

    return Response(
        content=data,
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{file_name}"'},
    )


@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC),
        version=__version__,
    )
