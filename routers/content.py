"""
Content writing endpoints.
Authenticate the caller, validate the brief and run the article workflow in-process.
"""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import ValidationError

from errors import ServiceError
from schemas import ContentWritingRequest, WorkflowProfile
from services.supabase_client import SupabaseClient
from workflows.content_writing_workflow import ContentWritingWorkflow

logger = logging.getLogger(__name__)

router = APIRouter()


def _bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("authorization") or ""
    if not header.lower().startswith("bearer "):
        return None
    token = header[7:].strip()
    return token or None


async def resolve_user(token: str) -> Optional[Dict[str, Any]]:
    """Look up the Supabase user for a bearer token; None when rejected"""
    return await SupabaseClient().get_user(token)


def _error(status_code: int, message: str, **extra: Any) -> JSONResponse:
    body = {"success": False, "error": message}
    body.update(extra)
    return JSONResponse(status_code=status_code, content=body)


async def _run(request: Request, profile: WorkflowProfile) -> JSONResponse:
    token = _bearer_token(request)
    if not token:
        return _error(401, "Missing authorization header")

    try:
        user = await resolve_user(token)
    except ServiceError as e:
        logger.error(f"[Content] Could not verify user: {str(e)}", exc_info=True)
        return _error(500, f"Could not verify user: {str(e)}")
    if not user:
        return _error(401, "Invalid or expired token")

    try:
        body = await request.json()
    except ValueError:
        return _error(400, "Request body must be valid JSON")

    try:
        brief = ContentWritingRequest.model_validate(body)
    except ValidationError as e:
        logger.info(f"[Content] Rejected request: {e.error_count()} validation error(s)")
        return _error(400, "Invalid request", details=e.errors(include_url=False, include_context=False))

    logger.info(
        f"[Content] {profile.value} request from user {user.get('id')} "
        f"for '{brief.topic.title}' ({brief.word_count} words)"
    )
    result = await ContentWritingWorkflow(brief, profile=profile).run()
    return JSONResponse(
        status_code=200 if result.success else 500,
        content=result.model_dump(mode="json"),
    )


@router.options("/content-writing-unified")
@router.options("/content-writing-workflow")
async def content_writing_preflight():
    return PlainTextResponse("ok")


@router.post("/content-writing-unified")
async def content_writing_unified(request: Request):
    """
    Generate one article with multi-stage context refinement, SEO and humanization passes
    """
    return await _run(request, WorkflowProfile.UNIFIED)


@router.post("/content-writing-workflow")
async def content_writing_workflow(request: Request):
    """
    Generate one article with the single-stage legacy profile
    """
    return await _run(request, WorkflowProfile.LEGACY)
