"""
Lobstr.io scraping endpoint.
One POST route dispatches on the body's `type` to the scrape run operations.
"""
import logging
import traceback
from typing import Any, Dict

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from activities.lobstr_activities import LOBSTR_OPERATIONS
from errors import MissingConfigError, ScrapeRunError, ServiceError

logger = logging.getLogger(__name__)

router = APIRouter()


def _failure(status_code: int, message: str, error_type: str, body: Dict[str, Any],
             debug: Dict[str, Any] = None) -> JSONResponse:
    debug_data = {
        "type": body.get("type"),
        "step": body.get("type"),
        "error": message,
        "stack": traceback.format_exc(),
        "request": body,
    }
    debug_data.update(debug or {})
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message, "errorType": error_type, "debugData": debug_data},
    )


@router.options("/lobstr-scraper")
async def lobstr_preflight():
    return PlainTextResponse("ok")


@router.post("/lobstr-scraper")
async def lobstr_scraper(request: Request):
    """
    Run one scraping operation: prepare_squid, add_tasks, launch_run, get_status,
    get_results, save_incremental, start_multi_search, stop_run, abort_run or get_geolocation
    """
    try:
        body = await request.json()
    except ValueError:
        return _failure(400, "Request body must be valid JSON", "INVALID_REQUEST", {})
    if not isinstance(body, dict):
        return _failure(400, "Request body must be a JSON object", "INVALID_REQUEST", {})

    operation_type = body.get("type")
    operation = LOBSTR_OPERATIONS.get(operation_type)
    if not operation:
        return _failure(
            400, f"Unknown operation type: {operation_type}", "INVALID_TYPE", body,
            {"allowedTypes": list(LOBSTR_OPERATIONS)},
        )

    logger.info(f"[Lobstr] Operation {operation_type} for user {body.get('userId')}")
    try:
        result = await operation(body)
    except ScrapeRunError as e:
        logger.warning(f"[Lobstr] {operation_type} failed ({e.error_type}): {e.message}")
        return _failure(e.status_code, e.message, e.error_type, body, e.debug)
    except MissingConfigError as e:
        logger.error(f"[Lobstr] {operation_type} failed: {str(e)}")
        return _failure(500, str(e), "CONFIG_ERROR", body)
    except ServiceError as e:
        logger.error(f"[Lobstr] {operation_type} failed: {str(e)}", exc_info=True)
        return _failure(500, str(e), "PROVIDER_ERROR", body)
    except Exception as e:
        logger.error(f"[Lobstr] Unexpected error in {operation_type}: {str(e)}", exc_info=True)
        return _failure(500, str(e), "INTERNAL_ERROR", body)

    result.setdefault("debugData", {})
    result["debugData"].setdefault("type", operation_type)
    result["debugData"]["request"] = body
    return result
