"""
Best-effort LLM token usage ledger
"""
import asyncio
import logging
from typing import Any, Dict, Optional

from database import session_scope
from models import ApiTokenUsage
from services.background import spawn_detached
from services.openrouter_client import LLMCompletion

logger = logging.getLogger(__name__)


def _insert_usage(service_name: str, completion: LLMCompletion, request_data: Optional[Dict[str, Any]]) -> int:
    with session_scope() as db:
        row = ApiTokenUsage(
            service_name=service_name,
            model_name=completion.model,
            prompt_tokens=completion.prompt_tokens,
            completion_tokens=completion.completion_tokens,
            total_tokens=completion.total_tokens,
            cost_usd=round(completion.cost_usd, 6),
            request_data=request_data or {},
        )
        db.add(row)
        db.flush()
        return row.id


async def _record(service_name: str, completion: LLMCompletion, request_data: Optional[Dict[str, Any]]) -> str:
    row_id = await asyncio.to_thread(_insert_usage, service_name, completion, request_data)
    return f"usage row {row_id} ({completion.total_tokens} tokens, ${completion.cost_usd:.4f})"


def log_token_usage(service_name: str, completion: LLMCompletion,
                    request_data: Optional[Dict[str, Any]] = None) -> None:
    """
    Record token usage without blocking the caller; failures are only logged
    """
    spawn_detached(_record(service_name, completion, request_data), name=f"token-usage:{service_name}")
