"""
Lobstr.io REST client (squids, tasks, runs, results)
"""
import logging
from typing import Any, Dict, List, Optional

import httpx

from config import LOBSTR_API_BASE, require_setting
from const import LOBSTR_LANGUAGE, LOBSTR_MAX_RESULTS_PER_SEARCH, LOBSTR_RESULTS_PAGE_SIZE
from errors import NoCreditsError, ProviderError
from services.http_utils import build_client, request_json

logger = logging.getLogger(__name__)

NO_CREDITS_MESSAGE = (
    "No more Lobstr.io credits available. Please upgrade your Lobstr.io plan to continue scraping."
)


def extract_result_list(payload: Any) -> List[Dict[str, Any]]:
    """Results arrive as a bare list, or under 'data' or 'results'"""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in ("data", "results"):
            if isinstance(payload.get(key), list):
                return payload[key]
    return []


class LobstrClient:
    """
    Thin wrapper over https://api.lobstr.io/v1
    """

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = api_key or require_setting("LOBSTR_API_KEY")
        self.base_url = base_url or LOBSTR_API_BASE
        self.transport = transport

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        headers = {
            "Authorization": f"Token {self.api_key}",
            "Content-Type": "application/json",
        }
        async with build_client(self.base_url, headers, self.transport) as client:
            return await request_json(client, method, path, "Lobstr", **kwargs)

    # Tasks

    async def list_tasks(self, squid_id: str) -> List[Dict[str, Any]]:
        return extract_result_list(await self._request("GET", "/tasks", params={"squid": squid_id}))

    async def delete_task(self, task_id: str) -> None:
        await self._request("DELETE", f"/tasks/{task_id}")

    async def add_tasks(self, squid_id: str, tasks: List[Dict[str, Any]]) -> Any:
        return await self._request("POST", "/tasks", json={"tasks": tasks, "squid": squid_id})

    # Squids

    async def update_squid(self, squid_id: str, max_results: int) -> Any:
        # Provider caps a single search at 200; the run's abort_limit is enforced locally
        settings = {
            "params": {
                "max_results": min(max_results, LOBSTR_MAX_RESULTS_PER_SEARCH),
                "language": LOBSTR_LANGUAGE,
                "functions": {
                    "collect_contacts": True,
                    "details": False,
                    "images": False,
                },
            },
            "export_unique_results": True,
        }
        logger.info(f"[Lobstr] Updating squid {squid_id}: max_results={settings['params']['max_results']}")
        return await self._request("POST", f"/squids/{squid_id}", json=settings)

    # Runs

    async def start_run(self, squid_id: str) -> Dict[str, Any]:
        """
        Launch a run of the squid

        Raises:
            NoCreditsError: the account has no credits left
            ProviderError: any other launch failure
        """
        try:
            return await self._request("POST", "/runs", json={"squid": squid_id})
        except ProviderError as e:
            errors = e.payload.get("errors") if isinstance(e.payload, dict) else None
            if isinstance(errors, dict) and errors.get("type") == "NoMoreCredits":
                logger.warning(f"[Lobstr] Launch refused, no credits left for squid {squid_id}")
                raise NoCreditsError(NO_CREDITS_MESSAGE, status_code=e.status_code, payload=e.payload) from e
            raise

    async def get_run(self, run_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/runs/{run_id}")

    async def abort_run(self, run_id: str) -> Any:
        return await self._request("POST", f"/runs/{run_id}/abort")

    async def stop_run(self, run_id: str) -> Any:
        return await self._request("POST", f"/runs/{run_id}/stop")

    async def get_results(self, squid_id: str, run_id: str, page: int = 1,
                          page_size: int = LOBSTR_RESULTS_PAGE_SIZE) -> List[Dict[str, Any]]:
        payload = await self._request(
            "GET", "/results",
            params={"squid": squid_id, "run": run_id, "page": page, "page_size": page_size},
        )
        return extract_result_list(payload)

    async def get_all_results(self, squid_id: str, run_id: str, limit: int) -> List[Dict[str, Any]]:
        """
        Page through results until a short page or `limit` records
        """
        collected: List[Dict[str, Any]] = []
        page = 1
        while len(collected) < limit:
            batch = await self.get_results(squid_id, run_id, page=page)
            collected.extend(batch)
            logger.info(f"[Lobstr] Results page {page} for run {run_id}: {len(batch)} records")
            if len(batch) < LOBSTR_RESULTS_PAGE_SIZE:
                break
            page += 1
        return collected[:limit]
