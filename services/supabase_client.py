"""
Supabase REST client for auth lookups, storage uploads and edge function calls
"""
import logging
from typing import Any, Dict, Optional

import httpx

from config import require_setting
from errors import ProviderError
from services.http_utils import build_client, request_json

logger = logging.getLogger(__name__)


class SupabaseClient:

    def __init__(self, url: Optional[str] = None, service_key: Optional[str] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.url = (url or require_setting("SUPABASE_URL")).rstrip("/")
        self.service_key = service_key or require_setting("SUPABASE_SERVICE_ROLE_KEY")
        self.transport = transport

    def _headers(self, bearer: Optional[str] = None) -> Dict[str, str]:
        return {
            "apikey": self.service_key,
            "Authorization": f"Bearer {bearer or self.service_key}",
        }

    async def get_user(self, access_token: str) -> Optional[Dict[str, Any]]:
        """
        Resolve the user behind a bearer token.

        Returns:
            User dict, or None when the token is rejected
        """
        async with build_client(self.url, self._headers(access_token), self.transport) as client:
            try:
                user = await request_json(client, "GET", "/auth/v1/user", "Supabase")
            except ProviderError as e:
                if e.status_code in (401, 403):
                    logger.info(f"[Supabase] Token rejected: {e.message}")
                    return None
                raise

        if not isinstance(user, dict) or not user.get("id"):
            return None
        return user

    async def upload_object(self, bucket: str, path: str, content: bytes, content_type: str) -> str:
        """
        Upload bytes to storage and return the public URL
        """
        headers = self._headers()
        headers["Content-Type"] = content_type
        headers["x-upsert"] = "false"

        async with build_client(self.url, headers, self.transport) as client:
            await request_json(client, "POST", f"/storage/v1/object/{bucket}/{path}", "Supabase Storage", content=content)

        public_url = f"{self.url}/storage/v1/object/public/{bucket}/{path}"
        logger.info(f"[Supabase Storage] Uploaded {len(content)} bytes to {bucket}/{path}")
        return public_url

    async def invoke_function(self, name: str, body: Dict[str, Any]) -> Any:
        headers = self._headers()
        headers["Content-Type"] = "application/json"
        async with build_client(self.url, headers, self.transport) as client:
            return await request_json(client, "POST", f"/functions/v1/{name}", f"Supabase Function {name}", json=body)
