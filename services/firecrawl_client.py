"""
Firecrawl scrape client used for the reference-content stage
"""
import logging
from typing import Any, Dict, Optional

import httpx

from config import FIRECRAWL_BASE_URL, require_setting
from errors import ProviderError
from services.http_utils import build_client, request_json

logger = logging.getLogger(__name__)


class FirecrawlClient:

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = api_key or require_setting("FIRECRAWL_API_KEY")
        self.base_url = base_url or FIRECRAWL_BASE_URL
        self.transport = transport

    async def scrape(self, url: str) -> Dict[str, Any]:
        """
        Scrape a page into markdown

        Returns:
            {"url", "title", "markdown"}
        """
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        payload = {"url": url, "formats": ["markdown"], "onlyMainContent": True}

        logger.info(f"[Firecrawl] Scraping {url}")
        async with build_client(self.base_url, headers, self.transport) as client:
            result = await request_json(client, "POST", "/scrape", "Firecrawl", json=payload)

        if not isinstance(result, dict) or result.get("success") is False:
            error = result.get("error") if isinstance(result, dict) else None
            raise ProviderError(error or "Firecrawl scrape failed", payload=result)

        data = result.get("data") or {}
        markdown = data.get("markdown") or ""
        if not markdown.strip():
            raise ProviderError(f"Firecrawl returned no content for {url}", payload=result)

        metadata = data.get("metadata") or {}
        logger.info(f"[Firecrawl] Scraped {len(markdown)} chars from {url}")
        return {
            "url": metadata.get("sourceURL") or url,
            "title": metadata.get("title") or "",
            "markdown": markdown,
        }
