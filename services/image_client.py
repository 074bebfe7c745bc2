"""
Image generation gateway client for featured images
"""
import base64
import binascii
import logging
from typing import Optional

import httpx

from config import IMAGE_GATEWAY_URL, IMAGE_GATEWAY_MODEL, require_setting
from errors import ProviderError
from services.http_utils import build_client, request_json

logger = logging.getLogger(__name__)


class ImageGatewayClient:
    """
    Calls an OpenAI-compatible chat endpoint with image output enabled and
    returns the decoded PNG bytes.
    """

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None,
                 model: Optional[str] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = api_key or require_setting("IMAGE_GATEWAY_API_KEY")
        self.base_url = base_url or IMAGE_GATEWAY_URL
        self.model = model or IMAGE_GATEWAY_MODEL
        self.transport = transport

    async def generate_image(self, prompt: str) -> bytes:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "modalities": ["image", "text"],
        }

        logger.info(f"[ImageGateway] Requesting image from {self.model}, prompt length: {len(prompt)} chars")
        async with build_client(self.base_url, headers, self.transport) as client:
            result = await request_json(client, "POST", "/chat/completions", "ImageGateway", json=payload)

        image_data = extract_image_payload(result)
        return decode_image_payload(image_data)


def extract_image_payload(result) -> str:
    """
    Find the image in a gateway response.

    Accepts choices[0].message.images[0].image_url.url (data URL) or an
    images-API style data[0].b64_json.
    """
    if not isinstance(result, dict):
        raise ProviderError("Image gateway returned a non-JSON body", payload=result)

    choices = result.get("choices") or []
    if choices:
        images = (choices[0].get("message") or {}).get("images") or []
        if images:
            url = (images[0].get("image_url") or {}).get("url")
            if url:
                return url

    data = result.get("data") or []
    if data and data[0].get("b64_json"):
        return data[0]["b64_json"]

    raise ProviderError("Image gateway response contained no image", payload=result)


def decode_image_payload(image_data: str) -> bytes:
    """
    Decode a base64 payload, with or without a data: URL prefix

    Raises:
        ValueError: payload is not valid base64
    """
    if image_data.startswith("data:"):
        image_data = image_data.split(",", 1)[1] if "," in image_data else ""
    if not image_data:
        raise ValueError("Image payload is empty")
    try:
        return base64.b64decode(image_data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Image payload is not valid base64: {str(e)}") from e
