import logging
from typing import Any, Dict, Literal, Optional

import httpx

logger = logging.getLogger(__name__)


class APIFetcher:
    """
    One-shot HTTP caller for third-party APIs.

    Sends a single request with bearer auth and a JSON body; there are no
    retries. Transport failures are logged and reported as ``None``.
    """

    def __init__(
        self,
        method: Literal["GET", "POST"],
        base_url: str,
        body: Optional[Dict[str, Any]] = None,
        api_secret: Optional[str] = None,
        other_headers: Optional[Dict[str, str]] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.method = method
        self.base_url = base_url
        self.body = body
        self.api_secret = api_secret
        self.other_headers = other_headers or {}
        self.timeout = timeout
        self.transport = transport

    def headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_secret}",
            "Content-Type": "application/json",
            **self.other_headers,
        }

    async def api_call(
        self, endpoint: str = "", headers: Optional[Dict[str, str]] = None
    ) -> Optional[httpx.Response]:
        url = self.base_url + endpoint

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self.transport
            ) as client:
                response = await client.request(
                    self.method,
                    url,
                    headers=headers if headers is not None else self.headers(),
                    json=self.body,
                )
        except httpx.HTTPError as error:
            logger.error(f"api error: {error}")
            return None

        logger.info(f"api response: {response.status_code} {url}")
        return response
