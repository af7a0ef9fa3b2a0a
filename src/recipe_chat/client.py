"""HTTP client for ``POST /api/chat``."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

CHAT_PATH = "/api/chat"
UA = "RecipeChatClient/0.1"


class HttpChatGateway:
    """Sends the running conversation to the chat server.

    The decoded body is returned for every status code since error
    envelopes come back as 400/500. Network failures surface as
    :class:`httpx.HTTPError` and undecodable bodies as :class:`ValueError`.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 120.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._client = httpx.Client(
            base_url=base_url,
            timeout=httpx.Timeout(timeout, connect=5.0),
            headers={"User-Agent": UA},
            transport=transport,
        )

    def send(self, messages: List[Dict[str, str]]) -> Any:
        resp = self._client.post(CHAT_PATH, json={"messages": messages})
        logger.debug("POST %s -> %s", CHAT_PATH, resp.status_code)
        return resp.json()

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "HttpChatGateway":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()
