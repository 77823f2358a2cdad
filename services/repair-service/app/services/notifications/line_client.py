import logging
from typing import Any, Dict, List, Optional
import httpx

logger = logging.getLogger(__name__)

# LINE rejects multicast requests with more than 500 recipients.
MULTICAST_LIMIT = 500


class LineApiError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class LineMessagingClient:
    """
    Thin synchronous client for the LINE Messaging API push and multicast endpoints.
    """

    def __init__(
        self,
        access_token: str,
        base_url: str = "https://api.line.me/v2/bot",
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self._client = httpx.Client(
            base_url=base_url,
            timeout=timeout,
            headers={"Authorization": f"Bearer {access_token}"},
            transport=transport,
        )

    def close(self):
        self._client.close()

    def push_message(self, to: str, messages: List[Dict[str, Any]]) -> None:
        self._post("/message/push", {"to": to, "messages": messages})

    def multicast(self, to: List[str], messages: List[Dict[str, Any]]) -> None:
        for start in range(0, len(to), MULTICAST_LIMIT):
            self._post("/message/multicast", {"to": to[start:start + MULTICAST_LIMIT], "messages": messages})

    def _post(self, path: str, body: Dict[str, Any]) -> None:
        try:
            response = self._client.post(path, json=body)
        except httpx.HTTPError as exc:
            raise LineApiError(f"LINE API request to {path} failed: {exc}") from exc

        if response.is_error:
            logger.warning("LINE API %s returned %s: %s", path, response.status_code, response.text)
            raise LineApiError(
                f"LINE API {path} returned {response.status_code}: {response.text}",
                status_code=response.status_code,
            )
