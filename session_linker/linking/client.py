"""
Link Function Client

Calls the server-side merge function that moves a guest's temporary profile
and summary onto an authenticated user. Maps HTTP outcomes onto the linker's
error model:

- 2xx with success=true  -> LinkResponse(success=True)
- 400/404/409/422         -> LinkResponse(success=False, permanent=True)
- network errors, timeouts, 401/403/408/425/429, 5xx -> LinkTransientError
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from ..errors import LinkTransientError
from ..models import LinkResponse

logger = logging.getLogger(__name__)

LINK_FUNCTION_PATH = "/functions/link_guest_profile"
LINKED_PROFILE_PATH = "/profiles/{user_id}/linked"

# Statuses worth retrying. 401/403 cover the auth race right after signup,
# when the new token has not propagated to the function yet.
TRANSIENT_STATUS_CODES = {401, 403, 408, 425, 429}
PERMANENT_STATUS_CODES = {400, 404, 409, 422}


class LinkFunction(ABC):
    """Remote merge collaborator used by the reconciler."""

    @abstractmethod
    async def link_guest_profile(self, user_id: str, session_id: str) -> LinkResponse:
        """
        Merge the guest rows for session_id into user_id.

        Raises:
            LinkTransientError: retryable failure
        """
        pass

    @abstractmethod
    async def has_merged_profile(self, user_id: str) -> bool:
        """True if the server holds a non-temporary profile for user_id."""
        pass

    async def close(self) -> None:
        return None


def _error_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    if isinstance(data, dict):
        return str(data.get("error") or data.get("detail") or data)
    return str(data)


def _json_body(response: httpx.Response) -> Dict[str, Any]:
    """Decode a success body; anything but a JSON object is retryable."""
    try:
        data = response.json()
    except ValueError as e:
        raise LinkTransientError("invalid JSON in response", status_code=response.status_code) from e
    if not isinstance(data, dict):
        raise LinkTransientError("unexpected response body", status_code=response.status_code)
    return data


class HttpLinkFunction(LinkFunction):
    """
    httpx client for the merge service.

    Args:
        base_url: Merge service root URL
        service_secret: Bearer secret shared with the merge service
        timeout: Per-request timeout in seconds
        transport: Optional httpx transport (ASGITransport in tests)
    """

    def __init__(
        self,
        base_url: str,
        service_secret: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._service_secret = service_secret
        self._timeout = timeout
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._service_secret:
            headers["Authorization"] = f"Bearer {self._service_secret}"
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self._timeout,
            headers=self._headers(),
            transport=self._transport,
        )

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            async with self._client() as http_client:
                return await http_client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning(f"Link service request timed out: {method} {path}")
            raise LinkTransientError("request timed out") from e
        except httpx.RequestError as e:
            logger.warning(f"Link service connection failed: {str(e)}")
            raise LinkTransientError(f"connection failed: {e}") from e

    async def link_guest_profile(self, user_id: str, session_id: str) -> LinkResponse:
        response = await self._request(
            "POST",
            LINK_FUNCTION_PATH,
            json={"userId": user_id, "sessionId": session_id},
        )
        status = response.status_code

        if 200 <= status < 300:
            data = _json_body(response)
            if not data.get("success"):
                raise LinkTransientError(_error_detail(response), status_code=status)
            result = data.get("result")
            if not isinstance(result, dict):
                result = {}
            return LinkResponse(
                success=True,
                action=result.get("action"),
                message=data.get("message"),
            )

        detail = _error_detail(response)

        if status in PERMANENT_STATUS_CODES:
            logger.warning(f"Link rejected for session {session_id[:8]}: HTTP {status} {detail}")
            return LinkResponse(success=False, message=detail, permanent=True)

        if status in TRANSIENT_STATUS_CODES or status >= 500:
            raise LinkTransientError(detail, status_code=status)

        logger.error(f"Unexpected link service status {status}: {detail}")
        return LinkResponse(success=False, message=detail, permanent=True)

    async def has_merged_profile(self, user_id: str) -> bool:
        response = await self._request("GET", LINKED_PROFILE_PATH.format(user_id=user_id))
        if response.status_code == 404:
            return False
        if response.status_code != 200:
            raise LinkTransientError(_error_detail(response), status_code=response.status_code)
        return bool(_json_body(response).get("exists"))
