"""
Shared HTTP plumbing for the remote provisioning services.

Maps transport failures and status codes onto the transient/permanent
error split used by the job queue.
"""
import logging
from typing import Any, Dict, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from ..errors import PermanentRemoteError, TransientRemoteError

logger = logging.getLogger("webprov.clients")

M = TypeVar("M", bound=BaseModel)


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict):
            return str(err.get("message") or err.get("code") or err)
        if err:
            return str(err)
        if body.get("message"):
            return str(body["message"])
    return str(body)[:200]


class RemoteService:
    """Thin async JSON client for one remote API"""

    name = "remote"

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        default_params: Optional[Dict[str, str]] = None,
    ):
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
            params=default_params or None,
        )

    async def request(
        self,
        method: str,
        path: str,
        *,
        allow_404: bool = False,
        **kwargs: Any,
    ) -> Optional[Any]:
        """Perform one call; None only when allow_404 and the object is gone"""
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise TransientRemoteError(f"{self.name} {method} {path} timed out") from e
        except httpx.TransportError as e:
            raise TransientRemoteError(f"{self.name} {method} {path} failed: {e}") from e

        status = response.status_code
        if allow_404 and status == 404:
            return None
        if status == 429 or status >= 500:
            logger.warning("%s %s %s returned %s", self.name, method, path, status, extra={"component": self.name})
            raise TransientRemoteError(
                f"{self.name} {method} {path} returned {status}: {_error_detail(response)}",
                status_code=status,
            )
        if status >= 400:
            raise PermanentRemoteError(
                f"{self.name} {method} {path} returned {status}: {_error_detail(response)}",
                status_code=status,
            )

        try:
            return response.json()
        except ValueError as e:
            raise PermanentRemoteError(f"{self.name} {method} {path} returned a non-JSON body") from e

    def parse(self, model: Type[M], payload: Any) -> M:
        """Build a reference model from an API payload, rejecting malformed bodies"""
        if not isinstance(payload, dict):
            raise PermanentRemoteError(f"{self.name} returned an unexpected body for {model.__name__}")
        try:
            return model.from_api(payload)
        except (KeyError, TypeError, ValidationError) as e:
            raise PermanentRemoteError(f"{self.name} returned a malformed {model.__name__}: {e}") from e

    async def aclose(self) -> None:
        await self._client.aclose()
