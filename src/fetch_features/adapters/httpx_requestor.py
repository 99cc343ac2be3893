"""
Requestor backed by httpx.
"""
import asyncio
import json
import logging
from typing import Any, Dict, Optional

import httpx

from ..errors import (
    RequestError,
    create_http_error,
    create_network_error,
    create_timeout_error,
)
from ..types import RequestDescriptor

logger = logging.getLogger(__name__)


def _body_kwargs(data: Any) -> Dict[str, Any]:
    if data is None:
        return {}
    if isinstance(data, (str, bytes, bytearray)):
        return {"content": bytes(data) if isinstance(data, bytearray) else data}
    return {"json": data}


def _decode(response: httpx.Response) -> Any:
    if not response.content:
        return None
    text = response.text
    try:
        return json.loads(text)
    except ValueError:
        return text


class HttpxRequestor:
    """
    Executes one request per call through an ``httpx.AsyncClient``.

    No retry, caching or deduplication happens here; failures are raised as
    ``RequestError``.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        base_url: str = "",
        timeout: float = 30.0,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url, timeout=httpx.Timeout(timeout)
        )
        self._timeout = timeout

    async def request(self, descriptor: RequestDescriptor) -> Any:
        method = descriptor.method
        url = descriptor.url
        if descriptor.signal is not None and descriptor.signal.is_set():
            raise self._aborted(descriptor)

        params = {k: v for k, v in (descriptor.params or {}).items() if v is not None}
        timeout = descriptor.timeout if descriptor.timeout is not None else self._timeout
        logger.debug(f"HttpxRequestor.request: method={method}, url={url}")

        try:
            response = await self._send(descriptor, params, timeout)
            response.raise_for_status()
        except RequestError:
            raise
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise create_http_error(
                status,
                f"HTTP {status}: {e.response.reason_phrase or 'request failed'}",
                url=url,
                method=method,
                original_error=e,
            ) from e
        except httpx.TimeoutException as e:
            raise create_timeout_error(
                f"Request timed out after {timeout}s",
                url=url,
                method=method,
                timeout=timeout,
                original_error=e,
            ) from e
        except httpx.TransportError as e:
            raise create_network_error(
                str(e) or type(e).__name__,
                url=url,
                method=method,
                original_error=e,
            ) from e

        return _decode(response)

    async def _send(
        self, descriptor: RequestDescriptor, params: Dict[str, Any], timeout: float
    ) -> httpx.Response:
        send = asyncio.ensure_future(
            self._client.request(
                descriptor.method,
                descriptor.url,
                headers=dict(descriptor.headers or {}),
                params=params or None,
                timeout=timeout,
                **_body_kwargs(descriptor.data),
            )
        )
        if descriptor.signal is None:
            return await send

        aborted = asyncio.ensure_future(descriptor.signal.wait())
        try:
            done, _ = await asyncio.wait({send, aborted}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            aborted.cancel()
            if not send.done():
                send.cancel()

        if send in done:
            return send.result()
        raise self._aborted(descriptor)

    @staticmethod
    def _aborted(descriptor: RequestDescriptor) -> RequestError:
        return create_network_error(
            "Request aborted",
            url=descriptor.url,
            method=descriptor.method,
            code="ABORTED",
        )

    async def aclose(self) -> None:
        """Close the underlying client if this requestor created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpxRequestor":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()
