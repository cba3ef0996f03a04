"""Transports that carry signer requests.

Any transport satisfies the same contract: one request, one JSON object
back, or a typed SignerError. Transports do not retry; that is the
gateway's job.
"""

import asyncio
import inspect
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional, Union

import httpx

from claimlink.errors import MalformedSignerResponse, SignerRejected, SignerUnreachable
from claimlink.gateway.base import SignerOperation

logger = logging.getLogger(__name__)

SignerHandler = Callable[[dict], Union[dict, Awaitable[dict]]]


def check_response_body(body: Any, operation: SignerOperation) -> dict:
    """Validate the response envelope shared by all transports.

    Raises:
        MalformedSignerResponse: If the body is not a JSON object
        SignerRejected: If the body carries an error indication
    """
    if not isinstance(body, dict):
        raise MalformedSignerResponse(
            f"Expected JSON object from {operation.value}, got {type(body).__name__}",
            operation.value,
        )
    if body.get("success") is False or body.get("error"):
        reason = body.get("error") or body.get("message") or "unknown error"
        raise SignerRejected(str(reason), operation.value)
    return body


class SignerTransport(ABC):
    """Delivers one signer request and returns the decoded response."""

    @abstractmethod
    async def call(self, operation: SignerOperation, payload: dict) -> dict:
        """Send operation with payload.

        Returns:
            Decoded JSON object

        Raises:
            SignerUnreachable, SignerRejected, MalformedSignerResponse
        """
        pass


class HttpSignerTransport(SignerTransport):
    """Signer reachable over HTTP.

    The request body is the payload with a ``command`` selector field.
    """

    def __init__(
        self,
        url: str,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout
        self._client = client

    def _get_headers(self) -> dict:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _post(self, client: httpx.AsyncClient, body: dict) -> httpx.Response:
        return await client.post(self.url, json=body, headers=self._get_headers())

    async def call(self, operation: SignerOperation, payload: dict) -> dict:
        body = {"command": operation.value, **payload}

        try:
            if self._client is not None:
                response = await self._post(self._client, body)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await self._post(client, body)
        except httpx.TransportError as e:
            logger.warning(f"Signer {operation.value} transport error: {type(e).__name__}: {e}")
            raise SignerUnreachable(f"Signer unreachable: {e}", operation.value) from e

        if response.status_code >= 500:
            logger.warning(f"Signer {operation.value} returned {response.status_code}")
            raise SignerUnreachable(
                f"Signer returned HTTP {response.status_code}", operation.value
            )

        try:
            data = response.json()
        except ValueError as e:
            if response.status_code >= 400:
                raise SignerRejected(
                    f"HTTP {response.status_code}: {response.text[:200]}", operation.value
                ) from e
            raise MalformedSignerResponse(
                f"Signer {operation.value} returned non-JSON body", operation.value
            ) from e

        if response.status_code >= 400:
            reason = data.get("error") if isinstance(data, dict) else None
            raise SignerRejected(reason or f"HTTP {response.status_code}", operation.value)

        return check_response_body(data, operation)


class SubprocessSignerTransport(SignerTransport):
    """Signer run as a local program, one process per request.

    Two selector styles are supported:
    - ``positional``: ``argv + [operation, json]``
    - ``field``: ``argv + [json]`` with a ``command`` field in the JSON

    The program writes a JSON object to stdout and exits 0, or exits
    non-zero with the reason on stderr.
    """

    SELECTORS = ("positional", "field")

    def __init__(self, argv: list[str], selector: str = "positional", timeout: float = 60.0):
        if not argv:
            raise ValueError("Signer command is empty")
        if selector not in self.SELECTORS:
            raise ValueError(f"Unknown selector style: {selector}")
        self.argv = list(argv)
        self.selector = selector
        self.timeout = timeout

    def _build_args(self, operation: SignerOperation, payload: dict) -> list[str]:
        if self.selector == "positional":
            return self.argv + [operation.value, json.dumps(payload)]
        return self.argv + [json.dumps({"command": operation.value, **payload})]

    async def call(self, operation: SignerOperation, payload: dict) -> dict:
        args = self._build_args(operation, payload)

        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error(f"Cannot start signer {self.argv[0]}: {e}")
            raise SignerUnreachable(f"Cannot start signer: {e}", operation.value) from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise SignerUnreachable(
                f"Signer {operation.value} timed out after {self.timeout}s", operation.value
            )

        if process.returncode != 0:
            reason = stderr.decode(errors="replace").strip() or f"exit code {process.returncode}"
            raise SignerRejected(reason, operation.value)

        if stderr:
            logger.warning(f"Signer {operation.value} stderr: {stderr.decode(errors='replace').strip()}")

        try:
            data = json.loads(stdout)
        except ValueError as e:
            raise MalformedSignerResponse(
                f"Signer {operation.value} wrote non-JSON output", operation.value
            ) from e

        return check_response_body(data, operation)


class InProcessSignerTransport(SignerTransport):
    """Signer implemented by Python callables in this process.

    Handlers receive the payload and return a dict (or an awaitable of
    one). SignerError subclasses raised by a handler pass through.
    """

    def __init__(self, handlers: dict[SignerOperation, SignerHandler]):
        self.handlers = dict(handlers)

    async def call(self, operation: SignerOperation, payload: dict) -> dict:
        handler = self.handlers.get(operation)
        if handler is None:
            raise SignerRejected(f"Unsupported operation: {operation.value}", operation.value)

        result = handler(payload)
        if inspect.isawaitable(result):
            result = await result
        return check_response_body(result, operation)
