"""
Client side - call remote handlers as local async functions.

    async with TelecallClient("https://api.example.com") as client:
        total = await client.call("math:add", 2, 3)

        todos = client.stub("todos.api")
        await todos.add_todo("buy milk")

Outcome mapping:
- {"return": value}        -> value
- {"abort": payload}       -> raises Abort(payload), same class as server side
- {"error": message}       -> raises RemoteCallError(status, message)
- transport failure, or a
  response that is not a
  telecall envelope        -> raises ConnectionFailure
"""

from typing import Any, Callable, Coroutine

import httpx

from telecall.abort import Abort
from telecall.config import DEFAULT_TELECALL_URL
from telecall.envelope import ResponseEnvelope
from telecall.errors import ConnectionFailure, RemoteCallError
from telecall.registry import make_identifier


class TelecallClient:
    """
    HTTP + JSON client for a telecall endpoint.

    Args:
        base_url: Server origin, e.g. "http://localhost:8000"
        telecall_url: Endpoint path on the server
        transport: Optional httpx transport (tests use httpx.MockTransport)
        timeout: Request timeout in seconds
        headers: Extra headers sent with every call (cookies, auth tokens)
    """

    def __init__(
        self,
        base_url: str,
        telecall_url: str = DEFAULT_TELECALL_URL,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 10.0,
        headers: dict[str, str] | None = None,
    ) -> None:
        self._url = base_url.rstrip("/") + telecall_url
        self._http = httpx.AsyncClient(transport=transport, timeout=timeout, headers=headers)

    @property
    def url(self) -> str:
        return self._url

    async def call(self, path: str, *args: Any) -> Any:
        """
        Call a remote handler.

        Args:
            path: Call identifier
            *args: JSON-compatible positional arguments

        Returns:
            The handler's return value

        Raises:
            Abort: Server declined the call; payload preserved
            RemoteCallError: Server reachable but answered with an error
            ConnectionFailure: Server unreachable or not a telecall endpoint
        """
        try:
            response = await self._http.post(self._url, json={"path": path, "args": list(args)})
        except httpx.TransportError as e:
            raise ConnectionFailure(f"Cannot reach {self._url}: {e}") from e

        try:
            envelope = ResponseEnvelope.from_json(response.content)
        except ValueError as e:
            raise ConnectionFailure(
                f"{self._url} did not answer with a telecall response "
                f"(HTTP {response.status_code})"
            ) from e

        if envelope.is_success:
            return envelope.value
        if envelope.is_rejection:
            raise Abort(envelope.payload)
        raise RemoteCallError(response.status_code, envelope.failure.message)

    def stub(self, module_ref: str) -> "RemoteModule":
        """Attribute-style access to the handlers of one module."""
        return RemoteModule(self, module_ref)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "TelecallClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()


class RemoteModule:
    """Stand-in for a handler module; each attribute is an async remote call."""

    def __init__(self, client: TelecallClient, module_ref: str) -> None:
        self._client = client
        self._module_ref = module_ref

    def __getattr__(self, name: str) -> Callable[..., Coroutine[Any, Any, Any]]:
        if name.startswith("_"):
            raise AttributeError(name)
        identifier = make_identifier(self._module_ref, name)

        async def remote_call(*args: Any) -> Any:
            return await self._client.call(identifier, *args)

        remote_call.__name__ = name
        remote_call.__qualname__ = identifier
        return remote_call

    def __repr__(self) -> str:
        return f"RemoteModule({self._module_ref!r})"
