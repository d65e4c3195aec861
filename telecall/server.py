"""
Host-agnostic HTTP adapter.

Bind telecall to any web framework by translating the framework's request
into an HttpRequest and writing back the HttpResponse:

    server = TelecallServer(
        config=load_config(),
        context_provider=lambda req: {"user": session_user(req.headers)},
    )

    async def endpoint(framework_request):
        response = await server.handle_http(HttpRequest(
            url=str(framework_request.url),
            method=framework_request.method,
            body=await framework_request.body(),
            headers=dict(framework_request.headers),
            is_disconnected=framework_request.is_disconnected,
        ))
        if response is None:
            return  # client went away; nothing to write
        ...

The adapter owns only transport concerns (endpoint URL, method, ETag,
disconnects). Everything about the call itself is the Dispatcher's job.
"""

import base64
import hashlib
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping
from urllib.parse import urlsplit

from telecall.bugs import BugReporter
from telecall.config import ServerConfig
from telecall.dispatch import Dispatcher
from telecall.envelope import FailureKind, ResponseEnvelope
from telecall.errors import TelecallError
from telecall.registry import CallRegistry

logger = logging.getLogger(__name__)


@dataclass
class HttpRequest:
    """
    Transport request as seen by telecall.

    Attributes:
        url: Request URL or path (query string ignored)
        method: HTTP method
        body: Raw body (str or bytes) or an already-parsed mapping
        headers: Request headers
        is_disconnected: Optional async callable, True once the client is gone
    """
    url: str
    method: str
    body: Any
    headers: Mapping[str, str] = field(default_factory=dict)
    is_disconnected: Callable[[], Awaitable[bool]] | None = None


@dataclass(frozen=True)
class HttpResponse:
    """Response for the host to write back."""
    status_code: int
    body: str
    content_type: str = "application/json"
    etag: str | None = None

    @property
    def headers(self) -> dict[str, str]:
        headers = {"Content-Type": self.content_type}
        if self.etag is not None:
            headers["ETag"] = self.etag
        return headers


ContextProvider = Callable[[HttpRequest], Mapping[str, Any] | Awaitable[Mapping[str, Any]]]


def compute_etag(body: str) -> str:
    """Strong ETag: body length (hex) and truncated base64 SHA-1 of the body."""
    data = body.encode("utf-8")
    digest = base64.b64encode(hashlib.sha1(data).digest()).decode("ascii")[:27]
    return f'"{len(data):x}-{digest}"'


class TelecallServer:
    """
    HTTP front of a Dispatcher.

    Args:
        registry: Call registry. Built from config.handler_modules if omitted.
        config: Server configuration (default: ServerConfig())
        context_provider: Called once per request with the HttpRequest;
            returns (or resolves to) the context mapping for the handler
        bug_reporter: Sink for unexpected failures (default: process-wide)
    """

    def __init__(
        self,
        registry: CallRegistry | None = None,
        config: ServerConfig | None = None,
        context_provider: ContextProvider | None = None,
        bug_reporter: BugReporter | None = None,
    ):
        self.config = config if config is not None else ServerConfig()
        if registry is None:
            registry = CallRegistry.from_modules(self.config.handler_modules)
        self.registry = registry
        self.dispatcher = Dispatcher(registry, bug_reporter=bug_reporter)
        self.context_provider = context_provider

    async def handle_http(self, request: HttpRequest) -> HttpResponse | None:
        """
        Handle one HTTP request.

        Returns:
            HttpResponse to write, or None if the client disconnected while
            the call was running (the handler still ran to completion)
        """
        path = urlsplit(request.url).path
        if path != self.config.telecall_url:
            logger.info("Request for %s does not match %s", path, self.config.telecall_url)
            return self._render(ResponseEnvelope.failure_of(FailureKind.UNKNOWN_CALL))

        if request.method.upper() != "POST":
            logger.info("Rejected %s request, only POST is accepted", request.method)
            return self._render(ResponseEnvelope.failure_of(FailureKind.MALFORMED_REQUEST))

        try:
            context = await self._provide_context(request)
        except Exception as error:
            envelope = self.dispatcher.report_failure(error)
        else:
            metadata = {"url": request.url, "method": request.method, "headers": dict(request.headers)}
            envelope = await self.dispatcher.handle(request.body, context, metadata=metadata)

        if await self._client_gone(request):
            logger.info("Client disconnected before the response was ready; dropping it")
            return None

        return self._render(envelope)

    async def _client_gone(self, request: HttpRequest) -> bool:
        if request.is_disconnected is None:
            return False
        try:
            return bool(await request.is_disconnected())
        except Exception:
            logger.warning("is_disconnected() failed; treating client as connected", exc_info=True)
            return False

    async def _provide_context(self, request: HttpRequest) -> Mapping[str, Any] | None:
        if self.context_provider is None:
            return None
        context = self.context_provider(request)
        if inspect.isawaitable(context):
            context = await context
        return context

    def _render(self, envelope: ResponseEnvelope) -> HttpResponse:
        body = envelope.to_json()
        etag = None if self.config.disable_etag else compute_etag(body)
        return HttpResponse(status_code=envelope.status_code, body=body, etag=etag)

    def reload(self) -> list[str]:
        """
        Development mode: re-import handler modules and swap in a new registry.

        Returns:
            Sorted identifiers of the new registry

        Raises:
            TelecallError: In production mode
        """
        if self.config.is_production:
            raise TelecallError("reload() is disabled in production mode")
        return self.registry.rebuild(self.config.handler_modules, reload=True)
