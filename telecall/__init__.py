"""
telecall - call server functions from client code as plain async calls.

Every handler is a public endpoint. Its arguments are checked by shield()
before it runs, and Abort rejections are kept apart from bug reports.
"""

__version__ = "0.1.0"


__all__ = [
    "Abort",
    "BugReporter",
    "CallRegistry",
    "Dispatcher",
    "FailureDetail",
    "HttpRequest",
    "HttpResponse",
    "RequestEnvelope",
    "ResponseEnvelope",
    "ServerConfig",
    "TelecallClient",
    "TelecallServer",
    "get_context",
    "load_config",
    "on_bug",
    "shield",
]

from .abort import Abort
from .bugs import BugReporter, FailureDetail, on_bug
from .client import TelecallClient
from .config import ServerConfig, load_config
from .context import get_context
from .dispatch import Dispatcher
from .envelope import RequestEnvelope, ResponseEnvelope
from .registry import CallRegistry
from .server import HttpRequest, HttpResponse, TelecallServer
from .shield import shield
