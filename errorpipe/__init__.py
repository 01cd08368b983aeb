"""
errorpipe - Error resolution pipeline for request/response services.

Decides, for a fault raised while handling a request, which status and
body or view to produce, and whether the request has to be replayed
through an internal error route.

- Faults: typed fault signals with kind, code and status annotations
- Resolver chain: ordered strategies (declared handlers, status
  annotations, send-error mapping, catch-all)
- Error routes: status / exception type / status class / default
- Dispatch gate: filters by origin, interceptors by path
- Error views: jinja2 templates before static pages
"""

__version__ = "0.1.0"

from .faults import (
    Fault,
    FaultKind,
    Severity,
    response_status,
    Empty,
    Render,
    Respond,
    Unresolved,
    ErrorResult,
    FaultClassifier,
    ResolverChain,
    FaultHandler,
    ControllerAdvice,
    InvalidInputFault,
    BadRequestFault,
    NotFoundFault,
    UnauthorizedFault,
    DomainFault,
    UserFault,
    InternalFault,
    UnhandledPropagation,
    ConfigFault,
    RegistryFrozenFault,
    ViewNotFoundFault,
)
from .config import ConfigLoader, PipelineConfig, load_config
from .request import RequestOrigin, RequestRecord
from .response import Redispatch, TransportResponse
from .error_pages import ErrorPageRegistry, ErrorPageRoute
from .dispatch import DispatchGate, Interceptor
from .middleware import LogFilter, LogInterceptor
from .messages import MessageSource
from .views import ErrorViewResolver
from .composer import ResponseComposer
from .error_controller import ErrorPageController
from .pipeline import ErrorPipeline

__all__ = [
    "__version__",
    # Faults
    "Fault",
    "FaultKind",
    "Severity",
    "response_status",
    "Empty",
    "Render",
    "Respond",
    "Unresolved",
    "ErrorResult",
    "FaultClassifier",
    "ResolverChain",
    "FaultHandler",
    "ControllerAdvice",
    "InvalidInputFault",
    "BadRequestFault",
    "NotFoundFault",
    "UnauthorizedFault",
    "DomainFault",
    "UserFault",
    "InternalFault",
    "UnhandledPropagation",
    "ConfigFault",
    "RegistryFrozenFault",
    "ViewNotFoundFault",
    # Config
    "ConfigLoader",
    "PipelineConfig",
    "load_config",
    # Records
    "RequestOrigin",
    "RequestRecord",
    "Redispatch",
    "TransportResponse",
    # Pipeline parts
    "ErrorPageRegistry",
    "ErrorPageRoute",
    "DispatchGate",
    "Interceptor",
    "LogFilter",
    "LogInterceptor",
    "MessageSource",
    "ErrorViewResolver",
    "ResponseComposer",
    "ErrorPageController",
    "ErrorPipeline",
]
