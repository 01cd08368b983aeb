"""
errorpipe faults - Fault model and resolution.

A raised value is classified (status, code, message), wrapped in a
FaultContext and offered to an ordered chain of strategies. Each strategy
either resolves it (Empty / Render / Respond) or defers (Unresolved).

Core exports:
- Fault: Base fault class (immutable once raised)
- FaultKind: Kind enumeration
- response_status: Status annotation decorator
- FaultClassifier: Raised value -> (status, code, message)
- ResolverChain: Ordered strategy chain
- FaultHandler: Abstract strategy base
"""

from .core import (
    Fault,
    FaultContext,
    FaultKind,
    Severity,
    StatusAnnotation,
    response_status,
    declared_status,
    kind_of,
    type_distance,
    Empty,
    Render,
    Respond,
    Unresolved,
    ResolutionOutcome,
    ErrorResult,
)

from .classifier import Classification, FaultClassifier, message_of

from .engine import ResolverChain, DEFAULT_PRIORITY

from .handlers import (
    FaultHandler,
    ResolverEntry,
    DeclaredHandler,
    HandlerSet,
    ControllerAdvice,
    ScopedHandlerRegistry,
)

from .default_handlers import (
    ExceptionHandlerStrategy,
    ResponseStatusStrategy,
    SendErrorStrategy,
    CatchAllStrategy,
)

from .domains import (
    ClientFault,
    ServerFault,
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

__all__ = [
    # Core types
    "Fault",
    "FaultContext",
    "FaultKind",
    "Severity",
    "StatusAnnotation",
    "response_status",
    "declared_status",
    "kind_of",
    "type_distance",
    # Outcomes
    "Empty",
    "Render",
    "Respond",
    "Unresolved",
    "ResolutionOutcome",
    "ErrorResult",
    # Classification
    "Classification",
    "FaultClassifier",
    "message_of",
    # Chain
    "ResolverChain",
    "DEFAULT_PRIORITY",
    "FaultHandler",
    "ResolverEntry",
    "DeclaredHandler",
    "HandlerSet",
    "ControllerAdvice",
    "ScopedHandlerRegistry",
    # Strategies
    "ExceptionHandlerStrategy",
    "ResponseStatusStrategy",
    "SendErrorStrategy",
    "CatchAllStrategy",
    # Taxonomy
    "ClientFault",
    "ServerFault",
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
]
