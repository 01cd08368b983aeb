"""
Response composition - turns a resolution outcome into what the transport
layer receives.

- Respond: serialized directly (JSON for structured bodies)
- Empty: empty response, or an error-page replay when it carries an error
  status (routed by status unless the fault propagated)
- Render: error-page replay for the outcome's status
- Unresolved: error-page replay for the classified status
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Optional, Union

from .error_pages import ErrorPageRegistry
from .faults.classifier import FaultClassifier
from .faults.core import (
    Empty,
    ErrorResult,
    Render,
    ResolutionOutcome,
    Respond,
    Unresolved,
)
from .request import (
    ERROR_CODE,
    ERROR_EXCEPTION,
    ERROR_EXCEPTION_TYPE,
    ERROR_MESSAGE,
    ERROR_MODEL,
    ERROR_REQUEST_URI,
    ERROR_STATUS,
    ERROR_VIEW,
    RequestRecord,
    accepts_json,
)
from .response import Redispatch, TransportResponse

logger = logging.getLogger("errorpipe.composer")

Composed = Union[TransportResponse, Redispatch]


class ResponseComposer:
    """
    Composes transport responses from resolution outcomes.

    Args:
        routes: Error route table used for replays
        classifier: Classifier for codes/messages of replayed faults
        api_path_prefixes: Paths that always get JSON
    """

    def __init__(
        self,
        routes: ErrorPageRegistry,
        classifier: FaultClassifier,
        *,
        api_path_prefixes: Iterable[str] = (),
    ):
        self.routes = routes
        self.classifier = classifier
        self.api_path_prefixes = tuple(api_path_prefixes)

    def wants_json(self, accept: Optional[str], request: Optional[RequestRecord]) -> bool:
        if request is not None:
            return request.wants_json(self.api_path_prefixes)
        return accepts_json(accept)

    def compose(
        self,
        outcome: ResolutionOutcome,
        accept: Optional[str] = None,
        *,
        exc: Optional[BaseException] = None,
        request: Optional[RequestRecord] = None,
    ) -> Composed:
        """
        Compose ``outcome``.

        Args:
            outcome: Outcome of the resolver chain
            accept: Accept header (ignored when ``request`` is given)
            exc: Raised value the outcome belongs to
            request: Request it was raised in

        Returns:
            TransportResponse, or Redispatch to an internal error route
        """
        if isinstance(outcome, Respond):
            return self._respond(outcome, self.wants_json(accept, request))

        if isinstance(outcome, Empty):
            if not outcome.is_error:
                return TransportResponse.empty(outcome.status or 200)
            return self.redispatch(
                outcome.status,
                exc=exc,
                request=request,
                message=outcome.message,
                by_exception=outcome.propagated,
            )

        if isinstance(outcome, Render):
            return self.redispatch(
                outcome.status,
                exc=exc,
                request=request,
                view=outcome.view_id,
                model=outcome.model,
                by_exception=False,
            )

        if isinstance(outcome, Unresolved):
            status = self.classifier.classify(exc).status if exc is not None else 500
            return self.redispatch(status, exc=exc, request=request)

        raise TypeError(f"Not a resolution outcome: {outcome!r}")

    def redispatch(
        self,
        status: int,
        *,
        exc: Optional[BaseException] = None,
        request: Optional[RequestRecord] = None,
        message: Optional[str] = None,
        view: Optional[str] = None,
        model: Optional[Mapping[str, Any]] = None,
        by_exception: bool = True,
    ) -> Redispatch:
        """
        Build the replay instruction for an error with ``status``.

        Exception-type routes are consulted only with ``by_exception``; a
        handled send-error is routed by its status alone.
        """
        route = self.routes.lookup(status, exc if by_exception else None)

        code = None
        if exc is not None:
            classification = self.classifier.classify(exc)
            code = classification.code
            if message is None and classification.status == status:
                message = classification.message
        if status >= 500:
            message = self.classifier.generic_message

        attributes: dict[str, Any] = {
            ERROR_STATUS: status,
            ERROR_CODE: code,
            ERROR_MESSAGE: message,
            ERROR_EXCEPTION: exc,
            ERROR_EXCEPTION_TYPE: type(exc).__name__ if exc is not None else None,
            ERROR_REQUEST_URI: request.path if request is not None else None,
            ERROR_VIEW: view,
            ERROR_MODEL: dict(model or {}),
        }
        logger.debug(f"Replaying {status} to {route.path} (key={route.describe()})")
        return Redispatch(path=route.path, status=status, attributes=attributes)

    @staticmethod
    def _respond(outcome: Respond, json_wanted: bool) -> TransportResponse:
        body = outcome.body
        headers = dict(outcome.headers)
        if isinstance(body, ErrorResult):
            return TransportResponse.json(body.to_dict(outcome.status), outcome.status, headers=headers)
        if body is None:
            return TransportResponse(status_code=outcome.status, headers=headers)
        if isinstance(body, bytes):
            return TransportResponse(status_code=outcome.status, headers=headers, body=body)
        if isinstance(body, str):
            if json_wanted:
                return TransportResponse.text(body, outcome.status, headers=headers)
            return TransportResponse.html(body, outcome.status, headers=headers)
        return TransportResponse.json(body, outcome.status, headers=headers)
