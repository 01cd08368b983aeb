"""
Faults System (faults/core.py, faults/domains.py)

Tests Fault, FaultKind, Severity, response_status, FaultContext and the
concrete fault taxonomy.
"""

import pytest

from errorpipe.faults.classifier import FaultClassifier
from errorpipe.faults.core import (
    Empty,
    ErrorResult,
    Fault,
    FaultContext,
    FaultKind,
    Severity,
    declared_status,
    kind_of,
    response_status,
    type_distance,
)
from errorpipe.faults.domains import (
    BadRequestFault,
    ClientFault,
    ConfigFault,
    DomainFault,
    InternalFault,
    InvalidInputFault,
    NotFoundFault,
    RegistryFrozenFault,
    ServerFault,
    UnauthorizedFault,
    UnhandledPropagation,
    UserFault,
)

from tests.conftest import make_request


# ============================================================================
# Enums
# ============================================================================

class TestEnums:

    def test_severity_values(self):
        assert Severity.INFO == "info"
        assert Severity.WARN == "warn"
        assert Severity.ERROR == "error"
        assert Severity.FATAL == "fatal"

    def test_kinds(self):
        assert {k.name for k in FaultKind} == {
            "INVALID_INPUT", "NOT_FOUND", "UNAUTHORIZED", "INTERNAL", "DOMAIN_SPECIFIC",
        }


# ============================================================================
# Fault
# ============================================================================

class TestFault:

    def test_basic_fault(self):
        f = Fault(FaultKind.NOT_FOUND, code="MEMBER_NOT_FOUND", message="member 42 not found")
        assert f.kind is FaultKind.NOT_FOUND
        assert f.code == "MEMBER_NOT_FOUND"
        assert f.message == "member 42 not found"
        assert f.severity == Severity.ERROR
        assert str(f) == "[MEMBER_NOT_FOUND] member 42 not found"

    def test_defaults_from_class(self):
        f = Fault()
        assert f.kind is FaultKind.INTERNAL
        assert f.code == "INTERNAL"
        assert f.message is None
        assert str(f) == "[INTERNAL]"

    def test_is_exception(self):
        with pytest.raises(Fault):
            raise Fault(code="X")

    def test_immutable_fields(self):
        f = UserFault("user failed")
        for name in ("kind", "code", "message", "metadata", "severity"):
            with pytest.raises(AttributeError):
                setattr(f, name, "changed")
        with pytest.raises(AttributeError):
            del f.code
        assert f.code == "USER-EX"

    def test_metadata_read_only(self):
        f = Fault(code="X", metadata={"id": 1})
        assert f.metadata["id"] == 1
        with pytest.raises(TypeError):
            f.metadata["id"] = 2

    def test_cause_chain(self):
        try:
            try:
                try:
                    raise KeyError("root")
                except KeyError as e:
                    raise ValueError("middle") from e
            except ValueError as e:
                raise InternalFault("top") from e
        except InternalFault as fault:
            chain = list(fault.cause_chain())
            assert [type(e) for e in chain] == [ValueError, KeyError]
            assert fault.cause is chain[0]

    def test_to_dict(self):
        d = NotFoundFault("gone", metadata={"id": 7}).to_dict()
        assert d == {
            "kind": "not_found",
            "code": "NOT_FOUND",
            "message": "gone",
            "severity": "warn",
            "metadata": {"id": 7},
        }


# ============================================================================
# Kind inference
# ============================================================================

class TestKindOf:

    @pytest.mark.parametrize("exc, kind", [
        (InvalidInputFault("x"), FaultKind.INVALID_INPUT),
        (UserFault("x"), FaultKind.DOMAIN_SPECIFIC),
        (ValueError("x"), FaultKind.INVALID_INPUT),
        (TypeError("x"), FaultKind.INVALID_INPUT),
        (KeyError("x"), FaultKind.NOT_FOUND),
        (PermissionError("x"), FaultKind.UNAUTHORIZED),
        (RuntimeError("x"), FaultKind.INTERNAL),
    ])
    def test_kind_of(self, exc, kind):
        assert kind_of(exc) is kind

    def test_type_distance(self):
        assert type_distance(InvalidInputFault, InvalidInputFault) == 0
        assert type_distance(InvalidInputFault, ClientFault) == 1
        assert type_distance(InvalidInputFault, ValueError) is not None
        assert type_distance(InvalidInputFault, KeyError) is None


# ============================================================================
# Status annotation
# ============================================================================

class TestResponseStatus:

    def test_annotation_on_class_only(self):
        @response_status(409, code="CONFLICT")
        class ConflictFault(ClientFault):
            pass

        class SubConflict(ConflictFault):
            pass

        assert declared_status(ConflictFault).status == 409
        assert declared_status(ConflictFault).code == "CONFLICT"
        assert declared_status(SubConflict) is None

    def test_invalid_status(self):
        with pytest.raises(ValueError):
            response_status(99)

    def test_non_exception(self):
        with pytest.raises(TypeError):
            @response_status(400)
            class NotAnError:
                pass

    def test_builtin_annotations(self):
        assert declared_status(InvalidInputFault).status == 400
        assert declared_status(BadRequestFault).reason == "error.bad"
        assert declared_status(NotFoundFault).status == 404
        assert declared_status(UnauthorizedFault).status == 401
        assert declared_status(InternalFault).status == 500
        assert declared_status(DomainFault) is None


# ============================================================================
# Taxonomy
# ============================================================================

class TestTaxonomy:

    def test_client_faults_are_builtin_errors(self):
        assert isinstance(InvalidInputFault("x"), ValueError)
        assert isinstance(NotFoundFault("x"), LookupError)
        assert isinstance(UnauthorizedFault("x"), PermissionError)

    def test_severity_by_side(self):
        assert InvalidInputFault("x").severity == Severity.WARN
        assert InternalFault("x").severity == Severity.ERROR
        assert issubclass(InternalFault, ServerFault)

    def test_domain_fault_code(self):
        f = DomainFault("PAYMENT-DECLINED", "card declined")
        assert f.code == "PAYMENT-DECLINED"
        assert f.kind is FaultKind.DOMAIN_SPECIFIC
        assert UserFault("boom").code == "USER-EX"

    def test_unhandled_propagation(self):
        original = RuntimeError("x")
        f = UnhandledPropagation(original, "error page failed")
        assert f.severity == Severity.FATAL
        assert f.metadata["original_type"] == "RuntimeError"
        assert f.__cause__ is original

    def test_unhandled_propagation_without_original(self):
        f = UnhandledPropagation(None, "replay requested a replay")
        assert f.message == "replay requested a replay"

    def test_config_faults(self):
        f = RegistryFrozenFault("ResolverChain")
        assert isinstance(f, ConfigFault)
        assert f.code == "REGISTRY_FROZEN"
        assert f.metadata["registry"] == "ResolverChain"


# ============================================================================
# FaultContext & outcomes
# ============================================================================

class TestFaultContext:

    def test_capture(self):
        exc = UserFault("user failed")
        request = make_request("/api/members/user", controller="members")
        ctx = FaultContext.capture(exc, request, FaultClassifier().classify(exc))

        assert ctx.exception is exc
        assert ctx.controller == "members"
        assert len(ctx.trace_id) == 16
        assert ctx.kind is FaultKind.DOMAIN_SPECIFIC
        assert ctx.code == "USER-EX"
        assert ctx.to_dict()["path"] == "/api/members/user"

    def test_severity_of_plain_exception(self):
        exc = RuntimeError("x")
        ctx = FaultContext.capture(exc, make_request(), FaultClassifier().classify(exc))
        assert ctx.severity == Severity.ERROR


class TestOutcomes:

    def test_empty_is_error(self):
        assert not Empty().is_error
        assert not Empty(204).is_error
        assert Empty(400).is_error

    def test_error_result_dict(self):
        assert ErrorResult("BAD", "bad id").to_dict() == {"code": "BAD", "message": "bad id"}
        assert ErrorResult("BAD", "bad id").to_dict(400) == {
            "status": 400, "code": "BAD", "message": "bad id",
        }
