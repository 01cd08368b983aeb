"""
Fault classification (faults/classifier.py)

Tests FaultClassifier: nearest annotated ancestor, declared table,
message sanitizing and freezing.
"""

import pytest

from errorpipe.faults.classifier import (
    DEFAULT_CODE,
    DEFAULT_STATUS,
    GENERIC_MESSAGE,
    FaultClassifier,
    message_of,
)
from errorpipe.faults.core import Fault, FaultKind, response_status
from errorpipe.faults.domains import (
    BadRequestFault,
    ClientFault,
    InternalFault,
    InvalidInputFault,
    NotFoundFault,
    RegistryFrozenFault,
    UserFault,
)


class MemberIdFault(InvalidInputFault):
    """Inherits the 400 annotation."""


@response_status(422, code="UNPROCESSABLE")
class StrictMemberIdFault(MemberIdFault):
    pass


class ThirdPartyError(Exception):
    pass


class TestClassify:

    def test_declared_status(self):
        c = FaultClassifier().classify(InvalidInputFault("bad id"))
        assert (c.status, c.code, c.message) == (400, "BAD", "bad id")
        assert c.annotated
        assert c.is_client_error

    def test_nearest_declared_ancestor(self):
        classifier = FaultClassifier()
        assert classifier.classify(MemberIdFault("x")).status == 400
        assert classifier.classify(StrictMemberIdFault("x")).status == 422

    def test_unrelated_type_is_500(self):
        c = FaultClassifier().classify(RuntimeError("db password=secret"))
        assert c.status == DEFAULT_STATUS
        assert c.code == DEFAULT_CODE
        assert c.message == GENERIC_MESSAGE
        assert not c.annotated
        assert c.is_server_error

    def test_unannotated_domain_fault_keeps_code(self):
        c = FaultClassifier().classify(UserFault("user failed"))
        assert c.status == 500
        assert c.code == "USER-EX"
        assert c.message == GENERIC_MESSAGE

    def test_server_message_sanitized(self):
        c = FaultClassifier(generic_message="내부 오류").classify(InternalFault("stack details"))
        assert c.status == 500
        assert c.message == "내부 오류"

    def test_reason_used_without_message(self):
        c = FaultClassifier().classify(BadRequestFault())
        assert c.status == 400
        assert c.message == "error.bad"
        assert c.reason == "error.bad"

    def test_plain_exception_message(self):
        @response_status(404)
        class MissingThing(LookupError):
            pass

        c = FaultClassifier().classify(MissingThing("thing 3"))
        assert (c.status, c.code, c.message) == (404, "INTERNAL", "thing 3")

    def test_classify_is_pure(self):
        classifier = FaultClassifier()
        exc = NotFoundFault("gone")
        assert classifier.classify(exc) == classifier.classify(exc)


class TestKindStatus:

    @pytest.mark.parametrize("kind, status, code", [
        (FaultKind.INVALID_INPUT, 400, "BAD"),
        (FaultKind.NOT_FOUND, 404, "NOT_FOUND"),
        (FaultKind.UNAUTHORIZED, 401, "UNAUTHORIZED"),
    ])
    def test_client_kinds(self, kind, status, code):
        c = FaultClassifier().classify(Fault(kind, message="member 42"))
        assert (c.status, c.code, c.message) == (status, code, "member 42")
        assert c.annotated

    def test_internal_kind(self):
        c = FaultClassifier().classify(Fault(FaultKind.INTERNAL, message="stack"))
        assert (c.status, c.code, c.message) == (500, "INTERNAL", GENERIC_MESSAGE)

    def test_own_code_kept(self):
        c = FaultClassifier().classify(Fault(FaultKind.NOT_FOUND, code="MEMBER_NOT_FOUND"))
        assert (c.status, c.code) == (404, "MEMBER_NOT_FOUND")

    def test_annotation_wins_over_kind(self):
        @response_status(409, code="CONFLICT")
        class DuplicateMember(ClientFault):
            kind = FaultKind.INVALID_INPUT

        c = FaultClassifier().classify(DuplicateMember(message="dup"))
        assert (c.status, c.code) == (409, "CONFLICT")

    def test_domain_kind_has_no_default(self):
        c = FaultClassifier().classify(Fault(FaultKind.DOMAIN_SPECIFIC, code="PAYMENT"))
        assert (c.status, c.code) == (500, "PAYMENT")
        assert not c.annotated


class TestDeclare:

    def test_declare_third_party_type(self):
        classifier = FaultClassifier()
        classifier.declare(ThirdPartyError, 503, code="UPSTREAM")
        c = classifier.classify(ThirdPartyError("down"))
        assert (c.status, c.code) == (503, "UPSTREAM")

    def test_declared_table_wins_over_decorator(self):
        classifier = FaultClassifier()
        classifier.declare(InvalidInputFault, 409)
        assert classifier.classify(InvalidInputFault("x")).status == 409
        assert classifier.classify(MemberIdFault("x")).status == 409

    def test_declare_after_freeze(self):
        classifier = FaultClassifier()
        classifier.freeze()
        with pytest.raises(RegistryFrozenFault):
            classifier.declare(ThirdPartyError, 400)

    def test_declare_non_exception(self):
        with pytest.raises(TypeError):
            FaultClassifier().declare(int, 400)

    def test_annotation_for_unannotated(self):
        assert FaultClassifier().annotation_for(ClientFault) is None


class TestMessageOf:

    def test_fault_message(self):
        assert message_of(InvalidInputFault("bad id")) == "bad id"

    def test_exception_args(self):
        assert message_of(ValueError("x")) == "x"
        assert message_of(ValueError()) is None
