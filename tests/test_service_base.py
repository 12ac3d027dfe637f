"""Tests for the service result type and the service_method decorator."""

import pytest

from learnsync.services.base import (
    BaseService,
    InvariantViolationError,
    NotFoundError,
    ServiceError,
    ServiceResult,
    service_method,
)


class EchoService(BaseService):
    """Minimal service used to drive the decorator."""

    @service_method
    def echo(self, value):
        if value is None:
            raise NotFoundError("Value", value)
        if value == "boom":
            raise RuntimeError("boom")
        return ServiceResult.success_result(value)

    @service_method
    def walk(self, value):
        raise InvariantViolationError("Cycle detected", [1, 2])


@pytest.fixture
def echo_service():
    service = EchoService()
    service.initialize({"answer": 42})
    return service


class TestServiceResult:
    """Tests for ServiceResult helpers."""

    def test_unwrap_success(self):
        assert ServiceResult.success_result(5).unwrap() == 5

    def test_unwrap_failure_raises_error(self):
        error = NotFoundError("Group", 7)

        with pytest.raises(NotFoundError):
            ServiceResult.error_result(error).unwrap()

    def test_from_exception_keeps_service_errors(self):
        error = NotFoundError("Group", 7)
        assert ServiceResult.from_exception(error).error is error

    def test_from_exception_wraps_other_errors(self):
        result = ServiceResult.from_exception(KeyError("x"))

        assert not result.success
        assert result.error.error_code == "INTERNAL_ERROR"


class TestServiceMethod:
    """Tests for the service_method decorator."""

    def test_success(self, echo_service):
        assert echo_service.echo("hi").data == "hi"

    def test_service_error_becomes_result(self, echo_service):
        result = echo_service.echo(None)

        assert not result.success
        assert result.error.error_code == "NOT_FOUND"

    def test_unexpected_error_becomes_internal_error(self, echo_service):
        result = echo_service.echo("boom")

        assert result.error.error_code == "INTERNAL_ERROR"
        assert "boom" in result.error.message

    def test_uninitialized_service_is_rejected(self):
        result = EchoService().echo("hi")
        assert result.error.error_code == "SERVICE_NOT_INITIALIZED"

    def test_invariant_violation_keeps_group_ids(self, echo_service):
        result = echo_service.walk("cycle")

        assert result.error.error_code == "INVARIANT_VIOLATION"
        assert result.error.group_ids == [1, 2]

    def test_get_config(self, echo_service):
        assert echo_service.get_config("answer") == 42
        assert echo_service.get_config("missing", "default") == "default"

    def test_error_is_exception(self):
        assert isinstance(NotFoundError("Group", 1), ServiceError)
