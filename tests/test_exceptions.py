"""Tests for ltc.common.exceptions module."""

import pytest

from ltc.common.exceptions import (
    AlreadyExistsError,
    AppNotFoundError,
    InvalidUserInputError,
    LatticeError,
    MalformedImageReferenceError,
    MalformedRouteError,
    NotFoundError,
    RemoteRejectedError,
    ReservedNameError,
    TaskNotFoundError,
)


class TestLatticeError:
    """Tests for LatticeError base exception."""

    def test_init_with_message_only(self):
        """Test exception initialization with only message."""
        exc = LatticeError("Test error")
        assert exc.message == "Test error"
        assert exc.details == {}
        assert str(exc) == "Test error"

    def test_init_with_message_and_details(self):
        """Test exception initialization with message and details."""
        details = {"process_guid": "myapp", "status": 500}
        exc = LatticeError("Test error", details=details)
        assert exc.details == details
        assert str(exc) == "Test error"

    def test_repr(self):
        """Test exception repr."""
        exc = AlreadyExistsError("App myapp, is already running", details={"process_guid": "myapp"})
        assert "AlreadyExistsError" in repr(exc)
        assert "myapp" in repr(exc)


class TestHierarchy:
    """Tests for the grouping of error kinds."""

    @pytest.mark.parametrize("error_class", [AppNotFoundError, TaskNotFoundError])
    def test_not_found(self, error_class):
        """Test that app and task lookups share a base."""
        assert issubclass(error_class, NotFoundError)
        assert issubclass(error_class, LatticeError)

    @pytest.mark.parametrize("error_class", [ReservedNameError, MalformedImageReferenceError, MalformedRouteError])
    def test_user_input(self, error_class):
        """Test that input errors can be caught together."""
        with pytest.raises(InvalidUserInputError):
            raise error_class("bad input")


class TestRemoteRejectedError:
    """Tests for RemoteRejectedError."""

    def test_default_error_type(self):
        """Test the default receptor error name."""
        assert RemoteRejectedError("failed").error_type == "UnknownError"

    def test_error_type_and_details(self):
        """Test that the receptor error name is kept."""
        exc = RemoteRejectedError("no route", error_type="RouterError", details={"status": 404})
        assert exc.error_type == "RouterError"
        assert exc.details == {"status": 404}
        assert str(exc) == "no route"
