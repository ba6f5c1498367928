"""
Unit tests for the authorization policy.
"""
import pytest

from keyledger.core.errors import ErrorCategory, Unauthorized
from keyledger.services.authorization import (
    PERMISSIONS,
    Operation,
    Role,
    authorize,
    require,
    resolve_roles,
)

AUTHORITY = "alice"
OWNER = "bob"
STRANGER = "mallory"

OWNER_OR_AUTHORITY = [Operation.REVOKE_KEY, Operation.REACTIVATE_KEY]
AUTHORITY_ONLY = [
    Operation.UPDATE_RATE_LIMIT,
    Operation.UPDATE_SCOPES,
    Operation.EXTEND_EXPIRATION,
    Operation.RECORD_REQUEST,
]


class TestResolveRoles:
    """Test role resolution"""

    def test_authority(self):
        assert resolve_roles(AUTHORITY, AUTHORITY, OWNER) == {Role.AUTHORITY}

    def test_owner(self):
        assert resolve_roles(OWNER, AUTHORITY, OWNER) == {Role.OWNER}

    def test_both(self):
        assert resolve_roles(AUTHORITY, AUTHORITY, AUTHORITY) == {Role.AUTHORITY, Role.OWNER}

    def test_none(self):
        assert resolve_roles(STRANGER, AUTHORITY, OWNER) == frozenset()

    def test_missing_caller(self):
        assert resolve_roles(None, AUTHORITY, OWNER) == frozenset()


class TestAuthorize:
    """Test the permission matrix"""

    def test_every_operation_has_an_entry(self):
        assert set(PERMISSIONS) == set(Operation)

    @pytest.mark.parametrize("operation", OWNER_OR_AUTHORITY)
    def test_owner_or_authority(self, operation):
        assert authorize(operation, OWNER, AUTHORITY, OWNER).permitted
        assert authorize(operation, AUTHORITY, AUTHORITY, OWNER).permitted
        assert not authorize(operation, STRANGER, AUTHORITY, OWNER).permitted

    @pytest.mark.parametrize("operation", AUTHORITY_ONLY)
    def test_authority_only(self, operation):
        assert authorize(operation, AUTHORITY, AUTHORITY, OWNER).permitted
        assert not authorize(operation, OWNER, AUTHORITY, OWNER).permitted
        assert not authorize(operation, STRANGER, AUTHORITY, OWNER).permitted

    def test_initialize_service_for_own_identity(self):
        assert authorize(Operation.INITIALIZE_SERVICE, AUTHORITY, authority=AUTHORITY).permitted
        assert not authorize(Operation.INITIALIZE_SERVICE, STRANGER, authority=AUTHORITY).permitted

    def test_create_key_for_own_identity(self):
        assert authorize(Operation.CREATE_KEY, OWNER, owner=OWNER).permitted
        assert not authorize(Operation.CREATE_KEY, AUTHORITY, owner=OWNER).permitted

    def test_validate_scope_unrestricted(self):
        assert authorize(Operation.VALIDATE_SCOPE, None).permitted
        assert authorize(Operation.VALIDATE_SCOPE, STRANGER).permitted

    def test_decision_carries_roles(self):
        decision = authorize(Operation.REVOKE_KEY, OWNER, AUTHORITY, OWNER)
        assert decision.operation == Operation.REVOKE_KEY
        assert decision.caller == OWNER
        assert decision.roles == {Role.OWNER}


class TestRequire:
    """Test require raising Unauthorized"""

    def test_raises_with_context(self):
        with pytest.raises(Unauthorized) as exc_info:
            require(Operation.RECORD_REQUEST, OWNER, AUTHORITY, OWNER, address="addr-1")

        error = exc_info.value
        assert error.operation == "record_request"
        assert error.address == "addr-1"
        assert error.category == ErrorCategory.PERMISSION

    def test_returns_decision_when_permitted(self):
        decision = require(Operation.RECORD_REQUEST, AUTHORITY, AUTHORITY, OWNER)
        assert decision.permitted is True
