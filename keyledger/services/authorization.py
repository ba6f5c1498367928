"""
Authorization policy for ledger operations.

The whole permission matrix lives in ``PERMISSIONS``: for each operation,
the roles a caller must hold on the target record. A caller's roles are
resolved purely from identities: ``authority`` when the caller is the
service authority, ``owner`` when the caller is the key's owner (both when
one identity is both).

    operation                          permitted roles
    ---------------------------------  -------------------------
    initialize service                 authority (own identity)
    create key                         owner (own identity)
    revoke / reactivate key            owner OR authority
    update rate limit/scopes/expiry    authority
    record request                     authority
    validate scope                     unrestricted
"""
import logging
from enum import Enum
from typing import Dict, FrozenSet, NamedTuple, Optional

from keyledger.core.errors import Unauthorized

logger = logging.getLogger(__name__)


class Operation(str, Enum):
    INITIALIZE_SERVICE = "initialize_service"
    CREATE_KEY = "create_key"
    REVOKE_KEY = "revoke_key"
    REACTIVATE_KEY = "reactivate_key"
    UPDATE_RATE_LIMIT = "update_rate_limit"
    UPDATE_SCOPES = "update_scopes"
    EXTEND_EXPIRATION = "extend_expiration"
    RECORD_REQUEST = "record_request"
    VALIDATE_SCOPE = "validate_scope"


class Role(str, Enum):
    AUTHORITY = "authority"
    OWNER = "owner"


# None means unrestricted
PERMISSIONS: Dict[Operation, Optional[FrozenSet[Role]]] = {
    Operation.INITIALIZE_SERVICE: frozenset({Role.AUTHORITY}),
    Operation.CREATE_KEY: frozenset({Role.OWNER}),
    Operation.REVOKE_KEY: frozenset({Role.OWNER, Role.AUTHORITY}),
    Operation.REACTIVATE_KEY: frozenset({Role.OWNER, Role.AUTHORITY}),
    Operation.UPDATE_RATE_LIMIT: frozenset({Role.AUTHORITY}),
    Operation.UPDATE_SCOPES: frozenset({Role.AUTHORITY}),
    Operation.EXTEND_EXPIRATION: frozenset({Role.AUTHORITY}),
    Operation.RECORD_REQUEST: frozenset({Role.AUTHORITY}),
    Operation.VALIDATE_SCOPE: None,
}


class AuthorizationDecision(NamedTuple):
    operation: Operation
    caller: Optional[str]
    roles: FrozenSet[Role]
    permitted: bool


def resolve_roles(
    caller: Optional[str],
    authority: Optional[str] = None,
    owner: Optional[str] = None,
) -> FrozenSet[Role]:
    """Roles ``caller`` holds relative to a service authority and key owner."""
    if caller is None:
        return frozenset()
    roles = set()
    if authority is not None and caller == authority:
        roles.add(Role.AUTHORITY)
    if owner is not None and caller == owner:
        roles.add(Role.OWNER)
    return frozenset(roles)


def authorize(
    operation: Operation,
    caller: Optional[str],
    authority: Optional[str] = None,
    owner: Optional[str] = None,
) -> AuthorizationDecision:
    """
    Decide whether ``caller`` may perform ``operation``.

    Args:
        operation: The operation being attempted
        caller: Verified identity of the caller
        authority: Authority of the target service (for initialize, the
            identity being registered as authority)
        owner: Owner of the target key (for create, the identity the key
            is being created for)

    Returns:
        AuthorizationDecision
    """
    roles = resolve_roles(caller, authority, owner)
    required = PERMISSIONS[operation]
    permitted = required is None or bool(roles & required)
    return AuthorizationDecision(operation, caller, roles, permitted)


def require(
    operation: Operation,
    caller: Optional[str],
    authority: Optional[str] = None,
    owner: Optional[str] = None,
    address: Optional[str] = None,
) -> AuthorizationDecision:
    """Like ``authorize`` but raises ``Unauthorized`` when denied."""
    decision = authorize(operation, caller, authority, owner)
    if not decision.permitted:
        logger.warning(f"拒絕 {operation.value}: caller={caller} address={address}")
        raise Unauthorized(
            operation.value,
            address,
            f"Caller is not permitted to {operation.value.replace('_', ' ')}",
        )
    return decision
