"""
Scope matching for API keys.

A key grants a requested scope when its scope list holds that exact
string (case-sensitive) or the wildcard ``"*"``. There is no prefix or
glob matching beyond the single wildcard token.
"""
from typing import Sequence

from keyledger.models.records import WILDCARD_SCOPE


def has_scope(scopes: Sequence[str], requested_scope: str) -> bool:
    """Return True when ``scopes`` grants ``requested_scope``."""
    return any(scope == WILDCARD_SCOPE or scope == requested_scope for scope in scopes)
