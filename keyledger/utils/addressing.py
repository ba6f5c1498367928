"""
Deterministic address derivation for ledger records.

A record's address is a SHA256 digest over a domain-separation tag and the
record's logical key fields, so any caller can recompute it without
querying storage:

    service address = H(namespace, "service", authority)
    api key address = H(namespace, "apikey", service, owner, key_index)

Each field is length-prefixed before hashing, which keeps the encoding
injective: distinct field tuples never produce the same preimage.
"""
import hashlib
import struct
from typing import Iterable, Optional

from keyledger.core.config import settings

SERVICE_TAG = b"service"
API_KEY_TAG = b"apikey"


def _encode_field(value: bytes) -> bytes:
    return struct.pack(">I", len(value)) + value


def _derive(fields: Iterable[bytes], namespace: Optional[str] = None) -> str:
    ns = (namespace if namespace is not None else settings.address_namespace).encode()
    digest = hashlib.sha256()
    digest.update(_encode_field(ns))
    for field in fields:
        digest.update(_encode_field(field))
    return digest.hexdigest()


def derive_service_address(authority: str, namespace: Optional[str] = None) -> str:
    """
    Derive the address of the Service owned by an authority.

    Args:
        authority: Identity administering the service
        namespace: Domain-separation prefix (defaults to settings)

    Returns:
        str: 64-character hex address
    """
    return _derive([SERVICE_TAG, authority.encode()], namespace)


def derive_api_key_address(
    service_address: str,
    owner: str,
    key_index: int,
    namespace: Optional[str] = None,
) -> str:
    """
    Derive the address of an ApiKey from its service, owner and index.

    Args:
        service_address: Address of the owning Service
        owner: Identity holding the key
        key_index: Per-service creation index (unsigned 64-bit)
        namespace: Domain-separation prefix (defaults to settings)

    Returns:
        str: 64-character hex address
    """
    if key_index < 0:
        raise ValueError("key_index must be non-negative")
    return _derive(
        [
            API_KEY_TAG,
            service_address.encode(),
            owner.encode(),
            struct.pack("<Q", key_index),
        ],
        namespace,
    )
