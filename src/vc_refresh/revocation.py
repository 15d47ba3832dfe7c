"""Revocation nonce extraction from iden3 credential status."""

from __future__ import annotations

from vc_refresh.credential import Credential
from vc_refresh.errors import SerializationError

MAX_NONCE = 2**64 - 1


def extract_revocation_nonce(credential: Credential) -> int:
    """Read credentialStatus.revocationNonce as an unsigned 64-bit integer.

    Whole-valued floats are accepted since JSON decoders may produce them.

    Raises:
        SerializationError: If the status is not an object, the key is
            absent, or the value is not a non-negative integer.
    """
    status = credential.status
    if not isinstance(status, dict):
        raise SerializationError("invalid credential status")
    if "revocationNonce" not in status:
        raise SerializationError("revocationNonce not found in credential status")

    nonce = status["revocationNonce"]
    # bool is an int subclass
    if isinstance(nonce, bool) or not isinstance(nonce, (int, float)):
        raise SerializationError("revocationNonce is not a number")
    if isinstance(nonce, float):
        if not nonce.is_integer():
            raise SerializationError(f"revocationNonce is not an integer: {nonce}")
        nonce = int(nonce)
    if nonce < 0 or nonce > MAX_NONCE:
        raise SerializationError(f"revocationNonce out of range: {nonce}")
    return nonce
