"""PKCE (Proof Key for Code Exchange) and CSRF state generation.

RFC 7636 - Proof Key for Code Exchange for OAuth 2.0 public clients.
Uses S256 challenge method (SHA-256 hash of the code verifier).

The random source is injectable so tests can pin the output.
"""

from __future__ import annotations

import hashlib
import secrets

from base64 import urlsafe_b64encode
from collections.abc import Callable
from dataclasses import dataclass


RandomBytes = Callable[[int], bytes]


def base64url_encode(data: bytes) -> str:
    """Encode bytes as unpadded base64url text."""
    return urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


@dataclass(frozen=True)
class PkceCodes:
    """PKCE code verifier and challenge pair.

    Attributes
    ----------
    code_verifier : str
        The code verifier (base64url of ``num_bytes`` random bytes).
    code_challenge : str
        The code challenge (base64url-encoded SHA-256 hash of verifier).
    method : str
        The challenge method, always "S256".
    """

    code_verifier: str
    code_challenge: str
    method: str = "S256"

    @classmethod
    def generate(
        cls, num_bytes: int = 64, random_bytes: RandomBytes = secrets.token_bytes
    ) -> PkceCodes:
        """Generate a new PKCE code verifier and challenge.

        Parameters
        ----------
        num_bytes : int
            Number of random bytes behind the verifier (default 64).
            32 bytes yields the RFC 7636 minimum of 43 characters.
        random_bytes : callable
            Source of random bytes (default ``secrets.token_bytes``).

        Returns
        -------
        PkceCodes
            A new verifier/challenge pair.
        """
        verifier = base64url_encode(random_bytes(num_bytes))
        return cls(code_verifier=verifier, code_challenge=challenge_for(verifier))


def challenge_for(verifier: str) -> str:
    """Derive the S256 code challenge for ``verifier``."""
    return base64url_encode(hashlib.sha256(verifier.encode("ascii")).digest())


def generate_state(random_bytes: RandomBytes = secrets.token_bytes) -> str:
    """Generate an opaque CSRF ``state`` value (32 random bytes, base64url)."""
    return base64url_encode(random_bytes(32))
