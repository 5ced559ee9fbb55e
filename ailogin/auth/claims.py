"""ID token claim extraction.

Identity for providers without a profile endpoint comes from the
``id_token`` payload. Decoding never raises: a malformed token yields
``None`` and callers fall back to a placeholder identity. Signature
verification is opt-in and requires authlib.
"""

from __future__ import annotations

import base64
import json
import logging

from typing import Any

import httpx

from ..exceptions import TokenError


try:
    from authlib.jose import JsonWebKey, JsonWebToken  # type: ignore[import-untyped]

    _HAS_AUTHLIB = True
except ImportError:
    _HAS_AUTHLIB = False


logger = logging.getLogger("ailogin.auth")


def _b64url_decode(segment: str) -> bytes:
    padding = "=" * (-len(segment) % 4)
    return base64.urlsafe_b64decode(segment + padding)


def decode_jwt_claims(token: str | None) -> dict[str, Any] | None:
    """Decode the payload segment of a JWT without verifying it.

    Parameters
    ----------
    token : str or None
        A compact-serialized JWT (``header.payload.signature``).

    Returns
    -------
    dict or None
        The claims, or None when the token is missing or malformed.
    """
    if not token:
        return None
    parts = token.split(".")
    if len(parts) != 3:
        return None
    try:
        claims = json.loads(_b64url_decode(parts[1]))
    except (ValueError, UnicodeDecodeError):
        return None
    return claims if isinstance(claims, dict) else None


def claim_str(claims: dict[str, Any], *path: str) -> str | None:
    """Read a nested string claim, or None if any step is missing."""
    value: Any = claims
    for key in path:
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value if isinstance(value, str) and value else None


async def verify_id_token(
    id_token: str,
    jwks_url: str,
    issuer: str,
    audience: str,
    http_client: httpx.AsyncClient,
    timeout: float = 10.0,
) -> dict[str, Any]:
    """Verify an ID token signature and standard claims.

    Checks signature (via JWKS), issuer, audience and expiry.

    Parameters
    ----------
    id_token : str
        The raw ID token JWT string.
    jwks_url : str
        URL of the issuer's JSON Web Key Set.
    issuer : str
        Expected ``iss`` claim.
    audience : str
        Expected ``aud`` claim (the client id).
    http_client : httpx.AsyncClient
        Client used to fetch the key set.
    timeout : float
        Timeout for the JWKS request in seconds.

    Returns
    -------
    dict[str, Any]
        The validated claims.

    Raises
    ------
    TokenError
        If authlib is missing or validation fails for any reason.
    """
    if not _HAS_AUTHLIB:
        msg = (
            "authlib is required for ID token verification. "
            "Install with: pip install 'ailogin[jwt]'"
        )
        raise TokenError(msg)

    try:
        resp = await http_client.get(jwks_url, timeout=timeout)
        resp.raise_for_status()
        jwks_data = resp.json()
    except (httpx.HTTPError, ValueError) as exc:
        msg = f"Could not fetch JWKS from {jwks_url}: {exc}"
        raise TokenError(msg) from exc

    jwt = JsonWebToken(["RS256", "RS384", "RS512", "ES256", "ES384", "ES512"])
    claims_options: dict[str, Any] = {
        "iss": {"essential": True, "value": issuer.rstrip("/")},
        "aud": {"essential": True, "value": audience},
        "exp": {"essential": True},
    }

    try:
        key_set = JsonWebKey.import_key_set(jwks_data)
        claims = jwt.decode(id_token, key_set, claims_options=claims_options)
        claims.validate()
    except Exception as exc:
        msg = f"ID token validation failed: {exc}"
        raise TokenError(msg) from exc

    logger.debug("ID token verified against %s", jwks_url)
    return dict(claims)
