"""ID token verification (ES256).

The identity provider signs; this service only verifies.  Every request's
bearer credential goes through ``verify_id_token`` and nothing downstream
ever parses a token again.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from membership_service.core.config import SETTINGS

# ---------------------------------------------------------------------------
# Key management
# ---------------------------------------------------------------------------
# Production: the identity provider's public key from ID_TOKEN_PUBLIC_KEY.
# Dev/test: an ephemeral EC key pair generated on import; create_id_token
# signs with it so tests and local tooling can mint credentials.
_private_key: ec.EllipticCurvePrivateKey | None
if SETTINGS.id_token_public_key:
    _private_key = None
    _public_key = serialization.load_pem_public_key(
        SETTINGS.id_token_public_key.encode()
    )
else:
    _private_key = ec.generate_private_key(ec.SECP256R1())
    _public_key = _private_key.public_key()

ALGORITHM = "ES256"
ISSUER = "therapy-identity"
AUDIENCE = "membership-service"
ID_TOKEN_TTL_MIN = 60


def create_id_token(
    *,
    sub: str,
    email: str = "",
    super_admin: bool = False,
    ttl_minutes: int = ID_TOKEN_TTL_MIN,
) -> str:
    """Sign an ID token with the development key.

    Only available when no external public key is configured.
    """
    if _private_key is None:
        raise RuntimeError("ID tokens are issued by the identity provider")
    now = datetime.now(UTC)
    payload = {
        "sub": sub,
        "iss": ISSUER,
        "aud": AUDIENCE,
        "exp": now + timedelta(minutes=ttl_minutes),
        "iat": now,
        "jti": str(uuid.uuid4()),
        "email": email,
    }
    if super_admin:
        payload["super_admin"] = True
    return jwt.encode(payload, _private_key, algorithm=ALGORITHM)


def verify_id_token(token: str) -> dict:
    """Verify signature and claims, return the payload.

    Pins algorithm to ES256 and validates exp, iss and aud.

    Raises jwt.ExpiredSignatureError, jwt.InvalidTokenError on failure.
    """
    claims = jwt.decode(
        token,
        _public_key,
        algorithms=[ALGORITHM],
        issuer=ISSUER,
        audience=AUDIENCE,
        options={"require": ["sub", "exp", "iat"]},
    )
    if not isinstance(claims["sub"], str) or not claims["sub"].strip():
        raise jwt.InvalidTokenError("Invalid token subject")
    return claims
