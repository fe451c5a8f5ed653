# achievement_api/core/identity.py
"""
Identity envelope: turns a bearer credential into an authenticated identity.

Access credentials carry the full claim set including ``tokenId``; refresh
credentials carry only ``userId``. Each path rejects the other kind.
"""
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from jose import JWTError, jwt

from achievement_api.config import settings
from achievement_api.core.errors import Unauthenticated
from achievement_api.core.revocation import RevocationSet, revocation_set


@dataclass(frozen=True)
class Identity:
    user_id: str
    role: str
    permissions: Tuple[str, ...]
    token_id: str
    exp: int


class IdentityEnvelope:
    def __init__(
        self,
        secret_key: Optional[str] = None,
        revocations: Optional[RevocationSet] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.secret_key = secret_key or settings.SECRET_KEY
        if not self.secret_key:
            raise RuntimeError("SECRET_KEY is not configured")
        self.revocations = revocations if revocations is not None else revocation_set
        self.clock = clock

    def _decode(self, credential: Optional[str]) -> Dict[str, Any]:
        if not credential:
            raise Unauthenticated("missing credential")
        try:
            # expiry is checked below against our own clock
            claims = jwt.decode(
                credential,
                self.secret_key,
                algorithms=[settings.ALGORITHM],
                options={"verify_exp": False},
            )
        except JWTError as exc:
            raise Unauthenticated("invalid credential") from exc

        exp = claims.get("exp")
        if not isinstance(exp, (int, float)) or exp <= self.clock():
            raise Unauthenticated("credential expired")
        if not claims.get("userId"):
            raise Unauthenticated("credential has no subject")
        return claims

    def open(self, credential: Optional[str]) -> Identity:
        """Validate an access credential."""
        claims = self._decode(credential)
        token_id = claims.get("tokenId")
        role = claims.get("role")
        if not token_id or not role:
            # refresh credentials are only accepted by the refresh path
            raise Unauthenticated("access credential required")
        if self.revocations.is_revoked(token_id):
            raise Unauthenticated("credential revoked")

        permissions = claims.get("permissions") or []
        if not isinstance(permissions, list):
            raise Unauthenticated("malformed permissions claim")
        return Identity(
            user_id=str(claims["userId"]),
            role=str(role),
            permissions=tuple(str(p) for p in permissions),
            token_id=str(token_id),
            exp=int(claims["exp"]),
        )

    def open_refresh(self, credential: Optional[str]) -> str:
        """Validate a refresh credential and return the user id it was issued to."""
        claims = self._decode(credential)
        if claims.get("tokenId") or claims.get("role"):
            raise Unauthenticated("refresh credential required")
        return str(claims["userId"])

    def revoke(self, identity: Identity) -> None:
        self.revocations.revoke(identity.token_id, float(identity.exp))
