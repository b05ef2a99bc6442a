from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt  # PyJWT

from .config import Settings
from .path_utils import normalize_path


ALGORITHM = "HS256"
ACCESS_TOKEN_LIFETIME = timedelta(hours=24)
REFRESH_TOKEN_LIFETIME = timedelta(days=7)

# None => no expiry
SHARE_TTLS = {
	"1h": timedelta(hours=1),
	"24h": timedelta(hours=24),
	"7d": timedelta(days=7),
	"30d": timedelta(days=30),
	"never": None,
}
DEFAULT_SHARE_TTL = "7d"

TYPE_ACCESS = "access"
TYPE_REFRESH = "refresh"
TYPE_SHARE = "share"


def share_ttl_key(expires_in: Optional[str]) -> str:
	return expires_in if expires_in in SHARE_TTLS else DEFAULT_SHARE_TTL


def is_share_claims(claims: Optional[dict]) -> bool:
	return bool(claims) and "path" in claims


def session_subject(claims: Optional[dict]) -> Optional[str]:
	"""Subject of an access token; refresh and share tokens yield None."""
	if not claims or is_share_claims(claims):
		return None
	if claims.get("type") != TYPE_ACCESS:
		return None
	sub = claims.get("sub")
	return sub if isinstance(sub, str) and sub else None


class TokenService:
	"""Issues and verifies stateless signed tokens. Expiry is the only invalidation."""

	def __init__(self, settings: Settings):
		self._secret = settings.jwt_secret

	def _encode(self, claims: dict, lifetime: Optional[timedelta]) -> str:
		now = datetime.now(timezone.utc)
		payload = dict(claims)
		payload["iat"] = now
		if lifetime is not None:
			payload["exp"] = now + lifetime
		return jwt.encode(payload, self._secret, algorithm=ALGORITHM)

	def issue_session_token(self, subject: str = "user", lifetime: timedelta = ACCESS_TOKEN_LIFETIME) -> str:
		return self._encode({"sub": subject, "type": TYPE_ACCESS}, lifetime)

	def issue_refresh_token(self, subject: str = "user", lifetime: timedelta = REFRESH_TOKEN_LIFETIME) -> str:
		return self._encode({"sub": subject, "type": TYPE_REFRESH}, lifetime)

	def issue_share_token(self, path: str, ttl: str = DEFAULT_SHARE_TTL) -> str:
		"""Bind a token to one logical path. Raises InvalidPath before signing anything."""
		safe_path = normalize_path(path)
		return self._encode({"type": TYPE_SHARE, "path": safe_path}, SHARE_TTLS[share_ttl_key(ttl)])

	def verify(self, token: Optional[str]) -> Optional[dict]:
		"""Return the claims, or None for any malformed, forged or expired token."""
		if not token or not isinstance(token, str):
			return None
		try:
			return jwt.decode(token, self._secret, algorithms=[ALGORITHM])
		except jwt.PyJWTError:
			return None
