import hmac
import logging
from typing import Optional

import bcrypt
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from .config import Settings
from .dependencies import get_settings, get_tokens
from .errors import Forbidden, MissingParameter, ServerError, Unauthorized
from .tokens import ACCESS_TOKEN_LIFETIME, TYPE_REFRESH, TokenService, session_subject


logger = logging.getLogger(__name__)

EXPIRES_IN = int(ACCESS_TOKEN_LIFETIME.total_seconds())
BCRYPT_MAX_BYTES = 72


class LoginBody(BaseModel):
	password: Optional[str] = None


class RefreshBody(BaseModel):
	refreshToken: Optional[str] = None


router = APIRouter(prefix="/auth")


def check_password(settings: Settings, password: str) -> bool:
	if settings.password_hash:
		candidate = password.encode("utf-8")
		# bcrypt only hashes the first 72 bytes; newer releases raise on longer input
		if len(candidate) > BCRYPT_MAX_BYTES:
			return False
		try:
			return bcrypt.checkpw(candidate, settings.password_hash.encode("utf-8"))
		except ValueError:
			logger.error("Configured password_hash is not a valid bcrypt hash")
			raise ServerError("Auth error", code="LOGIN_ERROR")
	return hmac.compare_digest(password.encode("utf-8"), settings.password.encode("utf-8"))


def bearer_token(request: Request) -> Optional[str]:
	header = request.headers.get("authorization") or ""
	scheme, _, value = header.partition(" ")
	if scheme.lower() == "bearer" and value.strip():
		return value.strip()
	return None


def request_token(request: Request) -> Optional[str]:
	"""Bearer header first, then the ?token= query parameter."""
	return bearer_token(request) or request.query_params.get("token") or None


def authenticate(request: Request, tokens: TokenService) -> str:
	"""Return the session subject or raise Unauthorized/Forbidden."""
	token = request_token(request)
	if not token:
		raise Unauthorized()
	subject = session_subject(tokens.verify(token))
	if subject is None:
		raise Forbidden()
	return subject


@router.post("/login")
def login(body: LoginBody, settings: Settings = Depends(get_settings), tokens: TokenService = Depends(get_tokens)):
	if not body.password:
		raise MissingParameter("Password is required", code="MISSING_PASSWORD")
	if not check_password(settings, body.password):
		logger.warning("Failed login attempt")
		raise Unauthorized("Invalid password", code="INVALID_PASSWORD")
	return {
		"success": True,
		"token": tokens.issue_session_token("user"),
		"refreshToken": tokens.issue_refresh_token("user"),
		"expiresIn": EXPIRES_IN,
	}


@router.post("/refresh")
def refresh(body: RefreshBody, tokens: TokenService = Depends(get_tokens)):
	if not body.refreshToken:
		raise MissingParameter("Refresh token is required", code="MISSING_TOKEN")
	claims = tokens.verify(body.refreshToken)
	if not claims or claims.get("type") != TYPE_REFRESH or not claims.get("sub"):
		raise Forbidden("Invalid refresh token", code="INVALID_TOKEN")
	return {"success": True, "token": tokens.issue_session_token(claims["sub"]), "expiresIn": EXPIRES_IN}


@router.post("/logout")
def logout():
	# Tokens are stateless; the client just drops them.
	return {"success": True, "message": "Logged out successfully"}


@router.get("/verify")
def verify(request: Request):
	return {"success": True, "subject": request.state.subject}
