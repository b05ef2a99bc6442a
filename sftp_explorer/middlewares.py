from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from .auth import authenticate
from .errors import ExplorerError, error_response


API_PREFIX = "/api"

# Reachable without a session token.
PUBLIC_PATHS = {
	"/api/auth/login",
	"/api/auth/refresh",
	"/api/auth/logout",
	"/api/health",
}

# /api/serve and /api/serve/<path> authorize on their own
SERVE_PREFIX = "/api/serve"


def _is_public(path: str) -> bool:
	return path in PUBLIC_PATHS or path == SERVE_PREFIX or path.startswith(SERVE_PREFIX + "/")


class AuthMiddleware(BaseHTTPMiddleware):
	async def dispatch(self, request: Request, call_next):
		path = request.url.path.rstrip("/") or "/"
		if request.method != "OPTIONS" and path.startswith(API_PREFIX) and not _is_public(path):
			try:
				request.state.subject = authenticate(request, request.app.state.tokens)
			except ExplorerError as exc:
				return error_response(exc.status_code, exc.code, exc.message)
		return await call_next(request)
