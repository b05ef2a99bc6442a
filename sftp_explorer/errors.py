import logging
import traceback
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


logger = logging.getLogger(__name__)


class ExplorerError(Exception):
	"""Base error; carries the HTTP status and the machine-readable code sent to the UI."""

	status_code = 500
	code = "SERVER_ERROR"
	message = "Internal server error"

	def __init__(self, message: Optional[str] = None, code: Optional[str] = None):
		if message is not None:
			self.message = message
		if code is not None:
			self.code = code
		super().__init__(self.message)


class InvalidPath(ExplorerError):
	status_code = 403
	code = "INVALID_PATH"
	message = "Invalid path"


class MissingParameter(ExplorerError):
	status_code = 400
	code = "MISSING_PARAMS"
	message = "Missing required parameter"


class InvalidParameter(ExplorerError):
	status_code = 400
	code = "INVALID_PARAMS"
	message = "Invalid parameter"


class NotFound(ExplorerError):
	status_code = 404
	code = "FILE_NOT_FOUND"
	message = "File not found"


class Conflict(ExplorerError):
	status_code = 409
	code = "FILE_EXISTS"
	message = "File already exists"


class DirNotEmpty(ExplorerError):
	status_code = 400
	code = "DIR_NOT_EMPTY"
	message = "Directory is not empty"


class IsDirectory(ExplorerError):
	status_code = 400
	code = "IS_DIRECTORY"
	message = "Path is a directory"


class Unauthorized(ExplorerError):
	status_code = 401
	code = "AUTH_REQUIRED"
	message = "Authentication required"


class Forbidden(ExplorerError):
	status_code = 403
	code = "AUTH_INVALID"
	message = "Invalid or expired token"


class NotConfigured(ExplorerError):
	status_code = 500
	code = "SFTP_NOT_CONFIGURED"
	message = "SFTP is not configured. Set SFTP_HOST, SFTP_USERNAME and SFTP_PASSWORD."


class RemoteIOError(ExplorerError):
	"""Remote filesystem failure. `errno_code` keeps the transport's own code (ENOENT, EACCES, ...)."""

	status_code = 500
	code = "REMOTE_IO_ERROR"
	message = "Remote storage error"

	def __init__(self, errno_code: str = "EIO", path: Optional[str] = None, detail: Optional[str] = None):
		self.errno_code = errno_code
		self.path = path
		self.detail = detail
		super().__init__()

	@property
	def not_found(self) -> bool:
		return self.errno_code == "ENOENT"

	def __str__(self) -> str:
		parts = [self.errno_code]
		if self.path:
			parts.append(self.path)
		if self.detail:
			parts.append(self.detail)
		return ": ".join(parts)


class ServerError(ExplorerError):
	pass


@contextmanager
def translate_remote_errors(not_found: NotFound):
	"""Turn gateway errno codes that callers can act on into handler errors."""
	try:
		yield
	except RemoteIOError as exc:
		if exc.not_found:
			raise not_found from exc
		if exc.errno_code == "EISDIR":
			raise IsDirectory() from exc
		if exc.errno_code == "ENOTEMPTY":
			raise DirNotEmpty() from exc
		raise


def _timestamp() -> str:
	return datetime.now(timezone.utc).isoformat()


def error_response(status_code: int, code: str, message: str, **extra) -> JSONResponse:
	error = {"code": code, "message": message}
	error.update(extra)
	return JSONResponse(
		{"success": False, "error": error, "timestamp": _timestamp()},
		status_code=status_code,
	)


def install_error_handlers(app: FastAPI) -> None:
	@app.exception_handler(ExplorerError)
	async def _explorer_error(request: Request, exc: ExplorerError):
		if isinstance(exc, RemoteIOError):
			logger.error("Remote I/O error on %s: %s", request.url.path, exc)
		elif exc.status_code >= 500:
			logger.error("%s on %s: %s", exc.code, request.url.path, exc.message)
		return error_response(exc.status_code, exc.code, exc.message)

	@app.exception_handler(RequestValidationError)
	async def _validation_error(request: Request, exc: RequestValidationError):
		fields = [".".join(str(p) for p in err.get("loc", ())[1:]) for err in exc.errors()]
		message = "Invalid parameters: " + ", ".join(f for f in fields if f) if fields else "Invalid parameters"
		return error_response(400, "INVALID_PARAMS", message)

	@app.exception_handler(Exception)
	async def _unexpected_error(request: Request, exc: Exception):
		logger.exception("Unhandled error on %s %s", request.method, request.url.path)
		settings = getattr(request.app.state, "settings", None)
		if settings is not None and settings.is_development:
			return error_response(
				500, "SERVER_ERROR", str(exc) or exc.__class__.__name__,
				traceback=traceback.format_exception(type(exc), exc, exc.__traceback__),
			)
		return error_response(500, "SERVER_ERROR", "Internal server error")
