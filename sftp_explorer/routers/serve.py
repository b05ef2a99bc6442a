import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response

from ..auth import bearer_token
from ..config import Settings
from ..content_types import content_type_header, guess_type
from ..dependencies import get_gateway, get_settings, get_tokens
from ..errors import InvalidPath, MissingParameter, NotFound, Unauthorized, translate_remote_errors
from ..html_rewrite import rewrite_html
from ..path_utils import normalize_path, parent_of, to_remote
from ..sftp_gateway import SftpGateway
from ..tokens import TokenService, is_share_claims, session_subject


logger = logging.getLogger(__name__)

router = APIRouter()


def authorize_serve(
	tokens: TokenService,
	requested_path: str,
	query_token: Optional[str],
	header_token: Optional[str] = None,
) -> str:
	"""Authorize a serve request and return the token that granted it.

	Order: share token bound to the exact path, share token bound to a
	sibling in the same directory, then a session token (query or header).
	"""
	claims = tokens.verify(query_token) if query_token else None
	if is_share_claims(claims):
		try:
			scope_path = normalize_path(claims["path"])
		except InvalidPath:
			scope_path = None
		if scope_path == requested_path:
			return query_token
		# sibling assets of a shared HTML page
		if scope_path is not None and parent_of(scope_path) == parent_of(requested_path):
			return query_token
	if session_subject(claims):
		return query_token
	if header_token and session_subject(tokens.verify(header_token)):
		return header_token
	raise Unauthorized("Valid authentication or share token required")


async def _serve(
	request: Request,
	path: Optional[str],
	token: Optional[str],
	settings: Settings,
	gateway: SftpGateway,
	tokens: TokenService,
) -> Response:
	if not path:
		raise MissingParameter("Missing path parameter", code="MISSING_PATH")
	safe_path = normalize_path(path)
	auth_token = authorize_serve(tokens, safe_path, token, bearer_token(request))
	remote_path = to_remote(safe_path, settings.base_path)

	with translate_remote_errors(NotFound()):
		_, body = await gateway.fetch(remote_path)

	mime = guess_type(safe_path)
	if mime == "text/html":
		document = body.decode("utf-8", errors="replace")
		# rewritten references always use the query form of the endpoint
		serve_url = request.url_for("serve_file").path
		body = rewrite_html(document, safe_path, serve_url, auth_token).encode("utf-8")

	return Response(
		content=body,
		headers={
			"Content-Type": content_type_header(mime),
			"Cache-Control": "private, max-age=3600",
			"X-Content-Type-Options": "nosniff",
		},
	)


@router.get("/serve")
async def serve_file(
	request: Request,
	path: Optional[str] = Query(None),
	token: Optional[str] = Query(None),
	settings: Settings = Depends(get_settings),
	gateway: SftpGateway = Depends(get_gateway),
	tokens: TokenService = Depends(get_tokens),
):
	return await _serve(request, path, token, settings, gateway, tokens)


@router.get("/serve/{file_path:path}")
async def serve_file_by_path(
	request: Request,
	file_path: str,
	token: Optional[str] = Query(None),
	settings: Settings = Depends(get_settings),
	gateway: SftpGateway = Depends(get_gateway),
	tokens: TokenService = Depends(get_tokens),
):
	return await _serve(request, file_path, token, settings, gateway, tokens)
