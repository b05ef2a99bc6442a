import base64
import binascii
import hashlib
import logging
import posixpath
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, ConfigDict, Field

from ..config import Settings
from ..dependencies import get_gateway, get_settings, get_tokens
from ..errors import (
	Conflict,
	InvalidParameter,
	InvalidPath,
	IsDirectory,
	MissingParameter,
	NotFound,
	RemoteIOError,
	translate_remote_errors,
)
from ..html_rewrite import build_serve_url
from ..path_utils import ROOT, resolve_path
from ..sftp_gateway import RemoteEntry, SftpGateway
from ..tokens import TokenService, share_ttl_key


logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 2

router = APIRouter(prefix="/files")


def _iso(ts: float) -> str:
	return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def _now_iso() -> str:
	return datetime.now(timezone.utc).isoformat()


def _require(value, code: str = "MISSING_PARAMS", message: str = "Missing required parameters"):
	if value is None or (isinstance(value, str) and not value):
		raise MissingParameter(message, code=code)
	return value


def _require_path(value: Optional[str]) -> str:
	return _require(value, "MISSING_PATH", "Path is required")


def _category(logical_path: str) -> Optional[str]:
	parts = [p for p in logical_path.split("/") if p]
	# first folder is the category
	return parts[0] if len(parts) > 1 else None


def _file_entry(logical_path: str, entry: RemoteEntry) -> dict:
	return {
		"name": entry.name,
		"type": "directory" if entry.is_dir else "file",
		"path": logical_path,
		"size": entry.size,
		"modified": _iso(entry.modified),
		"category": _category(logical_path),
	}


def _sort_key(entry: RemoteEntry):
	return (not entry.is_dir, entry.name.lower(), entry.name)


def _logical_from_remote(remote_path: str, root: str) -> str:
	if root == ROOT:
		return remote_path
	return remote_path[len(root):] or ROOT


def _checksum(data: bytes) -> str:
	return hashlib.md5(data).hexdigest()


async def _write_chunk(gateway: SftpGateway, remote_path: str, data: bytes, chunk_index: int) -> int:
	# The first chunk truncates; the caller sends the rest in order.
	if chunk_index == 0:
		return await gateway.write(remote_path, data)
	return await gateway.append(remote_path, data)


def _check_chunks(chunk_index: int, total_chunks: int) -> None:
	if total_chunks < 1 or chunk_index < 0 or chunk_index >= total_chunks:
		raise InvalidParameter("chunkIndex must be within [0, totalChunks)")


# ---------------- Listing & reading ----------------

@router.get("/list")
async def list_dir(
	path: str = Query(ROOT),
	settings: Settings = Depends(get_settings),
	gateway: SftpGateway = Depends(get_gateway),
):
	remote_dir, safe_path = resolve_path(path or ROOT, settings.base_path)
	try:
		entries = await gateway.list_dir(remote_dir)
	except RemoteIOError as exc:
		if not exc.not_found:
			raise
		if safe_path != ROOT:
			raise NotFound("Directory not found", code="DIR_NOT_FOUND")
		# first use: the configured root does not exist yet
		logger.info("Creating missing remote root %s", remote_dir)
		await gateway.mkdir(remote_dir, recursive=True)
		entries = []
	items = [
		_file_entry(posixpath.join(safe_path, e.name), e)
		for e in sorted(entries, key=_sort_key)
	]
	return {"success": True, "path": safe_path, "items": items, "totalItems": len(items)}


@router.get("/read")
async def read_file(
	path: Optional[str] = None,
	settings: Settings = Depends(get_settings),
	gateway: SftpGateway = Depends(get_gateway),
):
	remote_path, safe_path = resolve_path(_require_path(path), settings.base_path)
	with translate_remote_errors(NotFound()):
		entry, data = await gateway.fetch(remote_path)
	return {
		"success": True,
		"file": {
			"path": safe_path,
			"name": posixpath.basename(safe_path),
			"content": data.decode("utf-8", errors="replace"),
			"encoding": "utf-8",
			"size": len(data),
			"modified": _iso(entry.modified),
			"checksum": _checksum(data),
		},
	}


# ---------------- Writing ----------------

class CreateBody(BaseModel):
	path: Optional[str] = None
	content: str = ""
	overwrite: bool = False


@router.post("/create")
async def create_file(
	body: CreateBody,
	settings: Settings = Depends(get_settings),
	gateway: SftpGateway = Depends(get_gateway),
):
	remote_path, safe_path = resolve_path(_require_path(body.path), settings.base_path)
	if safe_path == ROOT:
		raise InvalidPath()
	# Not atomic: a concurrent create can slip in between the check and the write.
	existing = await gateway.exists(remote_path)
	if existing == "directory" or (existing and not body.overwrite):
		raise Conflict()
	data = body.content.encode("utf-8")
	size = await gateway.write(remote_path, data)
	return {
		"success": True,
		"file": {"path": safe_path, "name": posixpath.basename(safe_path), "size": size},
	}


class UpdateBody(BaseModel):
	path: Optional[str] = None
	content: Optional[str] = None
	chunkIndex: int = 0
	totalChunks: int = 1


@router.put("/update")
async def update_file(
	body: UpdateBody,
	settings: Settings = Depends(get_settings),
	gateway: SftpGateway = Depends(get_gateway),
):
	remote_path, safe_path = resolve_path(_require_path(body.path), settings.base_path)
	if body.content is None:
		raise MissingParameter("Path and content are required")
	_check_chunks(body.chunkIndex, body.totalChunks)
	data = body.content.encode("utf-8")
	with translate_remote_errors(NotFound()):
		size = await _write_chunk(gateway, remote_path, data, body.chunkIndex)
	return {
		"success": True,
		"message": "File updated successfully",
		"file": {
			"path": safe_path,
			"name": posixpath.basename(safe_path),
			"size": size,
			"checksum": _checksum(data),
			"chunkIndex": body.chunkIndex,
			"totalChunks": body.totalChunks,
			"complete": body.chunkIndex == body.totalChunks - 1,
		},
	}


class UploadBody(BaseModel):
	path: Optional[str] = None
	contentBase64: Optional[str] = None
	chunkIndex: int = 0
	totalChunks: int = 1


@router.post("/upload")
async def upload_file(
	body: UploadBody,
	settings: Settings = Depends(get_settings),
	gateway: SftpGateway = Depends(get_gateway),
):
	remote_path, safe_path = resolve_path(_require_path(body.path), settings.base_path)
	if body.contentBase64 is None:
		raise MissingParameter("Path and content are required")
	_check_chunks(body.chunkIndex, body.totalChunks)
	try:
		data = base64.b64decode(body.contentBase64, validate=True)
	except (binascii.Error, ValueError):
		raise InvalidParameter("contentBase64 is not valid base64")
	with translate_remote_errors(NotFound()):
		size = await _write_chunk(gateway, remote_path, data, body.chunkIndex)
	return {
		"success": True,
		"message": "File uploaded successfully",
		"file": {
			"path": safe_path,
			"name": posixpath.basename(safe_path),
			"size": size,
			"chunkIndex": body.chunkIndex,
			"totalChunks": body.totalChunks,
			"complete": body.chunkIndex == body.totalChunks - 1,
		},
	}


class MkdirBody(BaseModel):
	path: Optional[str] = None


@router.post("/dir/create")
async def make_dir(
	body: MkdirBody,
	settings: Settings = Depends(get_settings),
	gateway: SftpGateway = Depends(get_gateway),
):
	remote_path, safe_path = resolve_path(_require_path(body.path), settings.base_path)
	try:
		await gateway.mkdir(remote_path, recursive=True)
	except RemoteIOError as exc:
		if exc.errno_code == "ENOTDIR":
			raise Conflict("A file exists at this path")
		raise
	return {"success": True, "directory": {"path": safe_path, "created": _now_iso()}}


# ---------------- Delete & rename ----------------

class DeleteBody(BaseModel):
	path: Optional[str] = None
	recursive: bool = False


@router.delete("/delete")
async def delete_path(
	body: DeleteBody,
	settings: Settings = Depends(get_settings),
	gateway: SftpGateway = Depends(get_gateway),
):
	remote_path, safe_path = resolve_path(_require_path(body.path), settings.base_path)
	if safe_path == ROOT:
		raise InvalidPath("Cannot delete the root directory")
	missing = NotFound("File or directory not found")
	kind = await gateway.exists(remote_path)
	if not kind:
		raise missing
	with translate_remote_errors(missing):
		if kind == "directory":
			await gateway.rmdir(remote_path, recursive=body.recursive)
		else:
			await gateway.delete(remote_path)
	return {"success": True, "deleted": {"path": safe_path, "deletedAt": _now_iso()}}


class RenameBody(BaseModel):
	model_config = ConfigDict(populate_by_name=True)

	from_: Optional[str] = Field(default=None, alias="from")
	to: Optional[str] = None


@router.post("/rename")
async def rename_path(
	body: RenameBody,
	settings: Settings = Depends(get_settings),
	gateway: SftpGateway = Depends(get_gateway),
):
	_require(body.from_, message="Both from and to are required")
	_require(body.to, message="Both from and to are required")
	remote_src, safe_src = resolve_path(body.from_, settings.base_path)
	remote_dst, safe_dst = resolve_path(body.to, settings.base_path)
	if ROOT in (safe_src, safe_dst):
		raise InvalidPath()
	# Prevent moving a directory into itself or its subdirectory
	if safe_dst.startswith(safe_src + "/"):
		raise InvalidParameter("Cannot move a directory into itself")
	if safe_src != safe_dst:
		with translate_remote_errors(NotFound("Source file or directory not found")):
			await gateway.rename(remote_src, remote_dst)
	return {
		"success": True,
		"renamed": {"from": safe_src, "to": safe_dst, "renamedAt": _now_iso()},
	}


# ---------------- Search ----------------

@router.get("/search")
async def search_files(
	q: str = Query(""),
	limit: Optional[int] = None,
	settings: Settings = Depends(get_settings),
	gateway: SftpGateway = Depends(get_gateway),
):
	query = q.strip()
	if len(query) < MIN_QUERY_LENGTH:
		raise InvalidParameter("Search query must be at least 2 characters", code="INVALID_QUERY")
	max_count = max(1, min(limit or settings.search_default_limit, settings.search_max_limit))
	root = settings.base_path
	# Full walk on every call; there is no index.
	with translate_remote_errors(NotFound("Directory not found", code="DIR_NOT_FOUND")):
		found = await gateway.find(root, query, max_count)
	results = [_file_entry(_logical_from_remote(remote, root), entry) for remote, entry in found]
	return {"success": True, "query": query, "results": results, "totalResults": len(results)}


# ---------------- Share links ----------------

class ShareBody(BaseModel):
	path: Optional[str] = None
	expiresIn: Optional[str] = None


@router.post("/share")
async def create_share_link(
	body: ShareBody,
	request: Request,
	settings: Settings = Depends(get_settings),
	gateway: SftpGateway = Depends(get_gateway),
	tokens: TokenService = Depends(get_tokens),
):
	remote_path, safe_path = resolve_path(_require_path(body.path), settings.base_path)
	kind = await gateway.exists(remote_path)
	if not kind:
		raise NotFound()
	if kind == "directory":
		raise IsDirectory("Only files can be shared")
	expiration = share_ttl_key(body.expiresIn)
	token = tokens.issue_share_token(safe_path, expiration)
	base = (settings.public_base_url or str(request.base_url)).rstrip("/")
	share_url = build_serve_url(f"{base}/api/serve", safe_path, token)
	logger.info("Share link issued for %s (expires in %s)", safe_path, expiration)
	return {
		"success": True,
		"shareUrl": share_url,
		"token": token,
		"expiresIn": expiration,
		"path": safe_path,
	}
