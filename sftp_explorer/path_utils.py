import posixpath
from typing import Tuple

from .errors import InvalidPath


ROOT = "/"


def normalize_path(input_path: str) -> str:
	"""Normalize a user-supplied path into a logical path rooted at "/".

	Segments are resolved syntactically. A ".." that would climb above the
	root raises InvalidPath instead of being clamped, so "/../etc" is
	rejected rather than silently becoming "/etc".
	"""
	if input_path is None:
		input_path = ""
	if not isinstance(input_path, str):
		raise InvalidPath()
	if "\x00" in input_path:
		raise InvalidPath()
	parts = []
	for segment in input_path.split("/"):
		if segment in ("", "."):
			continue
		if segment == "..":
			if not parts:
				raise InvalidPath()
			parts.pop()
			continue
		parts.append(segment)
	return ROOT + "/".join(parts)


def is_within_root(remote_path: str, root: str) -> bool:
	"""Path-boundary prefix check: "/base" contains "/base/x" but not "/base-evil"."""
	if root == ROOT:
		return remote_path.startswith(ROOT)
	return remote_path == root or remote_path.startswith(root + "/")


def to_remote(logical_path: str, root: str) -> str:
	"""Join a logical path onto the remote root, refusing anything that lands outside it."""
	safe_path = normalize_path(logical_path)
	root = posixpath.normpath(root or ROOT)
	if not root.startswith(ROOT):
		raise InvalidPath()
	if root.startswith("//"):
		root = ROOT + root.lstrip("/")
	if safe_path == ROOT:
		remote = root
	elif root == ROOT:
		remote = safe_path
	else:
		remote = root + safe_path
	if posixpath.normpath(remote) != remote and remote != ROOT:
		raise InvalidPath()
	if not is_within_root(remote, root):
		raise InvalidPath()
	return remote


def resolve_path(request_path: str, root: str) -> Tuple[str, str]:
	"""Resolve a request path to (remote_path, safe_logical_path)."""
	safe_path = normalize_path(request_path)
	return to_remote(safe_path, root), safe_path


def parent_of(logical_path: str) -> str:
	return posixpath.dirname(normalize_path(logical_path)) or ROOT


def join_logical(base_dir: str, ref: str) -> str:
	"""Resolve `ref` against a logical directory; absolute refs resolve from the root."""
	if ref.startswith("/"):
		return normalize_path(ref)
	return normalize_path(normalize_path(base_dir).rstrip("/") + "/" + ref)


def is_root(logical_path: str) -> bool:
	return normalize_path(logical_path) == ROOT
