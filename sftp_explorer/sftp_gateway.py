"""Remote store gateway over SFTP.

Every public call opens its own SSH/SFTP connection, runs one logical
operation and closes the connection again before returning or raising.
paramiko is blocking, so the work runs in the loop's default executor.
"""

import asyncio
import errno
import logging
import posixpath
import socket
import stat as _stat
from contextlib import contextmanager
from dataclasses import dataclass
from functools import partial
from typing import Callable, Iterator, List, Tuple, Union

import paramiko

from .config import Settings
from .errors import NotConfigured, RemoteIOError


logger = logging.getLogger(__name__)

_SKIPPABLE_WALK_ERRORS = ("EACCES", "ENOENT")


@dataclass
class RemoteEntry:
	name: str
	is_dir: bool
	size: int
	modified: float  # epoch seconds


def _entry_from_attr(name: str, attr) -> RemoteEntry:
	is_dir = _stat.S_ISDIR(attr.st_mode or 0)
	return RemoteEntry(
		name=name,
		is_dir=is_dir,
		size=0 if is_dir else int(attr.st_size or 0),
		modified=float(attr.st_mtime or 0),
	)


def _errno_name(exc: BaseException) -> str:
	code = getattr(exc, "errno", None)
	if isinstance(code, int) and code in errno.errorcode:
		return errno.errorcode[code]
	text = str(exc).lower()
	if "no such file" in text:
		return "ENOENT"
	if "permission denied" in text:
		return "EACCES"
	return "EIO"


def _is_missing(exc: BaseException) -> bool:
	return isinstance(exc, IOError) and _errno_name(exc) == "ENOENT"


class SftpGateway:
	def __init__(self, settings: Settings):
		self.settings = settings

	# ---- connection lifecycle ----

	def _ensure_config(self) -> None:
		if not self.settings.sftp_configured:
			raise NotConfigured()

	def _connect(self) -> Tuple[paramiko.SSHClient, paramiko.SFTPClient]:
		s = self.settings
		ssh = paramiko.SSHClient()
		if s.sftp_known_hosts:
			ssh.load_host_keys(s.sftp_known_hosts)
			ssh.set_missing_host_key_policy(paramiko.RejectPolicy())
		else:
			ssh.set_missing_host_key_policy(paramiko.AutoAddPolicy())
		try:
			ssh.connect(
				hostname=s.sftp_host,
				port=s.sftp_port,
				username=s.sftp_username,
				password=s.sftp_password,
				timeout=s.sftp_timeout,
				banner_timeout=s.sftp_timeout,
				auth_timeout=s.sftp_timeout,
				allow_agent=False,
				look_for_keys=False,
			)
			sftp = ssh.open_sftp()
			sftp.get_channel().settimeout(s.sftp_timeout)
		except BaseException:
			ssh.close()
			raise
		return ssh, sftp

	@contextmanager
	def session(self) -> Iterator[paramiko.SFTPClient]:
		self._ensure_config()
		ssh, sftp = self._connect()
		logger.debug("SFTP connection opened to %s:%s", self.settings.sftp_host, self.settings.sftp_port)
		try:
			yield sftp
		finally:
			for closable in (sftp, ssh):
				try:
					closable.close()
				except Exception:
					logger.warning("Failed to close SFTP connection", exc_info=True)
			logger.debug("SFTP connection closed")

	def _call(self, op: Callable, path: str, *args):
		try:
			with self.session() as sftp:
				return op(sftp, *args)
		except (RemoteIOError, NotConfigured):
			raise
		except socket.timeout as exc:
			raise RemoteIOError("ETIMEDOUT", path, str(exc)) from exc
		except paramiko.SSHException as exc:
			raise RemoteIOError("ECONNECT", path, str(exc)) from exc
		except (IOError, OSError) as exc:
			raise RemoteIOError(_errno_name(exc), path, str(exc)) from exc

	async def _run(self, op: Callable, path: str, *args):
		loop = asyncio.get_running_loop()
		return await loop.run_in_executor(None, partial(self._call, op, path, *args))

	# ---- blocking operations (run inside one connection) ----

	@staticmethod
	def _makedirs(sftp, path: str) -> None:
		current = ""
		for part in [p for p in path.split("/") if p]:
			current = current + "/" + part
			try:
				attr = sftp.stat(current)
			except IOError as exc:
				if not _is_missing(exc):
					raise
				sftp.mkdir(current)
				continue
			if not _stat.S_ISDIR(attr.st_mode or 0):
				raise RemoteIOError("ENOTDIR", current)

	@staticmethod
	def _list(sftp, path: str) -> List[RemoteEntry]:
		return [_entry_from_attr(a.filename, a) for a in sftp.listdir_attr(path)]

	@staticmethod
	def _fetch(sftp, path: str) -> Tuple[RemoteEntry, bytes]:
		entry = _entry_from_attr(posixpath.basename(path) or "/", sftp.stat(path))
		if entry.is_dir:
			raise RemoteIOError("EISDIR", path)
		with sftp.open(path, "rb") as f:
			f.prefetch(entry.size)
			return entry, f.read()

	@classmethod
	def _write(cls, sftp, path: str, data: bytes, mode: str) -> int:
		cls._makedirs(sftp, posixpath.dirname(path))
		with sftp.open(path, mode) as f:
			f.set_pipelined(True)
			f.write(data)
		return int(sftp.stat(path).st_size or 0)

	@staticmethod
	def _exists(sftp, path: str) -> Union[str, bool]:
		try:
			attr = sftp.stat(path)
		except IOError as exc:
			if _is_missing(exc):
				return False
			raise
		return "directory" if _stat.S_ISDIR(attr.st_mode or 0) else "file"

	@staticmethod
	def _stat(sftp, path: str) -> RemoteEntry:
		return _entry_from_attr(posixpath.basename(path) or "/", sftp.stat(path))

	@classmethod
	def _mkdir(cls, sftp, path: str, recursive: bool) -> None:
		if recursive:
			cls._makedirs(sftp, path)
		else:
			sftp.mkdir(path)

	@classmethod
	def _rmtree(cls, sftp, path: str) -> None:
		for attr in sftp.listdir_attr(path):
			child = posixpath.join(path, attr.filename)
			if _stat.S_ISDIR(attr.st_mode or 0):
				cls._rmtree(sftp, child)
			else:
				sftp.remove(child)
		sftp.rmdir(path)

	@classmethod
	def _rmdir(cls, sftp, path: str, recursive: bool) -> None:
		if recursive:
			cls._rmtree(sftp, path)
			return
		if sftp.listdir(path):
			raise RemoteIOError("ENOTEMPTY", path)
		sftp.rmdir(path)

	@classmethod
	def _rename(cls, sftp, src: str, dst: str) -> None:
		sftp.stat(src)
		cls._makedirs(sftp, posixpath.dirname(dst))
		sftp.rename(src, dst)

	@staticmethod
	def _find(sftp, root: str, needle: str, limit: int) -> List[Tuple[str, RemoteEntry]]:
		needle = needle.lower()
		found: List[Tuple[str, RemoteEntry]] = []

		def walk(directory: str) -> None:
			try:
				attrs = sftp.listdir_attr(directory)
			except socket.timeout:
				raise
			except IOError as exc:
				# unreadable or vanished subtree; the root itself must be listable
				if directory == root or _errno_name(exc) not in _SKIPPABLE_WALK_ERRORS:
					raise
				logger.debug("Search skipped %s: %s", directory, exc)
				return
			for attr in attrs:
				if len(found) >= limit:
					return
				entry = _entry_from_attr(attr.filename, attr)
				child = posixpath.join(directory, attr.filename)
				if needle in entry.name.lower():
					found.append((child, entry))
				if entry.is_dir:
					walk(child)

		walk(root)
		return found

	# ---- async API ----

	async def list_dir(self, path: str) -> List[RemoteEntry]:
		return await self._run(self._list, path, path)

	async def read(self, path: str) -> bytes:
		_, data = await self.fetch(path)
		return data

	async def fetch(self, path: str) -> Tuple[RemoteEntry, bytes]:
		"""Stat and read a file over one connection. Directories raise EISDIR."""
		return await self._run(self._fetch, path, path)

	async def write(self, path: str, data: bytes) -> int:
		"""Overwrite `path`, creating parent directories. Returns the new size."""
		return await self._run(self._write, path, path, data, "wb")

	async def append(self, path: str, data: bytes) -> int:
		return await self._run(self._write, path, path, data, "ab")

	async def exists(self, path: str) -> Union[str, bool]:
		"""Return "file", "directory" or False."""
		return await self._run(self._exists, path, path)

	async def stat(self, path: str) -> RemoteEntry:
		return await self._run(self._stat, path, path)

	async def mkdir(self, path: str, recursive: bool = True) -> None:
		await self._run(self._mkdir, path, path, recursive)

	async def delete(self, path: str) -> None:
		await self._run(lambda sftp, p: sftp.remove(p), path, path)

	async def rmdir(self, path: str, recursive: bool = False) -> None:
		await self._run(self._rmdir, path, path, recursive)

	async def rename(self, src: str, dst: str) -> None:
		await self._run(self._rename, src, src, dst)

	async def find(self, root: str, needle: str, limit: int) -> List[Tuple[str, RemoteEntry]]:
		return await self._run(self._find, root, root, needle, limit)
