"""
Pytest fixtures: settings, an in-memory gateway and a TestClient.
"""

import posixpath
import time

import pytest
from fastapi.testclient import TestClient

from sftp_explorer.config import Settings
from sftp_explorer.errors import RemoteIOError
from sftp_explorer.main import create_app
from sftp_explorer.sftp_gateway import RemoteEntry


BASE_PATH = "/srv/files"
PASSWORD = "hunter22"


def make_settings(**overrides) -> Settings:
    values = dict(
        _env_file=None,
        sftp_host="sftp.test",
        sftp_username="files",
        sftp_password="secret",
        sftp_base_path=BASE_PATH,
        jwt_secret="test-secret",
        password=PASSWORD,
        password_hash="",
        log_file="",
        public_base_url="https://files.example.com",
    )
    values.update(overrides)
    return Settings(**values)


class MemoryGateway:
    """Dict-backed stand-in for SftpGateway with the same async API and error codes."""

    def __init__(self, root: str = BASE_PATH, create_root: bool = True):
        self.root = root
        self.dirs = {"/"}
        self.files = {}
        self.mtimes = {}
        self.calls = []
        parent = posixpath.dirname(root)
        self._add_dirs(parent)
        if create_root:
            self._add_dirs(root)

    # ---- helpers for tests ----

    def remote(self, logical: str) -> str:
        return self.root if logical == "/" else self.root + logical

    def seed_file(self, logical: str, content) -> None:
        if isinstance(content, str):
            content = content.encode("utf-8")
        path = self.remote(logical)
        self._add_dirs(posixpath.dirname(path))
        self.files[path] = content
        self.mtimes[path] = time.time()

    def seed_dir(self, logical: str) -> None:
        self._add_dirs(self.remote(logical))

    def content(self, logical: str) -> bytes:
        return self.files[self.remote(logical)]

    # ---- internals ----

    def _add_dirs(self, path: str) -> None:
        current = ""
        for part in [p for p in path.split("/") if p]:
            current += "/" + part
            if current in self.files:
                raise RemoteIOError("ENOTDIR", current)
            self.dirs.add(current)

    def _children(self, path: str):
        prefix = path.rstrip("/") + "/"
        names = set()
        for candidate in list(self.dirs) + list(self.files):
            if candidate.startswith(prefix) and candidate != path:
                rest = candidate[len(prefix):]
                if rest and "/" not in rest:
                    names.add(rest)
        return sorted(names)

    def _entry(self, path: str) -> RemoteEntry:
        name = posixpath.basename(path) or "/"
        if path in self.dirs:
            return RemoteEntry(name=name, is_dir=True, size=0, modified=self.mtimes.get(path, 0.0))
        if path in self.files:
            return RemoteEntry(name=name, is_dir=False, size=len(self.files[path]), modified=self.mtimes.get(path, 0.0))
        raise RemoteIOError("ENOENT", path)

    # ---- gateway API ----

    async def list_dir(self, path):
        self.calls.append(("list_dir", path))
        if path not in self.dirs:
            raise RemoteIOError("ENOENT", path)
        return [self._entry(posixpath.join(path, name)) for name in self._children(path)]

    async def fetch(self, path):
        self.calls.append(("fetch", path))
        entry = self._entry(path)
        if entry.is_dir:
            raise RemoteIOError("EISDIR", path)
        return entry, self.files[path]

    async def read(self, path):
        _, data = await self.fetch(path)
        return data

    async def write(self, path, data):
        self.calls.append(("write", path))
        self._add_dirs(posixpath.dirname(path))
        self.files[path] = bytes(data)
        self.mtimes[path] = time.time()
        return len(self.files[path])

    async def append(self, path, data):
        self.calls.append(("append", path))
        self._add_dirs(posixpath.dirname(path))
        self.files[path] = self.files.get(path, b"") + bytes(data)
        self.mtimes[path] = time.time()
        return len(self.files[path])

    async def exists(self, path):
        self.calls.append(("exists", path))
        if path in self.dirs:
            return "directory"
        if path in self.files:
            return "file"
        return False

    async def stat(self, path):
        self.calls.append(("stat", path))
        return self._entry(path)

    async def mkdir(self, path, recursive=True):
        self.calls.append(("mkdir", path))
        self._add_dirs(path)

    async def delete(self, path):
        self.calls.append(("delete", path))
        if path not in self.files:
            raise RemoteIOError("ENOENT", path)
        del self.files[path]

    async def rmdir(self, path, recursive=False):
        self.calls.append(("rmdir", path))
        if path not in self.dirs:
            raise RemoteIOError("ENOENT", path)
        if self._children(path) and not recursive:
            raise RemoteIOError("ENOTEMPTY", path)
        prefix = path + "/"
        self.files = {p: v for p, v in self.files.items() if not p.startswith(prefix)}
        self.dirs = {d for d in self.dirs if d != path and not d.startswith(prefix)}

    async def rename(self, src, dst):
        self.calls.append(("rename", src, dst))
        if src not in self.files and src not in self.dirs:
            raise RemoteIOError("ENOENT", src)
        self._add_dirs(posixpath.dirname(dst))
        if src in self.files:
            self.files[dst] = self.files.pop(src)
            return
        prefix = src + "/"
        self.dirs = {dst + d[len(src):] if d == src or d.startswith(prefix) else d for d in self.dirs}
        self.files = {
            (dst + p[len(src):] if p.startswith(prefix) else p): v for p, v in self.files.items()
        }

    async def find(self, root, needle, limit):
        self.calls.append(("find", root))
        found = []

        def walk(directory):
            for name in self._children(directory):
                if len(found) >= limit:
                    return
                child = posixpath.join(directory, name)
                entry = self._entry(child)
                if needle.lower() in name.lower():
                    found.append((child, entry))
                if entry.is_dir:
                    walk(child)

        if root not in self.dirs:
            raise RemoteIOError("ENOENT", root)
        walk(root)
        return found


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def gateway(settings):
    return MemoryGateway(settings.base_path)


@pytest.fixture
def app(settings, gateway):
    return create_app(settings, gateway)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def tokens(app):
    return app.state.tokens


@pytest.fixture
def session_token(tokens):
    return tokens.issue_session_token("user")


@pytest.fixture
def auth_headers(session_token):
    return {"Authorization": f"Bearer {session_token}"}
