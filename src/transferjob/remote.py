from __future__ import annotations

import logging
import os
import socket
import stat
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Callable, Iterator, Protocol

import paramiko

from .cancel import CancelToken
from .errors import (
    AuthenticationError,
    ConnectError,
    DeleteError,
    DirectoryOpenError,
    DirectoryReadError,
    DnsResolutionError,
    HandshakeError,
    InvalidLocalFileError,
    InvalidPortError,
    InvalidRemotePathError,
    InvalidUsernameError,
    LocalFileMissingError,
    LocalFileNotReadableError,
    LocalFileSizeUnknownError,
    RemoteCloseError,
    RemoteOpenError,
    RemoteWriteError,
    SftpInitError,
)
from .models import Credentials, RemoteFileEntry
from .utils import normalize_host, normalize_simple, sanitize_remote_filename

CHUNK_SIZE = 1024 * 1024
REMOTE_ROOT = "/"

ProgressCallback = Callable[[int, int], None]

logger = logging.getLogger("transferjob.remote")


class RemoteSession(Protocol):
    def list_dir(self, path: str) -> list[RemoteFileEntry]: ...

    def remove(self, path: str) -> None: ...

    def open_for_write(self, path: str) -> object: ...

    def write(self, handle: object, data: bytes) -> int: ...

    def close_file(self, handle: object) -> None: ...

    def abort_file(self, handle: object) -> None: ...

    def close(self) -> None: ...


SessionFactory = Callable[[Credentials, CancelToken, float], RemoteSession]


def _basename(path: str) -> str:
    return path.rstrip("/").rsplit("/", 1)[-1]


class SftpSession:
    """One SSH transport plus its SFTP channel, opened for a single operation."""

    def __init__(
        self,
        sock: socket.socket,
        transport: paramiko.Transport,
        sftp: paramiko.SFTPClient,
    ) -> None:
        self.sock = sock
        self.transport = transport
        self.sftp = sftp
        self._closed = False
        self._close_lock = threading.Lock()

    def list_dir(self, path: str) -> list[RemoteFileEntry]:
        try:
            attrs = self.sftp.stat(path)
        except (OSError, EOFError, paramiko.SSHException) as exc:
            raise DirectoryOpenError() from exc
        if attrs.st_mode is not None and not stat.S_ISDIR(attrs.st_mode):
            raise DirectoryOpenError()

        try:
            listing = self.sftp.listdir_attr(path)
        except (OSError, EOFError, paramiko.SSHException) as exc:
            raise DirectoryReadError() from exc

        entries: list[RemoteFileEntry] = []
        for item in listing:
            # no permission bits: assume a directory so it is never deleted
            is_dir = stat.S_ISDIR(item.st_mode) if item.st_mode is not None else True
            entries.append(RemoteFileEntry(name=item.filename, is_dir=is_dir))
        return entries

    def remove(self, path: str) -> None:
        try:
            self.sftp.remove(path)
        except (OSError, EOFError, paramiko.SSHException) as exc:
            raise DeleteError(_basename(path)) from exc

    def open_for_write(self, path: str) -> paramiko.SFTPFile:
        try:
            handle = self.sftp.open(path, "wb")
        except (OSError, EOFError, paramiko.SSHException) as exc:
            raise RemoteOpenError(_basename(path)) from exc
        return handle

    def write(self, handle: paramiko.SFTPFile, data: bytes) -> int:
        before = handle.tell()
        try:
            handle.write(data)
        except (OSError, EOFError, paramiko.SSHException) as exc:
            raise RemoteWriteError() from exc
        return handle.tell() - before

    def close_file(self, handle: paramiko.SFTPFile) -> None:
        try:
            handle.close()
        except (OSError, EOFError, paramiko.SSHException) as exc:
            raise RemoteCloseError() from exc

    def abort_file(self, handle: paramiko.SFTPFile) -> None:
        try:
            handle.close()
        except (OSError, EOFError, paramiko.SSHException) as exc:
            logger.debug("remote file close after failure: %s", exc)

    def close(self) -> None:
        # called from both the cancelling thread and the worker
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        for resource in (self.sftp, self.transport, self.sock):
            try:
                resource.close()
            except (OSError, EOFError, paramiko.SSHException) as exc:
                logger.debug("session close: %s", exc)


def resolve_addresses(host: str, port: int) -> list[tuple]:
    try:
        return socket.getaddrinfo(host, port, socket.AF_UNSPEC, socket.SOCK_STREAM, socket.IPPROTO_TCP)
    except socket.gaierror as exc:
        raise DnsResolutionError(exc.strerror or None) from exc


def connect_first(addresses: list[tuple], cancel: CancelToken, timeout: float) -> socket.socket:
    for family, socktype, proto, _canonname, sockaddr in addresses:
        cancel.raise_if_cancelled()
        try:
            sock = socket.socket(family, socktype, proto)
        except OSError:
            continue
        try:
            sock.settimeout(timeout)
            sock.connect(sockaddr)
        except OSError as exc:
            logger.debug("connect to %s failed: %s", sockaddr, exc)
            sock.close()
            continue
        sock.settimeout(None)
        return sock
    raise ConnectError()


def open_sftp_session(credentials: Credentials, cancel: CancelToken, timeout: float) -> SftpSession:
    """Resolve, connect, handshake, authenticate and start SFTP, in that order."""
    cancel.raise_if_cancelled()
    addresses = resolve_addresses(credentials.host, credentials.port)
    sock = connect_first(addresses, cancel, timeout)

    transport: paramiko.Transport | None = None
    try:
        cancel.raise_if_cancelled()
        transport = paramiko.Transport(sock)
        try:
            transport.start_client(timeout=timeout)
        except (paramiko.SSHException, EOFError, OSError) as exc:
            raise HandshakeError() from exc

        cancel.raise_if_cancelled()
        try:
            transport.auth_password(credentials.username, credentials.password)
        except (paramiko.SSHException, EOFError, OSError) as exc:
            raise AuthenticationError() from exc
        if not transport.is_authenticated():
            raise AuthenticationError()

        cancel.raise_if_cancelled()
        try:
            sftp = paramiko.SFTPClient.from_transport(transport)
        except (paramiko.SSHException, EOFError, OSError) as exc:
            raise SftpInitError() from exc
        if sftp is None:
            raise SftpInitError()
    except BaseException:
        if transport is not None:
            transport.close()
        sock.close()
        raise
    return SftpSession(sock, transport, sftp)


def inspect_local_file(path: Path) -> int:
    """Return the size of a readable local file, failing before any network use."""
    if not str(path).strip():
        raise InvalidLocalFileError()
    if not path.exists():
        raise LocalFileMissingError()
    if not path.is_file():
        raise InvalidLocalFileError()
    try:
        size = path.stat().st_size
    except OSError as exc:
        raise LocalFileSizeUnknownError() from exc
    if not os.access(path, os.R_OK):
        raise LocalFileNotReadableError()
    return size


class TransferTransport:
    def __init__(
        self,
        connect_timeout: float = 15.0,
        session_factory: SessionFactory = open_sftp_session,
    ) -> None:
        self.connect_timeout = connect_timeout
        self.session_factory = session_factory

    def validate(self, credentials: Credentials) -> Credentials:
        host = normalize_host(credentials.host)
        username = normalize_simple(credentials.username)
        if not 0 < credentials.port < 65536:
            raise InvalidPortError()
        if not username:
            raise InvalidUsernameError()
        return Credentials(host=host, port=credentials.port, username=username, password=credentials.password)

    @contextmanager
    def _session(self, credentials: Credentials, cancel: CancelToken) -> Iterator[RemoteSession]:
        session = self.session_factory(credentials, cancel, self.connect_timeout)
        # closing from the cancelling thread unblocks a pending round trip
        cancel.on_cancel(session.close)
        try:
            yield session
        finally:
            cancel.discard_callback(session.close)
            session.close()

    def test_connection(self, credentials: Credentials, cancel: CancelToken | None = None) -> None:
        cancel = cancel or CancelToken()
        resolved = self.validate(credentials)
        with self._session(resolved, cancel):
            cancel.raise_if_cancelled()

    def cleanup_root(
        self,
        credentials: Credentials,
        remote_path: str = REMOTE_ROOT,
        on_progress: ProgressCallback | None = None,
        cancel: CancelToken | None = None,
    ) -> int:
        cancel = cancel or CancelToken()
        resolved = self.validate(credentials)
        if remote_path != REMOTE_ROOT:
            raise InvalidRemotePathError()

        with self._session(resolved, cancel) as session:
            cancel.raise_if_cancelled()
            entries = session.list_dir(remote_path)
            files = [
                entry.name
                for entry in entries
                if entry.name not in {".", ".."} and not entry.is_dir
            ]

            total = len(files)
            deleted = 0
            if on_progress is not None:
                on_progress(deleted, total)
            for name in files:
                cancel.raise_if_cancelled()
                session.remove(f"{REMOTE_ROOT}{name}")
                deleted += 1
                if on_progress is not None:
                    on_progress(deleted, total)
        return deleted

    def upload_file(
        self,
        credentials: Credentials,
        local_path: Path,
        remote_name: str,
        on_progress: ProgressCallback | None = None,
        cancel: CancelToken | None = None,
    ) -> int:
        cancel = cancel or CancelToken()
        resolved = self.validate(credentials)
        total = inspect_local_file(local_path)
        safe_name = sanitize_remote_filename(remote_name)
        remote_path = f"{REMOTE_ROOT}{safe_name}"

        try:
            local: BinaryIO = local_path.open("rb")
        except OSError as exc:
            raise LocalFileNotReadableError() from exc

        with local, self._session(resolved, cancel) as session:
            cancel.raise_if_cancelled()
            handle = session.open_for_write(remote_path)
            sent = 0
            try:
                while True:
                    cancel.raise_if_cancelled()
                    try:
                        chunk = local.read(CHUNK_SIZE)
                    except OSError as exc:
                        raise LocalFileNotReadableError() from exc
                    if not chunk:
                        break
                    try:
                        written = session.write(handle, chunk)
                    except RemoteWriteError as exc:
                        raise RemoteWriteError(safe_name) from exc
                    if written < len(chunk):
                        raise RemoteWriteError(safe_name)
                    sent += written
                    if on_progress is not None:
                        on_progress(sent, total)
            except BaseException:
                session.abort_file(handle)
                raise
            try:
                session.close_file(handle)
            except RemoteCloseError as exc:
                raise RemoteCloseError(safe_name) from exc
        return sent
