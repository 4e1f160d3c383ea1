"""Failure taxonomy shared by the transport, API client and pipeline.

Every failure a job can end in is a :class:`TransferError`. The category
bases (validation, local I/O, connectivity, SFTP protocol, processing API)
let callers react to broad classes while the leaf classes carry the
user-facing message and any detail (filename, status code, resolver text).
Cancellation is deliberately absent: see :mod:`transferjob.cancel`.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    LOCAL_IO = "local_io"
    CONNECTIVITY = "connectivity"
    PROTOCOL = "protocol"
    API = "api"


class TransferError(RuntimeError):
    """Base exception for every classified job failure."""

    kind: ErrorKind = ErrorKind.VALIDATION
    default_message = "Transfer failed."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


def _with_detail(base: str, detail: str | None) -> str:
    if detail:
        return f"{base} {detail}"
    return base


# Validation


class ValidationError(TransferError):
    kind = ErrorKind.VALIDATION


class InvalidHostError(ValidationError):
    def __init__(self, details: str | None = None) -> None:
        self.details = details
        super().__init__(_with_detail("SFTP host is invalid.", details))


class InvalidPortError(ValidationError):
    default_message = "SFTP port is invalid."


class InvalidUsernameError(ValidationError):
    default_message = "SFTP username is invalid."


class InvalidRemotePathError(ValidationError):
    default_message = "Remote path is invalid."


class InvalidLocalFileError(ValidationError):
    default_message = "Local file is invalid."


# Local I/O


class LocalFileError(TransferError):
    kind = ErrorKind.LOCAL_IO


class LocalFileMissingError(LocalFileError):
    default_message = "Local file does not exist."


class LocalFileNotReadableError(LocalFileError):
    default_message = "Local file cannot be read."


class LocalFileSizeUnknownError(LocalFileError):
    default_message = "File size could not be determined."


# Connectivity


class ConnectivityError(TransferError):
    kind = ErrorKind.CONNECTIVITY


class DnsResolutionError(ConnectivityError):
    def __init__(self, details: str | None = None) -> None:
        self.details = details
        super().__init__(_with_detail("SFTP host could not be resolved.", details))


class ConnectError(ConnectivityError):
    default_message = "Connection to the server failed."


class HandshakeError(ConnectivityError):
    default_message = "SSH handshake failed."


class AuthenticationError(ConnectivityError):
    default_message = "SFTP login failed."


# SFTP protocol


class ProtocolError(TransferError):
    kind = ErrorKind.PROTOCOL


class SftpInitError(ProtocolError):
    default_message = "SFTP initialisation failed."


class DirectoryOpenError(ProtocolError):
    default_message = "Remote directory could not be opened."


class DirectoryReadError(ProtocolError):
    default_message = "Remote directory could not be read."


class DeleteError(ProtocolError):
    def __init__(self, filename: str) -> None:
        self.filename = filename
        super().__init__(f"Remote file could not be deleted: {filename}")


class RemoteOpenError(ProtocolError):
    def __init__(self, filename: str) -> None:
        self.filename = filename
        super().__init__(f"Remote file could not be created: {filename}")


class RemoteWriteError(ProtocolError):
    def __init__(self, filename: str | None = None) -> None:
        self.filename = filename
        message = "Upload failed. Writing to the server was not possible."
        super().__init__(_with_detail(message, filename))


class RemoteCloseError(ProtocolError):
    def __init__(self, filename: str | None = None) -> None:
        self.filename = filename
        message = "Upload finished, but the remote file could not be closed cleanly."
        super().__init__(_with_detail(message, filename))


# Processing API


class ApiError(TransferError):
    kind = ErrorKind.API


class InvalidUrlError(ApiError):
    def __init__(self, url: str, what: str = "API base URL") -> None:
        self.url = url
        super().__init__(f"{what} is invalid: {url!r}")


class InvalidResponseError(ApiError):
    default_message = "Invalid response from the processing API."


class HttpStatusError(ApiError):
    def __init__(self, status_code: int, context: str = "") -> None:
        self.status_code = status_code
        prefix = f"{context}: " if context else ""
        super().__init__(f"{prefix}HTTP error {status_code}.")


class ResponseDecodeError(ApiError):
    def __init__(self, details: str | None = None) -> None:
        self.details = details
        super().__init__(_with_detail("Response could not be decoded.", details))


class ServerReportedError(ApiError):
    def __init__(self, message: str | None = None) -> None:
        self.server_message = message
        super().__init__(message or "Processing failed on the server.")


class MissingResultUrlError(ApiError):
    default_message = "Processing finished but no result URL was returned."


class PollTimeoutError(ApiError):
    def __init__(self, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(f"Processing did not finish after {attempts} status checks.")


class ApiRequestError(ApiError):
    def __init__(self, details: str | None = None) -> None:
        self.details = details
        super().__init__(_with_detail("Request to the processing API failed.", details))


def classify(exc: BaseException) -> str:
    """Return the user-facing message for a pipeline failure."""
    if isinstance(exc, TransferError):
        return exc.message
    detail = str(exc) or exc.__class__.__name__
    return f"Unexpected error. {detail}"
