from __future__ import annotations

import logging
from typing import Any, Callable
from urllib.parse import quote, urlsplit

import requests

from .cancel import CancelToken
from .errors import (
    ApiRequestError,
    HttpStatusError,
    InvalidResponseError,
    InvalidUrlError,
    MissingResultUrlError,
    PollTimeoutError,
    ResponseDecodeError,
    ServerReportedError,
)
from .models import StartResponse, StatusResponse

TOKEN_HEADER = "X-Upload-Token"
POLL_INTERVAL_SECONDS = 1.0
POLL_MAX_ATTEMPTS = 600
STATUS_STATES = {"processing", "done", "error"}

logger = logging.getLogger("transferjob.api")


def _is_http_url(url: str) -> bool:
    parts = urlsplit(url)
    return parts.scheme in {"http", "https"} and bool(parts.netloc)


def normalize_base_url(raw: str) -> str:
    base = raw.strip().rstrip("/")
    # a base URL copied from the upload endpoint itself
    if base.endswith("/upload"):
        base = base[: -len("/upload")].rstrip("/")
    if not _is_http_url(base):
        raise InvalidUrlError(raw)
    return base


def resolve_status_url(base_url: str, start: StartResponse) -> str:
    if start.status_url and _is_http_url(start.status_url.strip()):
        return start.status_url.strip()
    base = normalize_base_url(base_url)
    return f"{base}/upload/status/{quote(start.job_id, safe='')}"


def _optional_str(payload: dict[str, Any], key: str) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ResponseDecodeError(f"`{key}` must be a string")
    return value


class ProcessingApiClient:
    def __init__(
        self,
        session: requests.Session | None = None,
        request_timeout: float = 30.0,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        max_attempts: int = POLL_MAX_ATTEMPTS,
    ) -> None:
        self.session = session or requests.Session()
        self.request_timeout = request_timeout
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts

    def _headers(self, token: str) -> dict[str, str]:
        return {TOKEN_HEADER: token, "Accept": "application/json"}

    def _send(self, method: str, url: str, token: str, context: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = self.session.request(
                method,
                url,
                headers=self._headers(token),
                timeout=self.request_timeout,
                **kwargs,
            )
        except requests.RequestException as exc:
            raise ApiRequestError(str(exc)) from exc

        status_code = getattr(response, "status_code", None)
        if not isinstance(status_code, int):
            raise InvalidResponseError()
        if not 200 <= status_code < 300:
            raise HttpStatusError(status_code, context)

        try:
            payload = response.json()
        except ValueError as exc:
            raise ResponseDecodeError("Body is not JSON.") from exc
        if not isinstance(payload, dict):
            raise ResponseDecodeError("Expected a JSON object.")
        return payload

    def start(
        self,
        base_url: str,
        token: str,
        filename: str,
        cancel: CancelToken | None = None,
    ) -> StartResponse:
        base = normalize_base_url(base_url)
        if cancel is not None:
            cancel.raise_if_cancelled()
        payload = self._send(
            "POST",
            f"{base}/upload/start",
            token,
            "API start",
            json={"filename": filename},
        )
        job_id = payload.get("jobId")
        if not isinstance(job_id, str) or not job_id.strip():
            raise ResponseDecodeError("`jobId` missing")
        return StartResponse(job_id=job_id.strip(), status_url=_optional_str(payload, "statusUrl"))

    def status(self, status_url: str, token: str, cancel: CancelToken | None = None) -> StatusResponse:
        if not _is_http_url(status_url):
            raise InvalidUrlError(status_url, what="Status URL")
        if cancel is not None:
            cancel.raise_if_cancelled()
        payload = self._send("GET", status_url, token, "Status")
        state = payload.get("state")
        if state not in STATUS_STATES:
            raise ResponseDecodeError(f"Unknown state {state!r}")
        return StatusResponse(
            state=state,
            url=_optional_str(payload, "url"),
            message=_optional_str(payload, "message"),
        )

    def poll_until_complete(
        self,
        status_url: str,
        token: str,
        cancel: CancelToken | None = None,
        on_processing: Callable[[int], None] | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> str:
        """Poll ``status_url`` until the job is done and return its result URL.

        Waits ``poll_interval`` between attempts and gives up with
        :class:`PollTimeoutError` after ``max_attempts`` `processing` answers.
        """
        cancel = cancel or CancelToken()
        sleep = sleep or cancel.sleep

        for attempt in range(1, self.max_attempts + 1):
            result = self.status(status_url, token, cancel)
            if result.state == "error":
                raise ServerReportedError(result.message)
            if result.state == "done":
                url = (result.url or "").strip()
                if not _is_http_url(url):
                    raise MissingResultUrlError()
                return url

            logger.debug("status processing (attempt %d/%d)", attempt, self.max_attempts)
            if on_processing is not None:
                on_processing(attempt)
            if attempt < self.max_attempts:
                sleep(self.poll_interval)
                cancel.raise_if_cancelled()

        raise PollTimeoutError(self.max_attempts)
