from __future__ import annotations

import json
import unittest
from typing import Any

import requests

from transferjob.api import ProcessingApiClient, normalize_base_url, resolve_status_url
from transferjob.cancel import CancelToken, JobCancelled
from transferjob.errors import (
    ApiRequestError,
    HttpStatusError,
    InvalidUrlError,
    MissingResultUrlError,
    PollTimeoutError,
    ResponseDecodeError,
    ServerReportedError,
)
from transferjob.models import StartResponse


class FakeResponse:
    def __init__(self, status_code: int, body: Any = None, text: str | None = None) -> None:
        self.status_code = status_code
        self._text = text if text is not None else json.dumps(body)

    def json(self) -> Any:
        return json.loads(self._text)


class FakeHttpSession:
    def __init__(self, responses: list[FakeResponse | Exception]) -> None:
        self.responses = list(responses)
        self.requests: list[dict[str, Any]] = []

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        self.requests.append({"method": method, "url": url, **kwargs})
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        return item


class UrlTest(unittest.TestCase):
    def test_normalize_base_url(self) -> None:
        self.assertEqual(normalize_base_url("https://api.example.com/"), "https://api.example.com")
        self.assertEqual(normalize_base_url(" https://api.example.com/upload/ "), "https://api.example.com")
        with self.assertRaises(InvalidUrlError):
            normalize_base_url("api.example.com")

    def test_status_url_resolution(self) -> None:
        base = "https://api.example.com"
        self.assertEqual(
            resolve_status_url(base, StartResponse("j1", "https://other.example.com/s/j1")),
            "https://other.example.com/s/j1",
        )
        self.assertEqual(
            resolve_status_url(base, StartResponse("j 1", "not a url")),
            "https://api.example.com/upload/status/j%201",
        )
        self.assertEqual(
            resolve_status_url(base + "/upload", StartResponse("j1")),
            "https://api.example.com/upload/status/j1",
        )


class StartTest(unittest.TestCase):
    def test_start_posts_filename_with_token(self) -> None:
        session = FakeHttpSession([FakeResponse(200, {"jobId": "abc", "statusUrl": "https://x/status/abc"})])
        client = ProcessingApiClient(session=session)  # type: ignore[arg-type]
        result = client.start("https://api.example.com/upload", "tok", "photos.zip")

        self.assertEqual(result, StartResponse("abc", "https://x/status/abc"))
        sent = session.requests[0]
        self.assertEqual(sent["method"], "POST")
        self.assertEqual(sent["url"], "https://api.example.com/upload/start")
        self.assertEqual(sent["json"], {"filename": "photos.zip"})
        self.assertEqual(sent["headers"]["X-Upload-Token"], "tok")

    def test_http_500_carries_status_code(self) -> None:
        client = ProcessingApiClient(session=FakeHttpSession([FakeResponse(500, {"error": "boom"})]))  # type: ignore[arg-type]
        with self.assertRaises(HttpStatusError) as ctx:
            client.start("https://api.example.com", "tok", "a.zip")
        self.assertEqual(ctx.exception.status_code, 500)
        self.assertIn("500", str(ctx.exception))

    def test_non_json_body_is_decode_error(self) -> None:
        client = ProcessingApiClient(session=FakeHttpSession([FakeResponse(200, text="<html>oops</html>")]))  # type: ignore[arg-type]
        with self.assertRaises(ResponseDecodeError):
            client.start("https://api.example.com", "tok", "a.zip")

    def test_missing_job_id_is_decode_error(self) -> None:
        client = ProcessingApiClient(session=FakeHttpSession([FakeResponse(201, {"statusUrl": "https://x"})]))  # type: ignore[arg-type]
        with self.assertRaises(ResponseDecodeError):
            client.start("https://api.example.com", "tok", "a.zip")

    def test_network_failure(self) -> None:
        session = FakeHttpSession([requests.ConnectionError("connection refused")])
        client = ProcessingApiClient(session=session)  # type: ignore[arg-type]
        with self.assertRaises(ApiRequestError):
            client.start("https://api.example.com", "tok", "a.zip")

    def test_cancelled_before_request(self) -> None:
        session = FakeHttpSession([FakeResponse(200, {"jobId": "abc"})])
        client = ProcessingApiClient(session=session)  # type: ignore[arg-type]
        cancel = CancelToken()
        cancel.cancel()
        with self.assertRaises(JobCancelled):
            client.start("https://api.example.com", "tok", "a.zip", cancel)
        self.assertEqual(session.requests, [])


class PollTest(unittest.TestCase):
    status_url = "https://api.example.com/upload/status/abc"

    def _client(self, responses: list[FakeResponse | Exception]) -> tuple[ProcessingApiClient, FakeHttpSession]:
        session = FakeHttpSession(responses)
        return ProcessingApiClient(session=session), session  # type: ignore[arg-type]

    def test_processing_then_done(self) -> None:
        client, session = self._client(
            [
                FakeResponse(200, {"state": "processing"}),
                FakeResponse(200, {"state": "processing"}),
                FakeResponse(200, {"state": "done", "url": "https://cdn.example.com/abc"}),
            ]
        )
        attempts: list[int] = []
        sleeps: list[float] = []
        url = client.poll_until_complete(self.status_url, "tok", None, attempts.append, sleeps.append)

        self.assertEqual(url, "https://cdn.example.com/abc")
        self.assertEqual(attempts, [1, 2])
        self.assertEqual(sleeps, [1.0, 1.0])
        self.assertEqual(len(session.requests), 3)
        self.assertTrue(all(r["method"] == "GET" for r in session.requests))
        self.assertEqual(session.requests[0]["headers"]["X-Upload-Token"], "tok")

    def test_server_error_stops_immediately(self) -> None:
        client, session = self._client(
            [
                FakeResponse(200, {"state": "error", "message": "disk full"}),
                FakeResponse(200, {"state": "done", "url": "https://never"}),
            ]
        )
        sleeps: list[float] = []
        with self.assertRaises(ServerReportedError) as ctx:
            client.poll_until_complete(self.status_url, "tok", sleep=sleeps.append)
        self.assertEqual(str(ctx.exception), "disk full")
        self.assertEqual(len(session.requests), 1)
        self.assertEqual(sleeps, [])

    def test_done_without_url(self) -> None:
        client, _ = self._client([FakeResponse(200, {"state": "done"})])
        with self.assertRaises(MissingResultUrlError):
            client.poll_until_complete(self.status_url, "tok", sleep=lambda _: None)

    def test_unknown_state_is_decode_error(self) -> None:
        client, _ = self._client([FakeResponse(200, {"state": "queued"})])
        with self.assertRaises(ResponseDecodeError):
            client.poll_until_complete(self.status_url, "tok", sleep=lambda _: None)

    def test_times_out_after_exactly_max_attempts(self) -> None:
        client, session = self._client([FakeResponse(200, {"state": "processing"})])
        sleeps: list[float] = []
        attempts: list[int] = []
        with self.assertRaises(PollTimeoutError) as ctx:
            client.poll_until_complete(self.status_url, "tok", None, attempts.append, sleeps.append)

        self.assertEqual(ctx.exception.attempts, 600)
        self.assertEqual(len(session.requests), 600)
        self.assertEqual(len(attempts), 600)
        self.assertEqual(len(sleeps), 599)
        self.assertTrue(all(seconds == 1.0 for seconds in sleeps))

    def test_cancel_during_wait(self) -> None:
        client, session = self._client([FakeResponse(200, {"state": "processing"})])
        cancel = CancelToken()
        with self.assertRaises(JobCancelled):
            client.poll_until_complete(self.status_url, "tok", cancel, sleep=lambda _: cancel.cancel())
        self.assertEqual(len(session.requests), 1)


if __name__ == "__main__":
    unittest.main()
