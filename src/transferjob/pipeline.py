from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable

from .api import ProcessingApiClient, normalize_base_url, resolve_status_url
from .app_logging import log_with_fields
from .cancel import CancelToken, JobCancelled
from .errors import TransferError, classify
from .models import Credentials, Phase, PipelineEvent, SettingsSnapshot
from .progress import PHASE_WINDOWS, poll_progress, window_progress_pair
from .remote import REMOTE_ROOT, TransferTransport, inspect_local_file
from .utils import sanitize_remote_filename

EventSink = Callable[[PipelineEvent], None]


class Pipeline:
    """One attempt of cleanup, upload, trigger and poll, run on a worker thread.

    The pipeline never touches job state. Everything it has to say goes
    through ``emit`` tagged with its ``run_id``.
    """

    def __init__(
        self,
        run_id: int,
        transport: TransferTransport,
        api: ProcessingApiClient,
        cancel: CancelToken,
        emit: EventSink,
        logger: logging.Logger,
    ) -> None:
        self.run_id = run_id
        self.transport = transport
        self.api = api
        self.cancel = cancel
        self.emit = emit
        self.logger = logger

    def _log(self, line: str) -> None:
        self.emit(PipelineEvent(self.run_id, "log", message=line))

    def _progress(self, phase: Phase, value: float) -> None:
        self.emit(PipelineEvent(self.run_id, "progress", phase=phase, progress=value))

    def run(self, path: Path, settings: SettingsSnapshot) -> None:
        try:
            result_url = self._run_phases(path, settings)
        except JobCancelled:
            log_with_fields(self.logger, logging.INFO, "pipeline_cancelled", run_id=self.run_id)
            self.emit(PipelineEvent(self.run_id, "cancelled"))
            return
        except TransferError as exc:
            if self.cancel.cancelled:
                # the session was closed under a pending call
                log_with_fields(self.logger, logging.INFO, "pipeline_cancelled", run_id=self.run_id)
                self.emit(PipelineEvent(self.run_id, "cancelled"))
                return
            log_with_fields(
                self.logger,
                logging.ERROR,
                "pipeline_failed",
                run_id=self.run_id,
                kind=exc.kind.value,
                error_type=exc.__class__.__name__,
                error=str(exc),
            )
            self.emit(PipelineEvent(self.run_id, "failed", message=classify(exc)))
            return
        except Exception as exc:
            self.logger.exception("pipeline_crashed")
            self.emit(PipelineEvent(self.run_id, "failed", message=classify(exc)))
            return

        log_with_fields(self.logger, logging.INFO, "pipeline_done", run_id=self.run_id, result_url=result_url)
        self.emit(PipelineEvent(self.run_id, "done", message=result_url))

    def _run_phases(self, path: Path, settings: SettingsSnapshot) -> str:
        credentials = self.transport.validate(settings.credentials())
        inspect_local_file(path)
        base_url = normalize_base_url(settings.api_base_url)
        remote_name = sanitize_remote_filename(path.name)

        self.cancel.raise_if_cancelled()
        self._clean(credentials)

        self.cancel.raise_if_cancelled()
        self._upload(credentials, path, remote_name)

        self.cancel.raise_if_cancelled()
        status_url = self._trigger(base_url, settings.api_token, remote_name)

        self.cancel.raise_if_cancelled()
        return self._poll(status_url, settings.api_token)

    def _clean(self, credentials: Credentials) -> None:
        self._log("Remote cleanup: starting")
        log_with_fields(self.logger, logging.INFO, "cleanup_started", run_id=self.run_id, host=credentials.host)

        def on_progress(deleted: int, total: int) -> None:
            self._progress(Phase.CLEANING, window_progress_pair(Phase.CLEANING, deleted, total))

        deleted = self.transport.cleanup_root(credentials, REMOTE_ROOT, on_progress, self.cancel)
        self._progress(Phase.CLEANING, PHASE_WINDOWS[Phase.CLEANING].hi)
        self._log(f"Remote cleanup: done ({deleted} files deleted)")
        log_with_fields(self.logger, logging.INFO, "cleanup_finished", run_id=self.run_id, deleted=deleted)

    def _upload(self, credentials: Credentials, path: Path, remote_name: str) -> None:
        self._progress(Phase.UPLOADING, PHASE_WINDOWS[Phase.UPLOADING].lo)
        self._log("Upload: starting")
        log_with_fields(
            self.logger,
            logging.INFO,
            "upload_started",
            run_id=self.run_id,
            local_path=str(path),
            remote_name=remote_name,
        )

        def on_progress(sent: int, total: int) -> None:
            self._progress(Phase.UPLOADING, window_progress_pair(Phase.UPLOADING, sent, total))

        sent = self.transport.upload_file(credentials, path, remote_name, on_progress, self.cancel)
        self._progress(Phase.UPLOADING, PHASE_WINDOWS[Phase.UPLOADING].hi)
        self._log("Upload: done")
        log_with_fields(self.logger, logging.INFO, "upload_finished", run_id=self.run_id, bytes_sent=sent)

    def _trigger(self, base_url: str, token: str, remote_name: str) -> str:
        self._progress(Phase.TRIGGERING, PHASE_WINDOWS[Phase.TRIGGERING].lo)
        self._log("API start: starting")
        start = self.api.start(base_url, token, remote_name, self.cancel)
        self._progress(Phase.TRIGGERING, PHASE_WINDOWS[Phase.TRIGGERING].hi)
        self._log(f"API start: ok (job {start.job_id})")
        status_url = resolve_status_url(base_url, start)
        log_with_fields(
            self.logger,
            logging.INFO,
            "processing_started",
            run_id=self.run_id,
            job_id=start.job_id,
            status_url=status_url,
        )
        return status_url

    def _poll(self, status_url: str, token: str) -> str:
        self._progress(Phase.POLLING, PHASE_WINDOWS[Phase.POLLING].lo)
        self._log("Status: polling")
        max_attempts = self.api.max_attempts

        def on_processing(attempt: int) -> None:
            self._progress(Phase.POLLING, poll_progress(attempt, max_attempts))

        result_url = self.api.poll_until_complete(status_url, token, self.cancel, on_processing)
        self._progress(Phase.POLLING, PHASE_WINDOWS[Phase.POLLING].hi)
        self._log("Status: done")
        return result_url
