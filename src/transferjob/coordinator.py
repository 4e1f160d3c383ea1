from __future__ import annotations

import logging
import queue
import threading
import time
from pathlib import Path

from .api import ProcessingApiClient
from .app_logging import LOGGER_NAME, log_with_fields
from .cancel import CancelToken
from .models import (
    Done,
    Failed,
    Idle,
    JobState,
    Phase,
    PipelineEvent,
    Ready,
    Running,
    SettingsSnapshot,
)
from .pipeline import Pipeline
from .remote import TransferTransport


class JobCoordinator:
    """Owns the single transfer job and is the only writer of its state.

    Pipelines run on worker threads and report through a queue. The owning
    thread applies those reports in :meth:`process_events`; reports from a
    run that has since been cancelled or replaced are dropped.
    """

    def __init__(
        self,
        transport: TransferTransport,
        api: ProcessingApiClient,
        logger: logging.Logger | None = None,
    ) -> None:
        self.transport = transport
        self.api = api
        self.logger = logger or logging.getLogger(LOGGER_NAME)

        self.state: JobState = Idle()
        self.status_log: list[str] = []
        self.last_file: Path | None = None
        self.last_settings: SettingsSnapshot | None = None

        self._events: queue.Queue[PipelineEvent] = queue.Queue()
        self._run_id = 0
        self._cancel: CancelToken | None = None
        self._worker: threading.Thread | None = None

    @property
    def is_busy(self) -> bool:
        return isinstance(self.state, Running)

    @property
    def run_id(self) -> int:
        return self._run_id

    def push_status(self, line: str) -> None:
        self.status_log.append(line)

    def accept_file(self, path: str | Path) -> bool:
        if self.is_busy:
            self.push_status("File ignored. A job is already running.")
            return False
        file_path = Path(path)
        self.last_file = file_path
        self.state = Ready(file_path)
        self.push_status(f"File selected: {file_path.name}")
        return True

    def start(self, path: str | Path, settings: SettingsSnapshot) -> bool:
        if self.is_busy:
            self.push_status("Start ignored. A job is already running.")
            return False

        self._stop_active_run()

        file_path = Path(path)
        filename = file_path.name
        self.last_file = file_path
        self.last_settings = settings

        self._run_id += 1
        run_id = self._run_id
        cancel = CancelToken()
        self._cancel = cancel

        self.push_status(f"Start: {filename}")
        self.state = Running(Phase.CLEANING, 0.0, filename)
        log_with_fields(
            self.logger,
            logging.INFO,
            "job_started",
            run_id=run_id,
            filename=filename,
            host=settings.host,
            port=settings.port,
        )

        pipeline = Pipeline(run_id, self.transport, self.api, cancel, self._events.put, self.logger)
        self._worker = threading.Thread(
            target=pipeline.run,
            args=(file_path, settings),
            name=f"transfer-run-{run_id}",
            daemon=True,
        )
        self._worker.start()
        return True

    def cancel(self) -> None:
        if not self._stop_active_run():
            return
        self.state = Idle()
        self.push_status("Cancelled")
        log_with_fields(self.logger, logging.INFO, "job_cancelled", run_id=self._run_id)

    def retry(self, settings: SettingsSnapshot) -> bool:
        if self.is_busy:
            self.push_status("Start ignored. A job is already running.")
            return False
        if self.last_file is None:
            self.push_status("Retry not possible. No file available.")
            self.state = Idle()
            return False
        return self.start(self.last_file, settings)

    def reset_to_idle(self) -> None:
        self.cancel()
        self.state = Idle()
        self.push_status("Reset")

    def _stop_active_run(self) -> bool:
        """Cancel the current run's token and invalidate its late events."""
        if self._cancel is None:
            return False
        self._cancel.cancel()
        self._cancel = None
        was_running = self.is_busy
        # any event still queued for the old run id is now stale
        self._run_id += 1
        return was_running

    def process_events(self, block: bool = False, timeout: float | None = None) -> int:
        applied = 0
        while True:
            try:
                if block and applied == 0:
                    event = self._events.get(timeout=timeout)
                else:
                    event = self._events.get_nowait()
            except queue.Empty:
                return applied
            if self._apply(event):
                applied += 1

    def _apply(self, event: PipelineEvent) -> bool:
        current = self.state
        if event.run_id != self._run_id or not isinstance(current, Running):
            return False

        if event.kind == "log":
            self.push_status(event.message or "")
        elif event.kind == "progress":
            phase = event.phase if event.phase is not None else current.phase
            if phase < current.phase:
                phase = current.phase
            progress = max(current.progress, min(1.0, event.progress or 0.0))
            self.state = Running(phase, progress, current.filename)
        elif event.kind == "done":
            url = event.message or ""
            self.state = Done(url)
            self.push_status(f"Done: {url}")
            self._cancel = None
        elif event.kind == "failed":
            message = event.message or "Unexpected error."
            self.state = Failed(message)
            self.push_status(f"Error: {message}")
            self._cancel = None
        elif event.kind == "cancelled":
            self.state = Idle()
            self.push_status("Cancelled")
            self._cancel = None
        else:
            raise ValueError(f"Unknown pipeline event: {event.kind}")
        return True

    def wait_until_settled(self, timeout: float | None = None, tick: float = 0.1) -> JobState:
        deadline = None if timeout is None else time.monotonic() + timeout
        while self.is_busy:
            if deadline is not None and time.monotonic() >= deadline:
                break
            self.process_events(block=True, timeout=tick)
        return self.state

    def join(self, timeout: float | None = None) -> None:
        if self._worker is not None:
            self._worker.join(timeout)
