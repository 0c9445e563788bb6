import signal
import threading
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import uuid4

from .browser import BrowserSession, ProfileAuthGate, auth_ready
from .config import (
    DEFAULT_PRESET,
    DEFAULT_URL_PATTERN,
    DEFAULT_WAIT_SECONDS,
    HEADLESS,
    INTER_TASK_DELAY_MS,
    OUT_DIR,
    PROFILE_DIR,
)
from .dataset import init_run_dir, save_result, write_summary
from .errors import ScreenshotError, URLProcessingError, handle_error
from .protocol import capture_task
from .store import ResultStore
from .types import ActionSequence, BatchSummary, CaptureResult, CaptureTask, ProgressSink, Rasterizer


class QueueStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"


@dataclass
class QueueState:
    tasks: List[CaptureTask] = field(default_factory=list)
    current_index: int = 0
    # Set from any thread; only observed at checkpoints.
    paused: threading.Event = field(default_factory=threading.Event)
    in_progress: bool = False
    is_retry: bool = False
    active_seconds: float = 0.0
    # success + failure count when a retry started
    attempted_before: int = 0


def _print_progress(message: str) -> None:
    print(f"[Queue] {message}")


def build_tasks(
    urls: Iterable[str],
    preset: str = DEFAULT_PRESET,
    full_page: bool = False,
    sequences: Sequence[ActionSequence] = (),
) -> List[CaptureTask]:
    unique = list(dict.fromkeys(u.strip() for u in urls if u and u.strip()))
    return [
        CaptureTask(url=url, index=i, preset=preset, full_page=full_page, sequences=tuple(sequences))
        for i, url in enumerate(unique)
    ]


class CaptureQueue:
    """Walks capture tasks one at a time with pause/resume and retry of failures.

    The queue owns the ResultStore and is the only writer to it. Pause is a
    flag honoured at checkpoints: before a task, after a task's outcome is
    committed, and before the inter-task delay. A task already in flight
    always runs to completion, so no task is ever repeated or skipped.
    """

    def __init__(
        self,
        page,
        auth_gate=None,
        store: Optional[ResultStore] = None,
        rasterizer: Optional[Rasterizer] = None,
        progress: Optional[ProgressSink] = None,
        notify: Optional[Callable[[str], None]] = None,
        on_result: Optional[Callable[[CaptureResult], None]] = None,
        wait_seconds: float = DEFAULT_WAIT_SECONDS,
        url_pattern: str = DEFAULT_URL_PATTERN,
    ):
        self.page = page
        self.auth_gate = auth_gate
        self.store = store or ResultStore()
        self.rasterizer = rasterizer
        self.progress = progress or _print_progress
        self.notify = notify or _print_progress
        self.on_result = on_result
        self.wait_seconds = wait_seconds
        self.url_pattern = url_pattern
        self.state = QueueState()
        self.status = QueueStatus.IDLE
        self._tasks_by_url: Dict[str, CaptureTask] = {}

    # --- Public transitions ---

    def start(
        self,
        urls: Iterable[str],
        preset: str = DEFAULT_PRESET,
        full_page: bool = False,
        sequences: Sequence[ActionSequence] = (),
    ) -> Optional[BatchSummary]:
        if self.state.in_progress:
            self.notify("Capture is already in progress.")
            return None
        if not auth_ready(self.auth_gate):
            self.notify("Authentication is required before capturing. Log in or continue without login.")
            return None

        try:
            if isinstance(urls, str):
                raise URLProcessingError("Expected a list of page identifiers, got a string", urls)
            tasks = build_tasks(urls, preset, full_page, sequences)
            if not tasks:
                raise URLProcessingError("Please select at least one page or enter a URL to capture.", "No URLs selected/entered")
        except URLProcessingError as e:
            handle_error(e, notify=self.notify)
            self.status = QueueStatus.IDLE
            return None

        self.store.reset()
        self._tasks_by_url = {t.url: t for t in tasks}
        self.state = QueueState(tasks=tasks)
        print(f"[Queue] Starting capture of {len(tasks)} pages (preset={preset}, full_page={full_page})")
        return self._process_queue()

    def pause(self) -> None:
        self.state.paused.set()
        if self.state.in_progress:
            self.notify("Pause requested; stopping at the next checkpoint.")
        else:
            self.status = QueueStatus.PAUSED if self._has_pending() else self.status

    def resume(self) -> Optional[BatchSummary]:
        self.state.paused.clear()
        if self.state.in_progress:
            print("[Queue] Resume requested but queue is already processing.")
            return None
        if not self._has_pending():
            return None
        self.notify(f"Capture resumed from URL {self.state.current_index + 1} of {len(self.state.tasks)}")
        return self._process_queue()

    def toggle_pause(self) -> Optional[BatchSummary]:
        if self.state.paused.is_set():
            return self.resume()
        self.pause()
        return None

    def retry_failed(self) -> Optional[BatchSummary]:
        if self.state.in_progress:
            self.notify("Retry is already in progress.")
            return None
        if not auth_ready(self.auth_gate):
            self.notify("Cannot retry: Authentication is required or login failed.")
            return None
        if not self.state.is_retry and self._has_pending():
            # Retrying now would drop the paused batch's unprocessed pages.
            self.notify("Resume or finish the paused capture before retrying failed URLs.")
            return None

        # Pages left unprocessed by a paused retry are still owed an attempt.
        pending = []
        if self.state.is_retry and self._has_pending():
            pending = [t.url for t in self.state.tasks[self.state.current_index:]]
        if not self.store.failed_urls and not pending:
            self.notify("No failed URLs to retry.")
            return None

        attempted = self.store.success_count + self.store.failure_count + len(pending)
        urls = list(dict.fromkeys(self.store.take_failed() + pending))
        tasks = []
        for i, url in enumerate(urls):
            original = self._tasks_by_url.get(url) or CaptureTask(url=url, index=i)
            tasks.append(replace(original, is_retry=True))

        self.state = QueueState(tasks=tasks, is_retry=True, attempted_before=attempted)
        self.notify(f"Retrying {len(tasks)} failed URLs...")
        return self._process_queue()

    # --- Loop ---

    def _has_pending(self) -> bool:
        return self.state.current_index < len(self.state.tasks)

    def _checkpoint(self, stage: str) -> bool:
        if self.state.paused.is_set():
            print(f"[Queue] Pause honoured at checkpoint: {stage}")
            return True
        return False

    def _capture(self, task: CaptureTask) -> List[CaptureResult]:
        return capture_task(
            self.page,
            task,
            wait_seconds=self.wait_seconds,
            url_pattern=self.url_pattern,
            rasterizer=self.rasterizer,
            progress=self.progress,
            checkpoint=self.state.paused.is_set,
        )

    def _record_success(self, task: CaptureTask, results: List[CaptureResult]) -> None:
        self.store.add_result(task.url, results[0])
        if self.on_result:
            for result in results:
                self.on_result(result)
        self.progress(f"Captured {task.url} ({results[0].width}x{results[0].height}) in {results[0].elapsed:.2f}s")

    def _record_failure(self, task: CaptureTask, reason: str) -> None:
        self.store.add_failed(task.url)
        prefix = "Retry Failed" if task.is_retry else "Failed"
        self.notify(f"{prefix}: {task.url} ({reason})")

    def _process_queue(self) -> BatchSummary:
        st = self.state
        if st.in_progress:
            raise RuntimeError("Capture queue is already processing")
        total = len(st.tasks)
        st.in_progress = True
        self.status = QueueStatus.RUNNING
        loop_start = time.perf_counter()

        try:
            while st.current_index < total:
                if self._checkpoint("before task"):
                    break
                task = st.tasks[st.current_index]
                label = "Retrying" if st.is_retry else "Processing"
                self.progress(f"{label} {st.current_index + 1} of {total}: {task.url}")

                try:
                    results = self._capture(task)
                except ScreenshotError as e:
                    print(f"[Queue] Error capturing {task.url}: {e.message}")
                    self._record_failure(task, e.reason or e.message)
                    stage = "after error handling"
                except Exception as e:
                    print(f"[Queue] Unexpected error processing {task.url}: {e!r}")
                    self._record_failure(task, "Unexpected error")
                    stage = "after error handling"
                else:
                    self._record_success(task, results)
                    stage = "after rasterize"

                st.current_index += 1
                if self._checkpoint(stage):
                    break
                if st.current_index < total:
                    if self._checkpoint("before inter-task delay"):
                        break
                    self.page.wait_for_timeout(INTER_TASK_DELAY_MS)
        finally:
            st.in_progress = False
            st.active_seconds += time.perf_counter() - loop_start

        summary = self._summarize()
        if st.current_index >= total:
            self.status = QueueStatus.COMPLETED
            self.progress(self._completion_message(summary))
        else:
            self.status = QueueStatus.PAUSED
            self.notify(f"Capture paused after processing {st.current_index} of {total} URLs")
        return summary

    def _summarize(self) -> BatchSummary:
        st = self.state
        processed = st.tasks[: st.current_index]
        recovered = sum(1 for t in processed if self.store.get(t.url) is not None) if st.is_retry else 0
        return BatchSummary(
            total=st.attempted_before if st.is_retry else len(st.tasks),
            succeeded=self.store.success_count,
            failed=self.store.failure_count,
            elapsed=round(st.active_seconds, 2),
            paused=st.current_index < len(st.tasks),
            processed=st.current_index,
            is_retry=st.is_retry,
            recovered=recovered,
        )

    def _completion_message(self, summary: BatchSummary) -> str:
        if summary.is_retry:
            return (
                f"Retry complete: recovered {summary.recovered} of {len(self.state.tasks)} "
                f"(Success: {summary.succeeded}, Failed: {summary.failed}, "
                f"Total attempted: {summary.total}, Time: {summary.elapsed:.2f}s)"
            )
        return (
            f"Completed processing {summary.total} URLs (Success: {summary.succeeded}, "
            f"Failed: {summary.failed}, Time: {summary.elapsed:.2f}s)"
        )


# --- Runner ---

def _drive(queue: CaptureQueue, summary: Optional[BatchSummary], interactive: bool) -> Optional[BatchSummary]:
    """Keep offering to resume while the queue is paused."""
    while summary is not None and summary.paused and interactive:
        answer = input("[Queue] Capture paused. Resume? [Y/n] ").strip().lower()
        if answer in ("n", "no"):
            break
        summary = queue.resume()
    return summary


def run(
    urls: List[str],
    sequences: Sequence[ActionSequence] = (),
    preset: str = DEFAULT_PRESET,
    full_page: bool = False,
    wait_seconds: float = DEFAULT_WAIT_SECONDS,
    url_pattern: str = DEFAULT_URL_PATTERN,
    headless: bool = HEADLESS,
    require_login: bool = False,
    auto_retry: bool = False,
    interactive: bool = True,
    out_dir: Path = OUT_DIR,
) -> Tuple[CaptureQueue, Optional[BatchSummary], Path]:
    run_id = str(uuid4())
    run_dir = init_run_dir(out_dir, run_id, {
        "pages": len(urls),
        "preset": preset,
        "full_page": full_page,
        "wait_seconds": wait_seconds,
        "sequences": [s.name or f"Step {i + 1}" for i, s in enumerate(sequences)],
    })
    gate = ProfileAuthGate(PROFILE_DIR, require_login=require_login)

    with BrowserSession(PROFILE_DIR, headless=headless) as session:
        queue = CaptureQueue(
            session.page,
            auth_gate=gate,
            on_result=lambda result: save_result(run_dir, result),
            wait_seconds=wait_seconds,
            url_pattern=url_pattern,
        )
        # Ctrl+C pauses at the next checkpoint instead of killing the browser mid-capture.
        previous_handler = signal.signal(signal.SIGINT, lambda signum, frame: queue.pause())
        try:
            summary = _drive(queue, queue.start(urls, preset, full_page, sequences), interactive)
            if auto_retry and summary is not None and not summary.paused and queue.store.failed_urls:
                summary = _drive(queue, queue.retry_failed(), interactive)
        finally:
            signal.signal(signal.SIGINT, previous_handler)

    write_summary(run_dir, queue.store, summary)
    return queue, summary, run_dir


def print_summary(queue: CaptureQueue, summary: Optional[BatchSummary], run_dir: Path) -> None:
    print("\n=== Capture result ===")
    print("Run dir:", run_dir)
    print("Status:", queue.status.value)
    if summary is None:
        print("Capture did not run.")
        return
    print(f"Pages: {summary.total} | Success: {summary.succeeded} | Failed: {summary.failed} | Time: {summary.elapsed:.2f}s")
    for result in queue.store.ordered_results():
        print(f"  + {result.url} -> {result.filename} ({result.width}x{result.height}, {result.elapsed:.2f}s)")
    for url in queue.store.failed_urls:
        print(f"  - {url}")
    if summary.paused:
        print(f"Paused after {summary.processed} of {len(queue.state.tasks)} pages.")
