"""
Per-page capture protocol.

A capture is a small LangGraph state machine:

    load_page -> settle -> perform_actions -> rasterize -> finalize

The page is sized to the preset before it loads, so rendering, scripted
actions and the full-page height measurement all see the preset layout. Any
node may fail, which routes to `capture_failed`. A pause requested while a
capture is in flight is only noted by the rasterize node: the capture runs to
the end and the queue halts once the result is committed. Whatever the
outcome, the page is reset to about:blank before control returns to the
caller.
"""

import functools
import math
import time
from typing import Callable, List, Optional, Sequence, Tuple

from langgraph.graph import END, StateGraph
from playwright.sync_api import Error as PlaywrightError

from .config import (
    DEFAULT_PRESET,
    DEFAULT_WAIT_SECONDS,
    ERROR_PAGE_SELECTOR,
    MAX_WAIT_MS,
    MESSAGE_SELECTOR,
    MIN_WAIT_MS,
    MOUNT_ERROR_MARKERS,
    NAVIGATION_TIMEOUT_MS,
    PRESETS,
)
from .errors import ActionError, ScreenshotError
from .types import (
    ActionStep,
    CaptureResult,
    CaptureState,
    CaptureTask,
    ProgressSink,
    Rasterizer,
    SequenceOutcome,
)
from ..dom.actions import perform_actions as run_action_steps
from ..utils import imaging
from ..utils.naming import build_capture_filename, generate_filename, get_timestamp

MOUNT_ERROR_MESSAGE = "No view configured for center mount error detected"


def _print_progress(message: str) -> None:
    print(f"[Capture] {message}")


def preset_size(name: str) -> Tuple[int, int]:
    preset = PRESETS.get(name) or PRESETS[DEFAULT_PRESET]
    return preset["width"], preset["height"]


def clamp_wait_ms(seconds: float) -> int:
    return max(MIN_WAIT_MS, min(MAX_WAIT_MS, int(seconds * 1000)))


def is_mount_error(error: BaseException) -> bool:
    text = str(getattr(error, "message", "") or error)
    return "No view configured" in text or "Mount definition" in text


def _has_marker(text: str) -> bool:
    return any(marker in (text or "") for marker in MOUNT_ERROR_MARKERS)


def detect_page_error(page, console_errors: List[str]) -> Optional[str]:
    """Return a description of a known application error shown by the page, if any."""
    if console_errors:
        return f"{MOUNT_ERROR_MESSAGE} in console"
    try:
        for text in page.locator(MESSAGE_SELECTOR).all_text_contents():
            if _has_marker(text):
                return f"{MOUNT_ERROR_MESSAGE} in DOM"
        if page.locator(ERROR_PAGE_SELECTOR).count() > 0:
            return "Page not found or error page detected"
    except PlaywrightError as e:
        print(f"[Capture] Error checking for page errors: {e}")
    return None


def reset_surface(page) -> None:
    try:
        page.goto("about:blank")
    except PlaywrightError as e:
        print(f"[Capture] Failed to reset page to about:blank: {e}")


# --- Graph nodes ---

def _node(stage: str):
    """Turn exceptions raised by a node into a recorded ScreenshotError on the state."""

    def wrap(fn: Callable[[CaptureState], CaptureState]):
        @functools.wraps(fn)
        def node(state: CaptureState) -> CaptureState:
            url = state["task"].url
            try:
                return fn(state)
            except ScreenshotError as e:
                state["error"] = e
            except ActionError as e:
                state["error"] = ScreenshotError(
                    f"Failed to capture screenshot for {url}: {e.message}", url, e.message)
            except Exception as e:
                state["error"] = ScreenshotError(
                    f"Failed to capture screenshot for {url} ({stage}): {e}", url, str(e))
            return state

        return node

    return wrap


@_node("load")
def load_page(state: CaptureState) -> CaptureState:
    task = state["task"]
    page = state["page"]
    width, height = preset_size(task.preset)
    state["progress"](f"Loading {task.url}")
    try:
        page.set_viewport_size({"width": width, "height": height})
        page.goto(task.url, wait_until="load", timeout=NAVIGATION_TIMEOUT_MS)
    except PlaywrightError as e:
        raise ScreenshotError(f"Failed to load {task.url}: {e}", task.url, str(e)) from e
    state["current_url"] = page.url or task.url
    return state


@_node("settle")
def settle(state: CaptureState) -> CaptureState:
    """Give client-rendered apps time to draw, watching for known error screens."""
    task = state["task"]
    page = state["page"]
    remaining = clamp_wait_ms(state["wait_seconds"])
    while remaining > 0:
        state["progress"](
            f"Waiting for {task.url} to render... ({math.ceil(remaining / 1000)}s remaining)")
        tick = min(1000, remaining)
        page.wait_for_timeout(tick)
        remaining -= tick
        problem = detect_page_error(page, state["console_errors"])
        if problem:
            raise ScreenshotError(
                f"Failed to capture screenshot: {problem}", task.url, problem)
    return state


@_node("actions")
def perform_actions(state: CaptureState) -> CaptureState:
    steps = state["steps"]
    if not steps:
        return state
    task = state["task"]
    run_action_steps(state["page"], steps, progress=state["progress"])
    if state["console_errors"]:
        reason = "Mount error detected after actions"
        raise ScreenshotError(
            f"Failed to capture screenshot: {MOUNT_ERROR_MESSAGE} after actions", task.url, reason)
    # Actions may navigate within the app.
    state["current_url"] = state["page"].url or state["current_url"]
    return state


@_node("rasterize")
def rasterize(state: CaptureState) -> CaptureState:
    task = state["task"]
    page = state["page"]
    checkpoint = state.get("pause_check")
    if checkpoint is not None and checkpoint():
        state["progress"](f"Pause requested; finishing capture of {task.url} first")

    width, height = preset_size(task.preset)
    if task.full_page:
        # Measured on the preset-width layout set up by load_page.
        height = imaging.full_content_height(page) or height
        print(f"[Capture] Calculated full page height: {height}")

    state["progress"](f"Capturing screenshot ({width}x{height})...")
    raw = state["rasterizer"](page, width, height)
    labelled = imaging.overlay_label(raw, state["current_url"] or task.url)
    state["image"] = labelled
    state["width"], state["height"] = imaging.image_size(labelled)
    return state


@_node("finalize")
def finalize(state: CaptureState) -> CaptureState:
    task = state["task"]
    image = state["image"]
    thumbnail = imaging.create_thumbnail(image)
    elapsed = round(time.perf_counter() - state["started_at"], 2)

    base = generate_filename(task.url, task.index, state["url_pattern"])
    filename = build_capture_filename(
        base, get_timestamp(), state["sequence_name"], task.is_retry)

    state["result"] = CaptureResult(
        image=image,
        thumbnail=thumbnail,
        elapsed=elapsed,
        preset=task.preset,
        width=state["width"],
        height=state["height"],
        filename=filename,
        url=state["current_url"] or task.url,
        sequence_name=state["sequence_name"],
        sequence_index=state["sequence_index"],
    )
    return state


def capture_failed(state: CaptureState) -> CaptureState:
    error = state["error"]
    state["progress"](f"Capture failed for {state['task'].url}: {getattr(error, 'reason', None) or error}")
    return state


def _route(next_node: str):
    def route(state: CaptureState) -> str:
        if state.get("error") is not None:
            return "capture_failed"
        return next_node

    return route


def build_graph():
    graph = StateGraph(CaptureState)
    graph.add_node("load_page", load_page)
    graph.add_node("settle", settle)
    graph.add_node("perform_actions", perform_actions)
    graph.add_node("rasterize", rasterize)
    graph.add_node("finalize", finalize)
    graph.add_node("capture_failed", capture_failed)

    graph.set_entry_point("load_page")
    graph.add_conditional_edges(
        "load_page", _route("settle"), {"settle": "settle", "capture_failed": "capture_failed"})
    graph.add_conditional_edges(
        "settle", _route("perform_actions"),
        {"perform_actions": "perform_actions", "capture_failed": "capture_failed"})
    graph.add_conditional_edges(
        "perform_actions", _route("rasterize"),
        {"rasterize": "rasterize", "capture_failed": "capture_failed"})
    graph.add_conditional_edges(
        "rasterize", _route("finalize"),
        {"finalize": "finalize", "capture_failed": "capture_failed"})
    graph.add_conditional_edges(
        "finalize", _route(END), {END: END, "capture_failed": "capture_failed"})
    graph.add_edge("capture_failed", END)
    return graph.compile()


_graph = None


def _get_graph():
    global _graph
    if _graph is None:
        _graph = build_graph()
    return _graph


# --- Entry points ---

def capture_page(
    page,
    task: CaptureTask,
    steps: Sequence[ActionStep] = (),
    sequence_name: Optional[str] = None,
    sequence_index: Optional[int] = None,
    wait_seconds: float = DEFAULT_WAIT_SECONDS,
    url_pattern: str = "",
    rasterizer: Optional[Rasterizer] = None,
    progress: Optional[ProgressSink] = None,
    checkpoint: Optional[Callable[[], bool]] = None,
) -> CaptureResult:
    """Load, settle, act, rasterize and label one page.

    Raises ScreenshotError on failure. `checkpoint` is polled once before
    rasterizing; a pending pause is reported but never cuts the capture short.
    """
    console_errors: List[str] = []

    def on_console(msg) -> None:
        if msg.type in ("warning", "error") and _has_marker(msg.text):
            console_errors.append(msg.text)

    state: CaptureState = {
        "task": task,
        "steps": tuple(steps),
        "sequence_name": sequence_name,
        "sequence_index": sequence_index,
        "wait_seconds": wait_seconds,
        "url_pattern": url_pattern,
        "page": page,
        "rasterizer": rasterizer or imaging.playwright_rasterize,
        "progress": progress or _print_progress,
        "pause_check": checkpoint,
        "started_at": time.perf_counter(),
        "current_url": None,
        "width": 0,
        "height": 0,
        "image": None,
        "console_errors": console_errors,
        "result": None,
        "error": None,
    }

    page.on("console", on_console)
    try:
        final_state = _get_graph().invoke(state)
    finally:
        page.remove_listener("console", on_console)
        reset_surface(page)

    if final_state.get("error") is not None:
        raise final_state["error"]
    return final_state["result"]


def take_sequential_screenshots(page, task: CaptureTask, progress: Optional[ProgressSink] = None, **kwargs) -> List[SequenceOutcome]:
    """Capture the page once per action sequence.

    A mount error on one sequence is recorded and the next sequence still runs;
    any other failure aborts the page.
    """
    emit = progress or _print_progress
    outcomes: List[SequenceOutcome] = []
    total = len(task.sequences)
    for i, sequence in enumerate(task.sequences):
        name = sequence.name or f"Step {i + 1}"
        emit(f"Starting sequence: {name} ({i + 1}/{total})")
        try:
            result = capture_page(
                page, task, steps=sequence.steps, sequence_name=name, sequence_index=i,
                progress=emit, **kwargs)
        except ScreenshotError as e:
            if not is_mount_error(e):
                raise ScreenshotError(
                    f"Error in sequential screenshots for {task.url}: {e.message}", task.url, e.message) from e
            print(f"[Capture] Skipping sequence {name!r} due to mount error: {e.message}")
            emit(f"Skipped sequence: {name} due to mount error ({i + 1}/{total})")
            outcomes.append(SequenceOutcome(
                f"{name} (Error: No view configured)", i, error_message=e.message))
            continue
        outcomes.append(SequenceOutcome(name, i, result=result))
        emit(f"Completed sequence: {name} ({i + 1}/{total})")
    return outcomes


def is_sequential(task: CaptureTask) -> bool:
    return len(task.sequences) > 1 or any(s.name for s in task.sequences)


def capture_task(page, task: CaptureTask, **kwargs) -> List[CaptureResult]:
    """Run the protocol for a queue task; returns every result produced (first one is the page's)."""
    if not is_sequential(task):
        steps = task.sequences[0].steps if task.sequences else ()
        return [capture_page(page, task, steps=steps, **kwargs)]

    outcomes = take_sequential_screenshots(page, task, **kwargs)
    results = [o.result for o in outcomes if o.result is not None]
    if not results:
        reasons = "; ".join(o.error_message or "error" for o in outcomes)
        raise ScreenshotError(f"All action sequences failed for {task.url}", task.url, reasons)
    return results
