import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from ..core.config import (
    DEFAULT_ACTION_DELAY_MS,
    HIGHLIGHT_DURATION_MS,
    HOVER_DELAY_MS,
    MIN_WAIT_MS,
    SCROLL_COMPLETION_DELAY_MS,
    SCROLL_INTO_VIEW_DELAY_MS,
    TYPING_DELAY_MS,
)
from ..core.errors import ActionError
from ..core.types import (
    ActionSequence,
    ActionStep,
    Click,
    Hover,
    ProgressSink,
    Scroll,
    Select,
    Type,
    Wait,
)
from .selectors import Resolution, resolve

HIGHLIGHT_JS = """el => {
    const previous = { background: el.style.backgroundColor, outline: el.style.outline };
    el.style.backgroundColor = 'rgba(255, 0, 0, 0.3)';
    el.style.outline = '2px solid red';
    return previous;
}"""
RESTORE_JS = """(el, previous) => {
    el.style.backgroundColor = previous.background;
    el.style.outline = previous.outline;
}"""
SCROLL_ELEMENT_JS = "(el, pos) => el.scrollTo({ top: pos.y, left: pos.x, behavior: 'smooth' })"
SCROLL_WINDOW_JS = "pos => window.scrollTo({ top: pos.y, left: pos.x, behavior: 'smooth' })"


def _print_progress(message: str) -> None:
    print(f"[Actions] {message}")


# --- Parsing ---

def _opt_int(data: Dict[str, Any], key: str) -> Optional[int]:
    value = data.get(key)
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ActionError(f"Action field '{key}' must be a number, got {value!r}", data, None)


def parse_action(data: Dict[str, Any]) -> ActionStep:
    """Build a typed step from an action object ({"type": "click", "selector": ...})."""
    if not isinstance(data, dict) or not data.get("type"):
        raise ActionError("Invalid action object", data, None)

    kind = str(data["type"]).lower()
    selector = data.get("selector") or None
    delay = _opt_int(data, "delay")

    if kind in ("click", "type", "select", "hover") and not selector:
        raise ActionError(f"'{kind}' action requires a selector", data, None)

    if kind == "click":
        return Click(selector, delay_ms=delay)
    if kind == "type":
        return Type(selector, str(data.get("text", data.get("value")) or ""), delay_ms=delay)
    if kind == "select":
        return Select(selector, str(data.get("value") or ""), delay_ms=delay)
    if kind == "wait":
        return Wait(_opt_int(data, "duration"), delay_ms=delay)
    if kind == "scroll":
        return Scroll(selector, x=_opt_int(data, "x") or 0, y=_opt_int(data, "y") or 0, delay_ms=delay)
    if kind == "hover":
        return Hover(selector, delay_ms=delay)
    raise ActionError(f"Unknown action type: {kind}", data, None)


def parse_sequences(raw: Union[str, List[Any]]) -> List[ActionSequence]:
    """Parse action sequences from JSON text or an already-decoded list.

    Accepts either a list of named sequences
    (``[{"name": "Open menu", "actions": [...]}, ...]``) or a flat list of
    actions, which becomes a single unnamed sequence.
    """
    data = json.loads(raw) if isinstance(raw, str) else raw
    if not isinstance(data, list) or not data:
        raise ActionError("Actions JSON must be a non-empty array.", data, None)

    if all(isinstance(item, dict) and "actions" in item for item in data):
        sequences = []
        for item in data:
            actions = item.get("actions") or []
            if not isinstance(actions, list):
                raise ActionError("Sequence 'actions' must be an array.", item, None)
            steps = tuple(parse_action(a) for a in actions)
            sequences.append(ActionSequence(steps=steps, name=item.get("name")))
        return sequences

    return [ActionSequence(steps=tuple(parse_action(a) for a in data))]


def load_action_sequences(path: Path) -> List[ActionSequence]:
    return parse_sequences(Path(path).read_text(encoding="utf-8"))


# --- Execution ---

def _click(page, target) -> None:
    target.scroll_into_view_if_needed()
    page.wait_for_timeout(SCROLL_INTO_VIEW_DELAY_MS)
    previous = target.evaluate(HIGHLIGHT_JS)
    page.wait_for_timeout(HIGHLIGHT_DURATION_MS)
    try:
        target.click()
        page.wait_for_timeout(HIGHLIGHT_DURATION_MS)
    finally:
        target.evaluate(RESTORE_JS, previous)


def _type(page, target, text: str) -> None:
    if not text:
        return
    target.focus()
    target.fill("")
    # One key at a time so listeners see each input event.
    for char in text:
        target.press_sequentially(char)
        page.wait_for_timeout(TYPING_DELAY_MS)
    target.dispatch_event("change")


def _select(target, value: str) -> None:
    if not value:
        return
    target.select_option(value)


def _scroll(page, target, x: int, y: int) -> None:
    position = {"x": x, "y": y}
    if target is not None:
        target.evaluate(SCROLL_ELEMENT_JS, position)
    else:
        page.evaluate(SCROLL_WINDOW_JS, position)
    page.wait_for_timeout(SCROLL_COMPLETION_DELAY_MS)


def _hover(page, target) -> None:
    target.dispatch_event("mouseover")
    page.wait_for_timeout(HOVER_DELAY_MS)


def execute_action(page, step: ActionStep, target) -> None:
    """Run one step against an already-resolved target; failures surface as ActionError."""
    try:
        match step:
            case Click():
                _click(page, target)
            case Type(text=text):
                _type(page, target, text)
            case Select(value=value):
                _select(target, value)
            case Wait(duration_ms=duration):
                page.wait_for_timeout(duration or MIN_WAIT_MS)
            case Scroll(x=x, y=y):
                _scroll(page, target, x, y)
            case Hover():
                _hover(page, target)
            case _:
                raise ActionError(f"Unsupported action step: {step!r}", step, target)
    except ActionError:
        raise
    except Exception as e:
        raise ActionError(f"Error executing {step.type} action: {e}", step, target) from e


def _report_miss(step: ActionStep, resolution: Resolution) -> None:
    if isinstance(step, Click):
        print(f"[Actions] WARNING: element not found for click selector {step.selector!r} ({resolution.reason}); skipping.")
    else:
        print(f"[Actions] No element for {step.type} selector {step.selector!r} ({resolution.reason}); no-op.")


def perform_actions(page, steps: Iterable[ActionStep], progress: Optional[ProgressSink] = None) -> int:
    """Execute steps in order with a settle delay after each one.

    Returns the number of steps that actually ran (misses are skipped).
    """
    if page is None:
        raise ActionError("Invalid page for performing actions", None, None)
    emit = progress or _print_progress

    executed = 0
    for step in steps:
        emit(f"Performing action: {step.type} on {step.selector or 'element'}")

        target = None
        if step.selector:
            resolution = resolve(page, step.selector)
            if not resolution.found:
                _report_miss(step, resolution)
                continue
            target = resolution.node

        execute_action(page, step, target)
        executed += 1
        page.wait_for_timeout(step.delay_ms if step.delay_ms is not None else DEFAULT_ACTION_DELAY_MS)
    return executed
