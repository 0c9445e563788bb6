from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Tuple, TypedDict, Union


# --- Scripted actions (closed variant) ---

@dataclass(frozen=True)
class Click:
    selector: str
    delay_ms: Optional[int] = None
    type: str = field(default="click", init=False)


@dataclass(frozen=True)
class Type:
    selector: str
    text: str
    delay_ms: Optional[int] = None
    type: str = field(default="type", init=False)


@dataclass(frozen=True)
class Select:
    selector: str
    value: str
    delay_ms: Optional[int] = None
    type: str = field(default="select", init=False)


@dataclass(frozen=True)
class Wait:
    duration_ms: Optional[int] = None
    delay_ms: Optional[int] = None
    type: str = field(default="wait", init=False)

    @property
    def selector(self) -> Optional[str]:
        return None


@dataclass(frozen=True)
class Scroll:
    selector: Optional[str] = None
    x: int = 0
    y: int = 0
    delay_ms: Optional[int] = None
    type: str = field(default="scroll", init=False)


@dataclass(frozen=True)
class Hover:
    selector: str
    delay_ms: Optional[int] = None
    type: str = field(default="hover", init=False)


ActionStep = Union[Click, Type, Select, Wait, Scroll, Hover]


@dataclass(frozen=True)
class ActionSequence:
    steps: Tuple[ActionStep, ...]
    name: Optional[str] = None


# --- Queue items and results ---

@dataclass(frozen=True)
class CaptureTask:
    url: str
    index: int
    preset: str = "fullHD"
    full_page: bool = False
    sequences: Tuple[ActionSequence, ...] = ()
    is_retry: bool = False


@dataclass
class CaptureResult:
    image: bytes
    thumbnail: bytes
    elapsed: float
    preset: str
    width: int
    height: int
    filename: str
    url: str
    sequence_name: Optional[str] = None
    sequence_index: Optional[int] = None


@dataclass
class SequenceOutcome:
    """One entry of a sequential capture: either a result or a recorded error."""
    sequence_name: str
    sequence_index: int
    result: Optional[CaptureResult] = None
    error_message: Optional[str] = None

    @property
    def error(self) -> bool:
        return self.result is None


@dataclass
class BatchSummary:
    total: int
    succeeded: int
    failed: int
    elapsed: float
    paused: bool
    processed: int
    is_retry: bool = False
    recovered: int = 0


ProgressSink = Callable[[str], None]
Rasterizer = Callable[[Any, int, int], bytes]


class CaptureState(TypedDict):
    task: CaptureTask
    steps: Tuple[ActionStep, ...]
    sequence_name: Optional[str]
    sequence_index: Optional[int]
    wait_seconds: float
    url_pattern: str
    # Live handles and callbacks (kept in-memory for a single capture)
    page: Any
    rasterizer: Rasterizer
    progress: ProgressSink
    pause_check: Optional[Callable[[], bool]]
    started_at: float
    current_url: Optional[str]
    width: int
    height: int
    image: Optional[bytes]
    console_errors: List[str]
    result: Optional[CaptureResult]
    error: Optional[Any]
