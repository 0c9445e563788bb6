import re
import time
from pathlib import Path
from typing import List, Optional

from ..core.errors import URLProcessingError

FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9_-]")
MULTIPLE_UNDERSCORES = re.compile(r"_+")


def is_valid_url(url: str) -> bool:
    if not url or not isinstance(url, str):
        return False
    return "localhost" in url or re.match(r"^https?://", url) is not None or url.startswith("file://")


def process_url_list(raw: str) -> List[str]:
    """Split a newline separated list into unique, valid URLs (input order kept)."""
    if not isinstance(raw, str):
        raise URLProcessingError("Invalid URL list provided", raw)

    lines = [line.strip() for line in raw.splitlines() if line.strip()]
    unique = list(dict.fromkeys(lines))
    valid = [u for u in unique if is_valid_url(u)]
    invalid = [u for u in unique if not is_valid_url(u)]
    if invalid:
        print(f"[URLs] Found {len(invalid)} invalid URLs: {invalid}")
    return valid


def read_url_file(path: Path) -> List[str]:
    return process_url_list(Path(path).read_text(encoding="utf-8"))


def extract_default_url_segment(url: str) -> str:
    parts = [p for p in url.split("/") if p.strip()]
    return "_".join(parts[-2:])


def apply_regex_to_url(url: str, pattern: Optional[str]) -> str:
    """Join the pattern's capture groups with "_"; fall back to the last two path segments."""
    if not url:
        raise URLProcessingError("No URL provided for regex extraction", url)
    if not pattern or not pattern.strip():
        return extract_default_url_segment(url)
    try:
        match = re.search(pattern, url)
    except re.error as e:
        print(f"[URLs] Invalid regex pattern {pattern!r}: {e}")
        return extract_default_url_segment(url)
    if not match:
        return extract_default_url_segment(url)
    groups = [g for g in match.groups() if g]
    return "_".join(groups) if groups else match.group(0)


def sanitize_filename(name: Optional[str]) -> str:
    if not name:
        return "screenshot"
    s = FILENAME_CHARS.sub("_", name)
    s = MULTIPLE_UNDERSCORES.sub("_", s)
    return s.strip("_") or "screenshot"


def get_timestamp() -> str:
    return time.strftime("%Y%m%d_%H%M%S")


def generate_filename(url: str, index: int, pattern: Optional[str] = None) -> str:
    """Sanitized base name (no extension) for a page; `index` is accepted for callers that number files."""
    return sanitize_filename(apply_regex_to_url(url, pattern))


def build_capture_filename(
    base: str,
    timestamp: str,
    sequence_name: Optional[str] = None,
    is_retry: bool = False,
) -> str:
    parts = [base]
    if sequence_name:
        parts.append(sanitize_filename(sequence_name))
    if is_retry:
        parts.append("Retry")
    parts.append(timestamp)
    return "_".join(parts) + ".png"
