import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        print(f"[Config] Ignoring non-integer {name}={raw!r}; using {default}")
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# Output paths
OUT_DIR = Path(os.getenv("CAPTURE_OUT_DIR", "artifacts/captures/"))
PROFILE_DIR = os.getenv("CAPTURE_PROFILE_DIR", "playwright_profile")
HEADLESS = _env_bool("CAPTURE_HEADLESS", True)

# Viewport presets (height applies unless the full-page flag is set)
PRESETS = {
    "fullHD": {"width": 1920, "height": 1080, "name": "Full HD (1920x1080)"},
    "mobile": {"width": 375, "height": 812, "name": "Mobile (iPhone X/11/12)"},
    "tablet": {"width": 768, "height": 1024, "name": "Tablet (iPad)"},
}
DEFAULT_PRESET = "fullHD"

THUMBNAIL_SIZE = (120, 90)
LABEL_BAR_HEIGHT = 30
LABEL_FONT_SIZE = 16
TRANSPARENT_BACKGROUND = _env_bool("CAPTURE_TRANSPARENT", False)

# Settle wait (seconds) chosen by the user, clamped to [MIN_WAIT_MS, MAX_WAIT_MS]
DEFAULT_WAIT_SECONDS = _env_int("CAPTURE_WAIT_SECONDS", 4)

# Timing (milliseconds)
MIN_WAIT_MS = 1000
MAX_WAIT_MS = 120000
NAVIGATION_TIMEOUT_MS = _env_int("CAPTURE_NAV_TIMEOUT_MS", 30000)
TYPING_DELAY_MS = 30
SCROLL_COMPLETION_DELAY_MS = 500
HIGHLIGHT_DURATION_MS = 200
SCROLL_INTO_VIEW_DELAY_MS = 300
HOVER_DELAY_MS = 200
DEFAULT_ACTION_DELAY_MS = 500
INTER_TASK_DELAY_MS = 500

# Filename policy
DEFAULT_URL_PATTERN = os.getenv("CAPTURE_URL_PATTERN", "")

# Page error detection while the page settles
MOUNT_ERROR_MARKERS = (
    "No view configured for center mount",
    "Mount definition should contain a property",
)
MESSAGE_SELECTOR = ".error-message, .warning-message, .error"
ERROR_PAGE_SELECTOR = '.not-found, .error-page, [data-error="not-found"]'
