from datetime import datetime
from typing import Any, Callable, Dict, Optional


class AppError(Exception):
    """Base error carrying a stable machine-readable code."""

    def __init__(self, message: str, code: str = "APP_ERROR"):
        super().__init__(message)
        self.message = message
        self.code = code


class URLProcessingError(AppError):
    def __init__(self, message: str, url: Any = None):
        super().__init__(message, "URL_PROCESSING_ERROR")
        self.url = url


class ScreenshotError(AppError):
    """Navigation, settle, action or rasterization failure for one page."""

    def __init__(self, message: str, url: Optional[str] = None, reason: Optional[str] = None):
        super().__init__(message, "SCREENSHOT_ERROR")
        self.url = url
        self.reason = reason


class ActionError(AppError):
    """A scripted step failed; carries the step and the resolved target (if any)."""

    def __init__(self, message: str, action: Any = None, element: Any = None):
        super().__init__(message, "ACTION_ERROR")
        self.action = action
        self.element = element


def handle_error(
    error: BaseException,
    log: bool = True,
    show: bool = True,
    notify: Optional[Callable[[str], None]] = None,
) -> Dict[str, Any]:
    """Normalize an error into a dict, print it, and optionally surface it to the user."""
    info: Dict[str, Any] = {
        "message": getattr(error, "message", None) or str(error) or "An unknown error occurred",
        "code": getattr(error, "code", "UNKNOWN_ERROR"),
        "timestamp": datetime.now().isoformat(),
        "name": type(error).__name__,
    }
    if isinstance(error, URLProcessingError):
        info["url"] = error.url
    elif isinstance(error, ScreenshotError):
        info["url"] = error.url
        info["reason"] = error.reason
    elif isinstance(error, ActionError):
        info["action"] = repr(error.action)
        info["element"] = repr(error.element) if error.element is not None else None

    if log:
        print(f"[Error] {info['name']} ({info['code']}): {info['message']}")
    if show and notify is not None:
        notify(f"Error: {info['message']}")
    return info
