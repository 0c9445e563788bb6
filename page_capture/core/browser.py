from pathlib import Path
from typing import Optional

from playwright.sync_api import sync_playwright

from .config import HEADLESS, PROFILE_DIR


class BrowserSession:
    """Persistent-profile Chromium session providing the single page used as the rendering surface."""

    def __init__(self, profile_dir: str = PROFILE_DIR, headless: bool = HEADLESS, slow_mo: int = 0):
        self.profile_dir = profile_dir
        self.headless = headless
        self.slow_mo = slow_mo
        self.playwright = None
        self.context = None
        self.page = None

    def start(self):
        print(f"[Browser] Launching Chromium (headless={self.headless}, profile={self.profile_dir})")
        self.playwright = sync_playwright().start()
        self.context = self.playwright.chromium.launch_persistent_context(
            self.profile_dir,
            headless=self.headless,
            slow_mo=self.slow_mo,
        )
        self.page = self.context.pages[0] if self.context.pages else self.context.new_page()
        return self.page

    def close(self) -> None:
        if self.context:
            self.context.close()
            self.context = None
        if self.playwright:
            self.playwright.stop()
            self.playwright = None
        self.page = None

    def __enter__(self) -> "BrowserSession":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class ProfileAuthGate:
    """Capture is allowed when login is not required, or a saved browser profile exists."""

    def __init__(self, profile_dir: str = PROFILE_DIR, require_login: bool = False):
        self.profile_dir = Path(profile_dir)
        self.require_login = require_login

    def is_ready_for_capture(self) -> bool:
        if not self.require_login:
            return True
        return self.profile_dir.is_dir() and any(self.profile_dir.iterdir())


def auth_ready(gate: Optional[object]) -> bool:
    return gate is None or bool(gate.is_ready_for_capture())
