from dataclasses import dataclass
from typing import Any, Optional

from playwright.sync_api import Error as PlaywrightError


@dataclass(frozen=True)
class Resolution:
    """Outcome of a selector lookup: the first matching node, or why there is none."""

    selector: Optional[str]
    node: Any = None
    reason: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.node is not None


def is_xpath(selector: str) -> bool:
    return selector.startswith("/")


def to_locator_query(selector: str) -> str:
    # Leading "/" marks a structural path; anything else is matched as CSS.
    if is_xpath(selector):
        return f"xpath={selector}"
    return f"css={selector}"


def resolve(page, selector: Optional[str]) -> Resolution:
    """Return the first node matching `selector`, never raising for a miss or a bad expression."""
    if not selector or not selector.strip():
        return Resolution(selector, reason="empty selector")

    try:
        locator = page.locator(to_locator_query(selector.strip()))
        if locator.count() == 0:
            return Resolution(selector, reason="no match")
        return Resolution(selector, node=locator.first)
    except PlaywrightError as e:
        print(f"[Selector] Error finding element with selector {selector!r}: {e}")
        return Resolution(selector, reason=f"invalid selector: {e}")
