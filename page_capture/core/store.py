from typing import Dict, List, Optional

from .types import CaptureResult


class ResultStore:
    """Successful captures keyed by page plus the pages that failed, both in insertion order.

    A page is never both successful and failed: recording a success drops it
    from the failed list. Only the queue orchestrator writes to the store.
    """

    def __init__(self) -> None:
        self.results: Dict[str, CaptureResult] = {}
        self.ordered_urls: List[str] = []
        self.failed_urls: List[str] = []

    def reset(self) -> None:
        self.results.clear()
        self.ordered_urls = []
        self.failed_urls = []

    def add_result(self, url: str, result: CaptureResult) -> None:
        self.results[url] = result
        if url not in self.ordered_urls:
            self.ordered_urls.append(url)
        self.remove_failed(url)

    def add_failed(self, url: str) -> None:
        if url in self.results:
            return
        if url not in self.failed_urls:
            self.failed_urls.append(url)

    def remove_failed(self, url: str) -> None:
        self.failed_urls = [u for u in self.failed_urls if u != url]

    def take_failed(self) -> List[str]:
        """Return the failed list and clear it (used to seed a retry)."""
        snapshot = list(self.failed_urls)
        self.failed_urls = []
        return snapshot

    def get(self, url: str) -> Optional[CaptureResult]:
        return self.results.get(url)

    @property
    def success_count(self) -> int:
        return len(self.results)

    @property
    def failure_count(self) -> int:
        return len(self.failed_urls)

    def ordered_results(self) -> List[CaptureResult]:
        return [self.results[u] for u in self.ordered_urls if u in self.results]
