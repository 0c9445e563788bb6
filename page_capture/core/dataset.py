import json
import time
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, Optional

from .store import ResultStore
from .types import BatchSummary, CaptureResult


def init_run_dir(out_dir: Path, run_id: str, meta: Optional[Dict[str, Any]] = None) -> Path:
    run_dir = Path(out_dir) / f"run_{run_id}"
    (run_dir / "thumbs").mkdir(parents=True, exist_ok=True)

    info = {
        "run_id": run_id,
        "timestamp": time.strftime("%Y-%m-%dT%H:%M:%S"),
    }
    info.update(meta or {})
    (run_dir / "meta.json").write_text(json.dumps(info, indent=2), encoding="utf-8")

    print(f"[Dataset] Initialized run directory at {run_dir}")
    return run_dir


def _result_entry(result: CaptureResult) -> Dict[str, Any]:
    return {
        "url": result.url,
        "filename": result.filename,
        "preset": result.preset,
        "width": result.width,
        "height": result.height,
        "elapsed": result.elapsed,
        "sequence_name": result.sequence_name,
        "sequence_index": result.sequence_index,
    }


def save_result(run_dir: Path, result: CaptureResult) -> Path:
    """Write the image and its thumbnail, and append the capture to manifest.json."""
    run_dir = Path(run_dir)
    image_path = run_dir / result.filename
    image_path.write_bytes(result.image)
    (run_dir / "thumbs" / result.filename).write_bytes(result.thumbnail)

    manifest_path = run_dir / "manifest.json"
    manifest = []
    if manifest_path.exists():
        try:
            manifest = json.loads(manifest_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            print(f"[Dataset] Failed to read manifest.json, starting a new one: {e}")
    manifest.append(_result_entry(result))
    manifest_path.write_text(json.dumps(manifest, indent=2), encoding="utf-8")

    print(f"[Dataset] Saved {image_path}")
    return image_path


def write_summary(run_dir: Path, store: ResultStore, summary: Optional[BatchSummary]) -> Path:
    path = Path(run_dir) / "summary.json"
    data = {
        "summary": asdict(summary) if summary else None,
        "succeeded": store.ordered_urls,
        "files": [r.filename for r in store.ordered_results()],
        "failed": store.failed_urls,
    }
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    return path
