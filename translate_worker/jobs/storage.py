"""Filesystem layout helpers for translation job snapshots."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, Optional
import json


@dataclass(frozen=True)
class JobPaths:
    base_dir: Path
    job_root: Path
    job_json: Path


def build_job_paths(base_dir: str | Path, job_id: str) -> JobPaths:
    root = Path(base_dir)
    job_root = root / job_id
    return JobPaths(
        base_dir=root,
        job_root=job_root,
        job_json=job_root / "job.json",
    )


def save_job_json(paths: JobPaths, payload: Dict[str, Any]) -> None:
    paths.job_json.parent.mkdir(parents=True, exist_ok=True)
    tmp = paths.job_json.with_suffix(".json.tmp")
    tmp.write_text(
        json.dumps(payload, ensure_ascii=False, indent=2),
        encoding="utf-8",
    )
    tmp.replace(paths.job_json)


def load_job_json(path: Path) -> Optional[Dict[str, Any]]:
    if not path.exists():
        return None
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None

    required = ["job_id", "status", "created_at", "updated_at"]
    if not isinstance(payload, dict) or any(k not in payload for k in required):
        return None
    payload.setdefault("logs", [])
    payload.setdefault("progress", {})
    return payload


def iter_job_json(base_dir: str | Path) -> Iterator[Path]:
    root = Path(base_dir)
    if not root.exists():
        return
    # .../<job_id>/job.json
    yield from root.glob("*/job.json")
