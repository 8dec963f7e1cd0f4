"""Translation job service.

Review note:
- 提供异步任务式翻译服务：创建任务后在后台串行执行，前端轮询进度与日志。
- Job 状态保存在内存并落盘 job.json；进程重启后仍可从磁盘查询历史任务。
- 取消任务同时设置取消令牌并取消 asyncio 任务。
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import asyncio
import logging
import traceback
import uuid

from translate_worker.catalog.client import CatalogClient
from translate_worker.config import settings
from translate_worker.jobs.storage import (
    JobPaths,
    build_job_paths,
    iter_job_json,
    load_job_json,
    save_job_json,
)
from translate_worker.pipeline.runner import CancelToken, JobOutcome, run_job
from translate_worker.schemas.job import JobCreateRequest
from translate_worker.schemas.task import ChapterCounts, TaskCallback


logger = logging.getLogger("uvicorn.error")

MAX_LOG_ENTRIES = 2000
FINAL_STATUSES = {"succeeded", "aborted", "failed", "cancelled"}

_jobs: Dict[str, Dict[str, Any]] = {}
_jobs_lock = asyncio.Lock()


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _is_job_id(job_id: str) -> bool:
    try:
        return str(uuid.UUID(job_id)) == job_id
    except (TypeError, ValueError):
        return False


def _get_job(job_id: str) -> Dict[str, Any]:
    job = _jobs.get(job_id)
    if not job:
        raise KeyError("job not found")
    return job


def _snapshot(job: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "job_id": job["job_id"],
        "status": job["status"],
        "task_name": job["task_name"],
        "task": dict(job.get("task", {})),
        "translator": dict(job.get("translator", {})),
        "created_at": job["created_at"],
        "updated_at": job["updated_at"],
        "error": job.get("error"),
        "progress": dict(job.get("progress", {})),
        "logs": list(job.get("logs", [])),
    }


def _append_log(job: Dict[str, Any], message: str) -> None:
    logs = job["logs"]
    logs.append({"at": _now_iso(), "message": str(message)})
    if len(logs) > MAX_LOG_ENTRIES:
        del logs[: len(logs) - MAX_LOG_ENTRIES]
    job["updated_at"] = _now_iso()


def _persist_job(job: Dict[str, Any]) -> None:
    paths: Optional[JobPaths] = job.get("_paths")
    if not paths:
        return
    save_job_json(paths, _snapshot(job))


def mask_api_key(api_key: str) -> str:
    """脱敏显示API Key"""
    if not api_key or len(api_key) < 8:
        return "***"
    return f"{api_key[:3]}***{api_key[-4:]}"


def _masked_translator(translator: Any) -> Dict[str, Any]:
    data = translator.model_dump()
    if data.get("key"):
        data["key"] = mask_api_key(data["key"])
    return data


def _build_task_name(task: Dict[str, Any]) -> str:
    kind = task.get("type")
    if kind == "web":
        return f"web/{task['provider_id']}/{task['novel_id']}"
    if kind == "wenku":
        return f"wenku/{task['novel_id']}/{task['volume_id']}"
    return f"personal/{task['volume_id']}"


def _build_callback(job: Dict[str, Any]) -> TaskCallback:
    progress = job["progress"]

    def on_start(total: int) -> None:
        progress["total"] = int(total)
        job["updated_at"] = _now_iso()
        _persist_job(job)

    def on_chapter_success(counts: ChapterCounts) -> None:
        progress["finished"] += 1
        progress["source_paragraphs"] += counts.source or 0
        progress["target_paragraphs"] += counts.target or 0
        job["updated_at"] = _now_iso()
        _persist_job(job)

    def on_chapter_failure() -> None:
        progress["failed"] += 1
        job["updated_at"] = _now_iso()
        _persist_job(job)

    def log(message: str) -> None:
        _append_log(job, message)

    return TaskCallback(
        on_start=on_start,
        on_chapter_success=on_chapter_success,
        on_chapter_failure=on_chapter_failure,
        log=log,
    )


async def create_job(payload: Dict[str, Any]) -> Dict[str, Any]:
    request = JobCreateRequest.model_validate(payload)
    task_data = request.task.model_dump()

    job_id = str(uuid.uuid4())
    job: Dict[str, Any] = {
        "job_id": job_id,
        "status": "queued",
        "task_name": _build_task_name(task_data),
        "task": task_data,
        "translator": _masked_translator(request.translator),
        "created_at": _now_iso(),
        "updated_at": _now_iso(),
        "error": None,
        "progress": {
            "total": None,
            "finished": 0,
            "failed": 0,
            "source_paragraphs": 0,
            "target_paragraphs": 0,
        },
        "logs": [],
        "_task": None,
        "_token": CancelToken(),
        "_paths": build_job_paths(settings.JOB_DATA_DIR, job_id),
    }
    desc = request.task.to_desc(_build_callback(job))

    _append_log(job, f"任务已创建：{job['task_name']}（{request.translator.id}）")
    _persist_job(job)

    async with _jobs_lock:
        _jobs[job_id] = job
        job["_task"] = asyncio.create_task(
            _run_job(job_id, desc, request.translator, request.catalog_token)
        )

    logger.info("job-created job_id=%s task=%s translator=%s", job_id, job["task_name"], request.translator.id)
    return _snapshot(job)


async def get_job(job_id: str) -> Dict[str, Any]:
    async with _jobs_lock:
        job = _jobs.get(job_id)
        if job:
            return _snapshot(job)

    # 磁盘回查只接受 uuid 形式的任务 ID
    if not _is_job_id(job_id):
        raise KeyError("job not found")
    snap = load_job_json(build_job_paths(settings.JOB_DATA_DIR, job_id).job_json)
    if snap:
        return snap
    raise KeyError("job not found")


async def cancel_job(job_id: str) -> Dict[str, Any]:
    async with _jobs_lock:
        job = _get_job(job_id)
        if job["status"] in FINAL_STATUSES:
            return _snapshot(job)
        job["_token"].cancel()
        task = job.get("_task")
        if task and not task.done():
            task.cancel()
        job["status"] = "cancelled"
        _append_log(job, "用户取消任务。")
        _persist_job(job)
        logger.info("job-cancelled job_id=%s", job_id)
        return _snapshot(job)


def _normalize_status_set(statuses: Optional[List[str]]) -> Optional[set[str]]:
    if not statuses:
        return None
    out: set[str] = set()
    for s in statuses:
        norm = str(s or "").strip().lower()
        if norm:
            out.add(norm)
    return out or None


def _history_row(snap: Dict[str, Any]) -> Dict[str, Any]:
    translator = snap.get("translator") or {}
    return {
        "job_id": str(snap.get("job_id") or ""),
        "status": str(snap.get("status") or ""),
        "task_name": str(snap.get("task_name") or ""),
        "translator_id": translator.get("id"),
        "created_at": str(snap.get("created_at") or ""),
        "updated_at": str(snap.get("updated_at") or ""),
        "progress": dict(snap.get("progress") or {}),
    }


async def list_jobs(limit: int = 30, statuses: Optional[List[str]] = None) -> Dict[str, Any]:
    max_items = min(max(1, int(limit)), settings.JOB_HISTORY_LIMIT)
    allowed_status = _normalize_status_set(statuses)

    rows_by_id: Dict[str, Dict[str, Any]] = {}
    for job_json in iter_job_json(settings.JOB_DATA_DIR):
        snap = load_job_json(job_json)
        if snap:
            rows_by_id[str(snap["job_id"])] = _history_row(snap)

    async with _jobs_lock:
        live_jobs = list(_jobs.values())
    for job in live_jobs:
        row = _history_row(_snapshot(job))
        prev = rows_by_id.get(row["job_id"])
        if not prev or row["updated_at"] >= prev["updated_at"]:
            rows_by_id[row["job_id"]] = row

    rows = [
        row
        for row in rows_by_id.values()
        if allowed_status is None or row["status"].lower() in allowed_status
    ]
    rows.sort(key=lambda x: x.get("updated_at", ""), reverse=True)
    return {"items": rows[:max_items]}


async def _run_job(job_id: str, desc, translator_desc, catalog_token: Optional[str]) -> None:
    job = _get_job(job_id)
    token: CancelToken = job["_token"]

    try:
        job["status"] = "running"
        _append_log(job, "开始执行翻译任务。")
        _persist_job(job)

        async with CatalogClient(token=catalog_token) as catalog:
            outcome = await run_job(desc, translator_desc, catalog=catalog, cancel_token=token)

        if token.cancelled:
            job["status"] = "cancelled"
        elif outcome is JobOutcome.COMPLETED:
            job["status"] = "succeeded"
        elif outcome is JobOutcome.QUIT:
            job["status"] = "aborted"
        else:
            job["status"] = "failed"
            logs = job["logs"]
            job["error"] = logs[-1]["message"] if logs else "任务失败"
        _append_log(job, "任务结束。")
        _persist_job(job)
    except asyncio.CancelledError:
        job["status"] = "cancelled"
        _append_log(job, "任务已取消。")
        _persist_job(job)
    except Exception as exc:
        job["status"] = "failed"
        job["error"] = str(exc)
        _append_log(job, f"任务失败：{exc}")
        logger.warning("job-crashed job_id=%s\n%s", job_id, traceback.format_exc(limit=10))
        _persist_job(job)
    logger.info("job-finished job_id=%s status=%s", job_id, job["status"])
