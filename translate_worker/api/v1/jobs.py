"""翻译任务API.

Review note:
- 任务接口（创建/查询/列表/取消），任务在后台串行执行。
"""
from fastapi import APIRouter, HTTPException
from pydantic import ValidationError

from translate_worker.schemas.job import (
    JobCreateRequest,
    JobResponse,
    JobHistoryResponse,
)
from translate_worker.jobs.service import (
    create_job,
    get_job,
    cancel_job,
    list_jobs,
)

router = APIRouter()


@router.post("", response_model=JobResponse)
async def create_translate_job(request: JobCreateRequest):
    """创建翻译任务。"""
    try:
        return await create_job(request.model_dump())
    except (ValidationError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"创建任务失败: {exc}")


@router.get("", response_model=JobHistoryResponse)
async def get_translate_jobs(limit: int = 30, statuses: str | None = None):
    """查询任务列表（按更新时间倒序，可按状态过滤）。"""
    try:
        status_filters = None
        if statuses:
            status_filters = [s.strip() for s in statuses.split(",") if s.strip()]
        return await list_jobs(limit=limit, statuses=status_filters)
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"查询历史任务失败: {exc}")


@router.get("/{job_id}", response_model=JobResponse)
async def get_translate_job(job_id: str):
    """查询任务状态与日志。"""
    try:
        return await get_job(job_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="任务不存在")
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"查询任务失败: {exc}")


@router.post("/{job_id}/cancel", response_model=JobResponse)
async def cancel_translate_job(job_id: str):
    """取消翻译任务。"""
    try:
        return await cancel_job(job_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="任务不存在")
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"取消任务失败: {exc}")
