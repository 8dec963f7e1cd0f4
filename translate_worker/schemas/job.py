"""任务服务 API 的 Schema.

Review note:
- 请求体组合任务描述与翻译器描述。
- 响应中的翻译器描述已脱敏，不回传 key。
"""
from pydantic import BaseModel, Field
from typing import List, Optional

from translate_worker.schemas.task import TaskIn, TranslatorDesc


class JobCreateRequest(BaseModel):
    """创建翻译任务"""
    task: TaskIn = Field(..., description="任务描述")
    translator: TranslatorDesc = Field(..., description="翻译器描述")
    catalog_token: Optional[str] = Field(None, description="可选，覆盖后端默认书库 token")


class JobProgress(BaseModel):
    total: Optional[int] = None
    finished: int = 0
    failed: int = 0
    source_paragraphs: int = 0
    target_paragraphs: int = 0


class JobLogEntry(BaseModel):
    at: str
    message: str


class JobResponse(BaseModel):
    job_id: str
    status: str
    task_name: str
    task: dict = {}
    translator: dict = {}
    created_at: str
    updated_at: str
    error: Optional[str] = None
    progress: JobProgress = JobProgress()
    logs: List[JobLogEntry] = []


class JobHistoryItem(BaseModel):
    job_id: str
    status: str
    task_name: str
    translator_id: Optional[str] = None
    created_at: str
    updated_at: str
    progress: JobProgress = JobProgress()


class JobHistoryResponse(BaseModel):
    items: List[JobHistoryItem] = []
