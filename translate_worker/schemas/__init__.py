"""Schemas包初始化"""
from translate_worker.schemas.task import (
    ChapterCounts,
    TaskCallback,
    WebTaskDesc,
    WenkuTaskDesc,
    PersonalTaskDesc,
    TaskDesc,
    TaskIn,
    TranslatorDesc,
    BaiduDesc,
    YoudaoDesc,
    GptDesc,
    SakuraDesc,
)
from translate_worker.schemas.catalog import (
    WebChapter,
    WebTranslateTask,
    VolumeTranslateTask,
    MetadataUpdate,
    ChapterUpdate,
    WebChapterState,
)
from translate_worker.schemas.job import (
    JobCreateRequest,
    JobResponse,
    JobHistoryResponse,
)

__all__ = [
    # Task descriptors
    "ChapterCounts",
    "TaskCallback",
    "WebTaskDesc",
    "WenkuTaskDesc",
    "PersonalTaskDesc",
    "TaskDesc",
    "TaskIn",
    # Translator descriptors
    "TranslatorDesc",
    "BaiduDesc",
    "YoudaoDesc",
    "GptDesc",
    "SakuraDesc",
    # Catalog schemas
    "WebChapter",
    "WebTranslateTask",
    "VolumeTranslateTask",
    "MetadataUpdate",
    "ChapterUpdate",
    "WebChapterState",
    # Job service schemas
    "JobCreateRequest",
    "JobResponse",
    "JobHistoryResponse",
]
