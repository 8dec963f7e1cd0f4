"""远端书库接口的请求/响应 Schema"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, List, Literal, Optional


ChapterState = Literal["untranslated", "translated", "expired"]


class WebChapter(BaseModel):
    id: str
    state: ChapterState


class WebTranslateTask(BaseModel):
    """网络小说翻译任务快照"""
    model_config = ConfigDict(populate_by_name=True)

    title: Optional[str] = None
    introduction: Optional[str] = None
    toc: List[str] = []
    glossary_uuid: Optional[str] = Field(None, alias="glossaryUuid")
    glossary: Dict[str, str] = {}
    chapters: List[WebChapter] = []


class VolumeTranslateTask(BaseModel):
    """文库/个人分卷翻译任务快照（无元数据）"""
    model_config = ConfigDict(populate_by_name=True)

    glossary_uuid: Optional[str] = Field(None, alias="glossaryUuid")
    glossary: Dict[str, str] = {}
    untranslated_chapters: List[str] = Field([], alias="untranslatedChapters")
    expired_chapters: List[str] = Field([], alias="expiredChapters")


class MetadataUpdate(BaseModel):
    """元数据翻译结果，toc 以原文目录为键"""
    title: Optional[str] = None
    introduction: Optional[str] = None
    toc: Dict[str, str] = {}


class ChapterUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    glossary_uuid: Optional[str] = Field(None, alias="glossaryUuid")
    paragraphs_zh: List[str] = Field(..., alias="paragraphsZh")


class WebChapterState(BaseModel):
    """网络小说章节上传后的段落数"""
    jp: int
    zh: int
