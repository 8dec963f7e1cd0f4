"""翻译任务描述.

Review note:
- 任务描述（web/wenku/personal）是执行期使用的不可变 dataclass，回调随任务携带。
- 翻译器描述（baidu/youdao/gpt/sakura）用 pydantic 判别联合，按 id 区分。
- *In 模型负责校验 API / CLI 输入，再转换为执行期 dataclass。
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Annotated, Callable, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


DEFAULT_END_INDEX = 65536


def _ignore(*args) -> None:
    return None


@dataclass(frozen=True)
class ChapterCounts:
    """上传后返回的段落数；无需翻译的章节两者均为空。"""
    source: Optional[int] = None
    target: Optional[int] = None


@dataclass(frozen=True)
class TaskCallback:
    on_start: Callable[[int], None] = _ignore
    on_chapter_success: Callable[[ChapterCounts], None] = _ignore
    on_chapter_failure: Callable[[], None] = _ignore
    log: Callable[[str], None] = _ignore


@dataclass(frozen=True)
class WebTaskDesc:
    """网络小说：从来源站点同步的书籍。"""
    provider_id: str
    novel_id: str
    start_index: int = 0
    end_index: int = DEFAULT_END_INDEX
    translate_expired: bool = False
    sync_from_provider: bool = False
    callback: TaskCallback = field(default_factory=TaskCallback)
    type: Literal["web"] = "web"


@dataclass(frozen=True)
class WenkuTaskDesc:
    """文库小说：书库收录的分卷。"""
    novel_id: str
    volume_id: str
    translate_expired: bool = False
    callback: TaskCallback = field(default_factory=TaskCallback)
    type: Literal["wenku"] = "wenku"


@dataclass(frozen=True)
class PersonalTaskDesc:
    """用户上传的分卷。"""
    volume_id: str
    translate_expired: bool = False
    callback: TaskCallback = field(default_factory=TaskCallback)
    type: Literal["personal"] = "personal"


TaskDesc = Union[WebTaskDesc, WenkuTaskDesc, PersonalTaskDesc]


class WebTaskIn(BaseModel):
    """网络小说翻译任务"""
    type: Literal["web"]
    provider_id: str = Field(..., min_length=1, max_length=100, description="来源站点")
    novel_id: str = Field(..., min_length=1, max_length=200, description="小说ID")
    translate_expired: bool = Field(False, description="是否重新翻译过期章节")
    sync_from_provider: bool = Field(False, description="是否与来源站点同步")
    start_index: int = Field(0, ge=0, description="章节起始序号（包含）")
    end_index: int = Field(DEFAULT_END_INDEX, ge=0, description="章节结束序号（不包含）")

    @model_validator(mode="after")
    def check_window(self):
        if self.end_index < self.start_index:
            raise ValueError("end_index 不能小于 start_index")
        return self

    def to_desc(self, callback: TaskCallback) -> WebTaskDesc:
        return WebTaskDesc(
            provider_id=self.provider_id,
            novel_id=self.novel_id,
            start_index=self.start_index,
            end_index=self.end_index,
            translate_expired=self.translate_expired,
            sync_from_provider=self.sync_from_provider,
            callback=callback,
        )


class WenkuTaskIn(BaseModel):
    """文库小说翻译任务"""
    type: Literal["wenku"]
    novel_id: str = Field(..., min_length=1, max_length=200, description="小说ID")
    volume_id: str = Field(..., min_length=1, max_length=500, description="分卷ID")
    translate_expired: bool = Field(False, description="是否重新翻译过期章节")

    def to_desc(self, callback: TaskCallback) -> WenkuTaskDesc:
        return WenkuTaskDesc(
            novel_id=self.novel_id,
            volume_id=self.volume_id,
            translate_expired=self.translate_expired,
            callback=callback,
        )


class PersonalTaskIn(BaseModel):
    """个人上传分卷翻译任务"""
    type: Literal["personal"]
    volume_id: str = Field(..., min_length=1, max_length=500, description="分卷ID")
    translate_expired: bool = Field(False, description="是否重新翻译过期章节")

    def to_desc(self, callback: TaskCallback) -> PersonalTaskDesc:
        return PersonalTaskDesc(
            volume_id=self.volume_id,
            translate_expired=self.translate_expired,
            callback=callback,
        )


TaskIn = Annotated[
    Union[WebTaskIn, WenkuTaskIn, PersonalTaskIn],
    Field(discriminator="type"),
]


class BaiduDesc(BaseModel):
    model_config = ConfigDict(frozen=True)
    id: Literal["baidu"]


class YoudaoDesc(BaseModel):
    model_config = ConfigDict(frozen=True)
    id: Literal["youdao"]


class GptDesc(BaseModel):
    model_config = ConfigDict(frozen=True)
    id: Literal["gpt"]
    type: Literal["web", "api"] = Field(..., description="web 走 access token 代理，api 走官方接口")
    endpoint: str = Field("", max_length=500, description="接口地址")
    key: str = Field("", max_length=2000, description="API Key 或 access token")


class SakuraDesc(BaseModel):
    model_config = ConfigDict(frozen=True)
    id: Literal["sakura"]
    endpoint: str = Field(..., min_length=1, max_length=500, description="Sakura 服务地址")
    use_llama_api: bool = Field(False, description="是否使用 llama.cpp 原生接口")


TranslatorDesc = Annotated[
    Union[BaiduDesc, YoudaoDesc, GptDesc, SakuraDesc],
    Field(discriminator="id"),
]
