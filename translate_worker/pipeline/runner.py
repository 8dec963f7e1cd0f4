"""Translation job runner.

Review note:
- 流程：获取任务 -> 创建翻译器 -> 翻译元数据（仅网络小说）-> 逐章 获取/翻译/上传。
- 获取任务、创建翻译器失败直接结束任务，不做任何远端修改。
- 元数据与章节阶段：QuitJob 结束整个任务；其他异常记一次失败并继续下一章。
- 严格串行，回调按执行顺序同步触发。
"""

from __future__ import annotations

from enum import Enum
from typing import Awaitable, Callable, List, Optional, TypeVar
import asyncio
import logging

from translate_worker.catalog.client import CatalogClient, VolumeTaskApi, WebTaskApi
from translate_worker.errors import QuitJob
from translate_worker.pipeline.metadata import decode_metadata, encode_metadata
from translate_worker.pipeline.selector import (
    ChapterEntry,
    select_volume_chapters,
    select_web_chapters,
)
from translate_worker.schemas.catalog import ChapterUpdate, WebTranslateTask
from translate_worker.schemas.task import (
    ChapterCounts,
    PersonalTaskDesc,
    TaskCallback,
    TaskDesc,
    WebTaskDesc,
    WenkuTaskDesc,
)
from translate_worker.translators import BackendSpec, Translator, create_translator, get_backend


logger = logging.getLogger("uvicorn.error")

T = TypeVar("T")


class JobOutcome(str, Enum):
    COMPLETED = "completed"
    QUIT = "quit"
    FATAL = "fatal"


class CancelToken:
    """Cooperative cancellation checked before every remote call."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise QuitJob("任务已被取消")


async def _open_task(
    get_task: Callable[[], Awaitable[T]],
    callback: TaskCallback,
    message: str,
    token: CancelToken,
) -> Optional[T]:
    try:
        callback.log(message)
        token.raise_if_cancelled()
        return await get_task()
    except Exception as exc:
        callback.log(f"发生错误，结束翻译任务：{exc}")
        return None


async def _build_translator(
    translator_desc,
    glossary,
    callback: TaskCallback,
    token: CancelToken,
) -> Optional[Translator]:
    try:
        token.raise_if_cancelled()
        return await create_translator(
            translator_desc,
            glossary=glossary,
            log=lambda message: callback.log("　　" + message),
        )
    except Exception as exc:
        callback.log(f"发生错误，无法创建翻译器：{exc}")
        return None


async def _translate(translator: Translator, texts: List[str], token: CancelToken) -> List[str]:
    token.raise_if_cancelled()
    return await translator.translate(texts)


async def _translate_metadata(
    api: WebTaskApi,
    task: WebTranslateTask,
    translator: Translator,
    backend: BackendSpec,
    callback: TaskCallback,
    token: CancelToken,
) -> bool:
    """Translate and upload metadata; returns False when the job must quit."""
    try:
        texts_src = encode_metadata(task)
        if not texts_src:
            return True
        if not backend.translates_metadata:
            callback.log(f"目前{backend.label}翻译目录超级不稳定，跳过")
            return True

        callback.log("翻译元数据")
        texts_dst = await _translate(translator, texts_src, token)

        callback.log("上传元数据")
        token.raise_if_cancelled()
        await api.update_metadata(decode_metadata(task, texts_dst))
    except QuitJob as exc:
        callback.log(f"发生错误，结束翻译任务：{exc}")
        return False
    except Exception as exc:
        callback.log(f"发生错误，跳过：{exc}")
        callback.on_chapter_failure()
    return True


async def _run_chapters(
    chapters: List[ChapterEntry],
    process: Callable[[ChapterEntry], Awaitable[ChapterCounts]],
    callback: TaskCallback,
    token: CancelToken,
) -> JobOutcome:
    callback.on_start(len(chapters))
    if not chapters:
        callback.log("没有需要更新的章节")
        return JobOutcome.COMPLETED

    for entry in chapters:
        try:
            token.raise_if_cancelled()
            counts = await process(entry)
        except QuitJob as exc:
            callback.log(f"发生错误，结束翻译任务：{exc}")
            return JobOutcome.QUIT
        except Exception as exc:
            callback.log(f"发生错误，跳过：{exc}")
            callback.on_chapter_failure()
        else:
            callback.on_chapter_success(counts)
    return JobOutcome.COMPLETED


async def _translate_web(
    desc: WebTaskDesc,
    translator_desc,
    client: CatalogClient,
    token: CancelToken,
) -> JobOutcome:
    callback = desc.callback
    backend = get_backend(translator_desc.id)
    api = WebTaskApi(client, desc.provider_id, desc.novel_id, backend.id)

    task = await _open_task(api.get_task, callback, "获取元数据", token)
    if task is None:
        return JobOutcome.FATAL

    translator = await _build_translator(translator_desc, task.glossary, callback, token)
    if translator is None:
        return JobOutcome.FATAL

    try:
        if not await _translate_metadata(api, task, translator, backend, callback, token):
            return JobOutcome.QUIT

        chapters = select_web_chapters(
            task.chapters,
            desc.start_index,
            desc.end_index,
            desc.translate_expired,
            desc.sync_from_provider,
        )

        async def process(entry: ChapterEntry) -> ChapterCounts:
            suffix = f"[{entry.index}] {desc.provider_id}/{desc.novel_id}/{entry.chapter_id}"
            callback.log("\n获取章节" + suffix)
            texts_jp = await api.check_chapter(entry.chapter_id, desc.sync_from_provider)
            if not texts_jp:
                callback.log("无需翻译")
                return ChapterCounts()

            callback.log("翻译章节" + suffix)
            texts_zh = await _translate(translator, texts_jp, token)

            callback.log("上传章节" + suffix)
            token.raise_if_cancelled()
            state = await api.update_chapter(
                entry.chapter_id,
                ChapterUpdate(glossary_uuid=task.glossary_uuid, paragraphs_zh=texts_zh),
            )
            return ChapterCounts(source=state.jp, target=state.zh)

        return await _run_chapters(chapters, process, callback, token)
    finally:
        await translator.aclose()


async def _translate_volume(
    desc,
    translator_desc,
    api: VolumeTaskApi,
    token: CancelToken,
) -> JobOutcome:
    callback: TaskCallback = desc.callback
    volume_id = desc.volume_id

    task = await _open_task(api.get_task, callback, f"获取未翻译章节 {volume_id}", token)
    if task is None:
        return JobOutcome.FATAL

    translator = await _build_translator(translator_desc, task.glossary, callback, token)
    if translator is None:
        return JobOutcome.FATAL

    try:
        chapters = select_volume_chapters(
            task.untranslated_chapters,
            task.expired_chapters,
            desc.translate_expired,
        )

        async def process(entry: ChapterEntry) -> ChapterCounts:
            suffix = f" {volume_id}/{entry.chapter_id}"
            callback.log("\n获取章节" + suffix)
            texts_jp = await api.get_chapter(entry.chapter_id)
            if not texts_jp:
                callback.log("无需翻译")
                return ChapterCounts()

            callback.log("翻译章节" + suffix)
            texts_zh = await _translate(translator, texts_jp, token)

            callback.log("上传章节" + suffix)
            token.raise_if_cancelled()
            state = await api.update_chapter(
                entry.chapter_id,
                ChapterUpdate(glossary_uuid=task.glossary_uuid, paragraphs_zh=texts_zh),
            )
            return ChapterCounts(target=state)

        return await _run_chapters(chapters, process, callback, token)
    finally:
        await translator.aclose()


async def _translate_wenku(
    desc: WenkuTaskDesc,
    translator_desc,
    client: CatalogClient,
    token: CancelToken,
) -> JobOutcome:
    api = VolumeTaskApi.wenku(client, desc.novel_id, desc.volume_id, translator_desc.id)
    return await _translate_volume(desc, translator_desc, api, token)


async def _translate_personal(
    desc: PersonalTaskDesc,
    translator_desc,
    client: CatalogClient,
    token: CancelToken,
) -> JobOutcome:
    api = VolumeTaskApi.personal(client, desc.volume_id, translator_desc.id)
    return await _translate_volume(desc, translator_desc, api, token)


async def run_job(
    task: TaskDesc,
    translator_desc,
    *,
    catalog: Optional[CatalogClient] = None,
    cancel_token: Optional[CancelToken] = None,
) -> JobOutcome:
    """Run one translation job to completion, quit or fatal error."""
    token = cancel_token or CancelToken()
    if isinstance(task, WebTaskDesc):
        pipeline = _translate_web
    elif isinstance(task, WenkuTaskDesc):
        pipeline = _translate_wenku
    elif isinstance(task, PersonalTaskDesc):
        pipeline = _translate_personal
    else:
        raise TypeError(f"unsupported task descriptor: {type(task).__name__}")

    try:
        client = catalog or CatalogClient()
    except Exception as exc:
        task.callback.log(f"发生错误，结束翻译任务：{exc}")
        return JobOutcome.FATAL

    logger.info("job-start type=%s translator=%s", task.type, translator_desc.id)
    try:
        outcome = await pipeline(task, translator_desc, client, token)
    finally:
        if catalog is None:
            await client.aclose()
    logger.info("job-end type=%s translator=%s outcome=%s", task.type, translator_desc.id, outcome.value)
    return outcome
