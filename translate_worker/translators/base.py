"""Translator capability shared by every backend.

Review note:
- translate(texts) 保证输出与输入等长同序；空白段落原样保留，不发给后端。
- 重试只发生在翻译器内部；鉴权失败（TranslatorAuthError）不重试，直接上抛结束任务。
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, TypeVar
import asyncio

from translate_worker.config import settings
from translate_worker.errors import QuitJob, TranslationError


LogFn = Callable[[str], None]
T = TypeVar("T")


def apply_glossary(text: str, glossary: Dict[str, str]) -> str:
    """Replace glossary terms in `text`, longest source term first."""
    if not glossary:
        return text
    for src in sorted(glossary, key=len, reverse=True):
        if src and src in text:
            text = text.replace(src, glossary[src])
    return text


def glossary_for(texts: Iterable[str], glossary: Dict[str, str]) -> Dict[str, str]:
    """Subset of the glossary whose source terms occur in `texts`."""
    if not glossary:
        return {}
    joined = "\n".join(texts)
    return {src: dst for src, dst in glossary.items() if src and src in joined}


def chunk_paragraphs(texts: List[str], max_chars: int, max_lines: int) -> List[List[str]]:
    chunks: List[List[str]] = []
    current: List[str] = []
    size = 0
    for text in texts:
        if current and (size + len(text) > max_chars or len(current) >= max_lines):
            chunks.append(current)
            current = []
            size = 0
        current.append(text)
        size += len(text)
    if current:
        chunks.append(current)
    return chunks


async def call_with_retries(
    fn: Callable[[], Awaitable[T]],
    *,
    retries: Optional[int] = None,
    log: Optional[LogFn] = None,
) -> T:
    attempts = max(1, int(retries or settings.TRANSLATOR_MAX_RETRIES))
    last_err: Optional[Exception] = None
    for attempt in range(1, attempts + 1):
        try:
            return await fn()
        except QuitJob:
            raise
        except Exception as exc:
            last_err = exc
            if attempt >= attempts:
                break
            if log:
                log(f"请求失败，第 {attempt} 次重试：{exc}")
            await asyncio.sleep(min(1.5 * attempt, 4))
    raise TranslationError(f"翻译请求失败：{last_err}") from last_err


class Translator(ABC):
    """Batch translator constructed once per job."""

    id: str = ""

    def __init__(self, glossary: Optional[Dict[str, str]] = None, log: Optional[LogFn] = None) -> None:
        self.glossary: Dict[str, str] = dict(glossary or {})
        self.log: LogFn = log or (lambda message: None)

    async def translate(self, texts: List[str]) -> List[str]:
        if not texts:
            return []

        translated = list(texts)
        indices = [i for i, text in enumerate(texts) if text.strip()]
        if not indices:
            return translated

        results = await self._translate([texts[i] for i in indices])
        if len(results) != len(indices):
            raise TranslationError(
                f"翻译结果数量不匹配: expected={len(indices)}, got={len(results)}"
            )
        for i, text in zip(indices, results):
            translated[i] = text
        return translated

    @abstractmethod
    async def _translate(self, texts: List[str]) -> List[str]:
        """Translate non-blank paragraphs; must return the same count."""

    async def aclose(self) -> None:
        return None
