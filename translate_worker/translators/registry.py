"""Backend lookup table.

Review note:
- 翻译器 id 同时决定书库接口路径段与构造方式，统一在 BACKENDS 中登记。
- GPT 不翻译元数据（目录翻译不稳定），该例外只在此表中声明。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict
import logging

from translate_worker.errors import TranslatorConfigError
from translate_worker.translators.base import LogFn, Translator
from translate_worker.translators.llm import GptTranslator, SakuraTranslator
from translate_worker.translators.web_engines import BaiduTranslator, YoudaoTranslator


logger = logging.getLogger("uvicorn.error")

TranslatorFactory = Callable[[Any, Dict[str, str], LogFn], Awaitable[Translator]]


@dataclass(frozen=True)
class BackendSpec:
    id: str
    label: str
    factory: TranslatorFactory
    translates_metadata: bool = True


BACKENDS: Dict[str, BackendSpec] = {
    "baidu": BackendSpec(id="baidu", label="百度", factory=BaiduTranslator.create),
    "youdao": BackendSpec(id="youdao", label="有道", factory=YoudaoTranslator.create),
    "gpt": BackendSpec(
        id="gpt",
        label="GPT",
        factory=GptTranslator.create,
        translates_metadata=False,
    ),
    "sakura": BackendSpec(id="sakura", label="Sakura", factory=SakuraTranslator.create),
}


def get_backend(translator_id: str) -> BackendSpec:
    spec = BACKENDS.get(translator_id)
    if spec is None:
        raise TranslatorConfigError(f"不支持的翻译器：{translator_id}")
    return spec


async def create_translator(desc: Any, *, glossary: Dict[str, str], log: LogFn) -> Translator:
    """Build the translator for `desc`; any failure becomes TranslatorConfigError."""
    spec = get_backend(desc.id)
    try:
        return await spec.factory(desc, dict(glossary or {}), log)
    except TranslatorConfigError:
        raise
    except Exception as exc:
        logger.warning("translator-create-failed id=%s reason=%s", desc.id, str(exc)[:180])
        raise TranslatorConfigError(f"{desc.id} 翻译器创建失败：{exc}") from exc
