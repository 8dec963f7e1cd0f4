"""Free web translation engines (Baidu, Youdao).

Review note:
- 两个引擎都不需要额外参数；术语表在发送前直接替换原文。
- 段落按字符数分批，一批对应一次请求，返回行数必须与请求一致。
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Any, Dict, List, Optional

import httpx

from translate_worker.config import settings
from translate_worker.errors import TranslationError
from translate_worker.translators.base import (
    LogFn,
    Translator,
    apply_glossary,
    call_with_retries,
    chunk_paragraphs,
)


USER_AGENT_BROWSER = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class WebEngineTranslator(Translator):
    max_chars = 1800
    max_lines = 50

    def __init__(
        self,
        glossary: Optional[Dict[str, str]] = None,
        log: Optional[LogFn] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(glossary, log)
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=float(settings.TRANSLATOR_TIMEOUT_SEC),
            headers={"User-Agent": USER_AGENT_BROWSER},
        )

    @classmethod
    async def create(cls, desc: Any, glossary: Dict[str, str], log: LogFn) -> "WebEngineTranslator":
        return cls(glossary, log)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _translate(self, texts: List[str]) -> List[str]:
        prepared = [apply_glossary(t.replace("\n", " "), self.glossary) for t in texts]
        results: List[str] = []
        for chunk in chunk_paragraphs(prepared, self.max_chars, self.max_lines):
            lines = await call_with_retries(lambda c=chunk: self._request_chunk(c), log=self.log)
            if len(lines) != len(chunk):
                raise TranslationError(
                    f"{self.id} 返回行数不匹配: expected={len(chunk)}, got={len(lines)}"
                )
            results.extend(lines)
        return results

    @abstractmethod
    async def _request_chunk(self, lines: List[str]) -> List[str]:
        """Translate one chunk; one output line per input line."""


class BaiduTranslator(WebEngineTranslator):
    id = "baidu"
    url = "https://fanyi.baidu.com/transapi"

    async def _request_chunk(self, lines: List[str]) -> List[str]:
        resp = await self._client.post(
            self.url,
            data={"from": "jp", "to": "zh", "query": "\n".join(lines), "source": "txt"},
        )
        if resp.status_code >= 400:
            raise TranslationError(f"百度翻译返回错误: status={resp.status_code}")
        try:
            body = resp.json()
        except ValueError as exc:
            raise TranslationError("百度翻译返回不是合法 JSON。") from exc

        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, list):
            raise TranslationError(f"百度翻译返回缺少 data: {str(body)[:200]}")
        return [str(item.get("dst") or "") for item in data if isinstance(item, dict)]


class YoudaoTranslator(WebEngineTranslator):
    id = "youdao"
    url = "https://fanyi.youdao.com/translate"

    async def _request_chunk(self, lines: List[str]) -> List[str]:
        resp = await self._client.get(
            self.url,
            params={"doctype": "json", "type": "JA2ZH_CN", "i": "\n".join(lines)},
        )
        if resp.status_code >= 400:
            raise TranslationError(f"有道翻译返回错误: status={resp.status_code}")
        try:
            body = resp.json()
        except ValueError as exc:
            raise TranslationError("有道翻译返回不是合法 JSON。") from exc

        if not isinstance(body, dict) or int(body.get("errorCode", -1)) != 0:
            raise TranslationError(f"有道翻译失败: {str(body)[:200]}")
        paragraphs = body.get("translateResult") or []
        # 每段可能被拆成多句，按段拼接
        return [
            "".join(str(seg.get("tgt") or "") for seg in para if isinstance(seg, dict))
            for para in paragraphs
            if isinstance(para, list)
        ]
