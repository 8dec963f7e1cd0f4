"""LLM translators (GPT, Sakura).

Review note:
- 段落按批发送，每批一行对应一段；返回行数不对时整批重试，仍失败则逐段翻译。
- GPT api 模式走 openai SDK；web 模式走 OpenAI 兼容的 access token 代理（流式）。
- Sakura 兼容 OpenAI 接口，use_llama_api 时改用 llama.cpp 原生 /completion。
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Any, Dict, List, Optional
import asyncio
import json
import re

import httpx
from httpx import Timeout
from openai import AsyncOpenAI, AuthenticationError, PermissionDeniedError

from translate_worker.config import settings
from translate_worker.errors import (
    QuitJob,
    TranslationError,
    TranslatorAuthError,
    TranslatorConfigError,
)
from translate_worker.schemas.task import GptDesc, SakuraDesc
from translate_worker.translators.base import LogFn, Translator, chunk_paragraphs, glossary_for


class ChatTranslator(Translator):
    max_chars = 1500
    max_lines = 30

    def __init__(
        self,
        glossary: Optional[Dict[str, str]] = None,
        log: Optional[LogFn] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(glossary, log)
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(
            timeout=Timeout(float(settings.TRANSLATOR_TIMEOUT_SEC), read=None),
        )

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def _translate(self, texts: List[str]) -> List[str]:
        # 一行对应一段，段内换行会打乱行数对应
        prepared = [t.replace("\n", " ") for t in texts]
        results: List[str] = []
        for chunk in chunk_paragraphs(prepared, self.max_chars, self.max_lines):
            results.extend(await self._translate_chunk(chunk))
        return results

    async def _translate_chunk(self, lines: List[str]) -> List[str]:
        attempts = max(1, int(settings.TRANSLATOR_MAX_RETRIES))
        for attempt in range(1, attempts + 1):
            try:
                output = await self._complete(self._build_messages(lines))
            except QuitJob:
                raise
            except Exception as exc:
                if attempt >= attempts:
                    raise TranslationError(f"{self.id} 请求失败：{exc}") from exc
                self.log(f"请求失败（{attempt}/{attempts}）：{exc}")
                await asyncio.sleep(min(1.5 * attempt, 4))
                continue

            decoded = self._decode(output, len(lines))
            if decoded is not None:
                return decoded
            self.log(f"结果行数不匹配（{attempt}/{attempts}）")

        if len(lines) == 1:
            raise TranslationError(f"{self.id} 无法得到与原文对应的译文")
        self.log("分批翻译失败，改为逐段翻译")
        results: List[str] = []
        for line in lines:
            results.extend(await self._translate_chunk([line]))
        return results

    @abstractmethod
    def _build_messages(self, lines: List[str]) -> List[dict]:
        """Prompt for one chunk, one paragraph per line."""

    @abstractmethod
    def _decode(self, output: str, expected: int) -> Optional[List[str]]:
        """Split model output into `expected` paragraphs, or None on mismatch."""

    @abstractmethod
    async def _complete(self, messages: List[dict]) -> str:
        """Send one prompt and return the raw model text."""


_NUMBERED_LINE = re.compile(r"^\s*#(\d+)\s*[:：]\s?(.*)$")


class GptTranslator(ChatTranslator):
    id = "gpt"

    def __init__(
        self,
        *,
        mode: str,
        endpoint: str,
        key: str,
        glossary: Optional[Dict[str, str]] = None,
        log: Optional[LogFn] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(glossary, log, http_client)
        self.mode = mode
        self.endpoint = endpoint.rstrip("/")
        self.key = key
        self._openai: Optional[AsyncOpenAI] = None
        if mode == "api":
            self._openai = AsyncOpenAI(
                api_key=key,
                base_url=self.endpoint,
                timeout=Timeout(float(settings.TRANSLATOR_TIMEOUT_SEC)),
                max_retries=0,
            )

    @classmethod
    async def create(cls, desc: GptDesc, glossary: Dict[str, str], log: LogFn) -> "GptTranslator":
        key = (desc.key or "").strip()
        if not key:
            raise TranslatorConfigError("缺少 API Key 或 access token，无法创建 GPT 翻译器。")
        endpoint = (desc.endpoint or "").strip()
        if desc.type == "web" and not endpoint:
            raise TranslatorConfigError("GPT web 模式需要配置代理地址。")
        if not endpoint:
            endpoint = settings.GPT_API_BASE_URL
        return cls(mode=desc.type, endpoint=endpoint, key=key, glossary=glossary, log=log)

    async def aclose(self) -> None:
        if self._openai is not None:
            await self._openai.close()
        await super().aclose()

    def _build_messages(self, lines: List[str]) -> List[dict]:
        rules = [
            "请把下面每一行日文翻译成简体中文。",
            "保持行数和编号不变，每行格式为 #编号: 译文，只输出译文。",
        ]
        terms = glossary_for(lines, self.glossary)
        if terms:
            rules.append("翻译时使用以下术语表：")
            rules.extend(f"{src} => {dst}" for src, dst in terms.items())
        numbered = "\n".join(f"#{i}: {line}" for i, line in enumerate(lines, start=1))
        return [
            {"role": "system", "content": "You are a professional Japanese light novel translator."},
            {"role": "user", "content": "\n".join(rules) + "\n\n" + numbered},
        ]

    def _decode(self, output: str, expected: int) -> Optional[List[str]]:
        found: Dict[int, str] = {}
        current: Optional[int] = None
        for line in (output or "").splitlines():
            m = _NUMBERED_LINE.match(line)
            if m:
                current = int(m.group(1))
                found[current] = m.group(2).strip()
            elif current is not None and line.strip():
                # 模型把一段译文拆成多行时，续行归入上一个编号
                found[current] += "\n" + line.strip()
        if sorted(found) != list(range(1, expected + 1)):
            return None
        return [found[i] for i in range(1, expected + 1)]

    async def _complete(self, messages: List[dict]) -> str:
        if self._openai is not None:
            return await self._complete_api(messages)
        return await self._complete_web(messages)

    async def _complete_api(self, messages: List[dict]) -> str:
        try:
            resp = await self._openai.chat.completions.create(
                model=settings.GPT_MODEL,
                messages=messages,
                temperature=0.1,
            )
        except (AuthenticationError, PermissionDeniedError) as exc:
            raise TranslatorAuthError(f"GPT 鉴权失败：{exc}") from exc
        content = (resp.choices[0].message.content or "").strip()
        if not content:
            raise TranslationError("模型返回空文本。")
        return content

    async def _complete_web(self, messages: List[dict]) -> str:
        url = self.endpoint + "/chat/completions"
        payload: Dict[str, Any] = {
            "model": settings.GPT_MODEL,
            "messages": messages,
            "stream": True,
        }
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.key}",
        }
        parts: List[str] = []
        async with self._http.stream("POST", url, headers=headers, json=payload) as resp:
            if resp.status_code in (401, 403):
                raise TranslatorAuthError(f"GPT access token 无效：status={resp.status_code}")
            if resp.status_code != 200:
                text = await resp.aread()
                raise TranslationError(
                    f"GPT 代理错误: {resp.status_code} {text.decode(errors='ignore')[:200]}"
                )

            async for line in resp.aiter_lines():
                if not line or not line.startswith("data:"):
                    continue
                data_str = line[5:].strip()
                if data_str == "[DONE]":
                    break
                try:
                    data = json.loads(data_str)
                except ValueError:
                    continue
                choices = data.get("choices") or []
                if choices:
                    delta = choices[0].get("delta") or {}
                    if delta.get("content"):
                        parts.append(delta["content"])

        content = "".join(parts).strip()
        if not content:
            raise TranslationError("模型返回空文本。")
        return content


SAKURA_SYSTEM_PROMPT = (
    "你是一个轻小说翻译模型，可以流畅通顺地以日本轻小说的风格将日文翻译成简体中文，"
    "并联系上下文正确使用人称代词，不擅自添加原文中没有的代词。"
)


class SakuraTranslator(ChatTranslator):
    id = "sakura"
    max_chars = 500
    max_lines = 30

    def __init__(
        self,
        *,
        endpoint: str,
        use_llama_api: bool,
        glossary: Optional[Dict[str, str]] = None,
        log: Optional[LogFn] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(glossary, log, http_client)
        self.endpoint = _normalize_sakura_endpoint(endpoint)
        self.use_llama_api = use_llama_api
        self._openai: Optional[AsyncOpenAI] = None
        if not use_llama_api:
            self._openai = AsyncOpenAI(
                api_key="sk-no-key-required",
                base_url=self.endpoint + "/v1",
                timeout=Timeout(float(settings.TRANSLATOR_TIMEOUT_SEC)),
                max_retries=0,
            )

    @classmethod
    async def create(cls, desc: SakuraDesc, glossary: Dict[str, str], log: LogFn) -> "SakuraTranslator":
        if not (desc.endpoint or "").strip():
            raise TranslatorConfigError("缺少 Sakura 服务地址。")
        translator = cls(
            endpoint=desc.endpoint,
            use_llama_api=desc.use_llama_api,
            glossary=glossary,
            log=log,
        )
        try:
            await translator.check_server()
        except Exception:
            await translator.aclose()
            raise
        return translator

    async def check_server(self) -> None:
        path = "/health" if self.use_llama_api else "/v1/models"
        try:
            resp = await self._http.get(self.endpoint + path)
        except httpx.HTTPError as exc:
            raise TranslatorConfigError(f"无法连接 Sakura 服务：{exc}") from exc
        if resp.status_code != 200:
            raise TranslatorConfigError(f"Sakura 服务不可用：status={resp.status_code}")

    async def aclose(self) -> None:
        if self._openai is not None:
            await self._openai.close()
        await super().aclose()

    def _build_messages(self, lines: List[str]) -> List[dict]:
        text = "\n".join(lines)
        terms = glossary_for(lines, self.glossary)
        if terms:
            gpt_dict = "\n".join(f"{src}->{dst}" for src, dst in terms.items())
            user = (
                "根据以下术语表（可以为空）：\n"
                + gpt_dict
                + "\n将下面的日文文本根据对应关系和备注翻译成中文："
                + text
            )
        else:
            user = "将下面的日文文本翻译成中文：" + text
        return [
            {"role": "system", "content": SAKURA_SYSTEM_PROMPT},
            {"role": "user", "content": user},
        ]

    def _decode(self, output: str, expected: int) -> Optional[List[str]]:
        lines = (output or "").strip("\n").split("\n")
        if len(lines) != expected:
            return None
        return [line.strip() for line in lines]

    async def _complete(self, messages: List[dict]) -> str:
        if self._openai is not None:
            resp = await self._openai.chat.completions.create(
                model=settings.SAKURA_MODEL,
                messages=messages,
                temperature=0.1,
                top_p=0.3,
                max_tokens=1024,
                frequency_penalty=0.0,
            )
            return resp.choices[0].message.content or ""

        prompt = "".join(
            f"<|im_start|>{m['role']}\n{m['content']}<|im_end|>\n" for m in messages
        ) + "<|im_start|>assistant\n"
        resp = await self._http.post(
            self.endpoint + "/completion",
            json={
                "prompt": prompt,
                "n_predict": 1024,
                "temperature": 0.1,
                "top_p": 0.3,
                "repeat_penalty": 1.0,
                "stop": ["<|im_end|>"],
            },
        )
        if resp.status_code >= 400:
            raise TranslationError(f"Sakura 返回错误: status={resp.status_code}")
        try:
            body = resp.json()
        except ValueError as exc:
            raise TranslationError("Sakura 返回不是合法 JSON。") from exc
        return str(body.get("content") or "")


def _normalize_sakura_endpoint(endpoint: str) -> str:
    base = (endpoint or "").strip().rstrip("/")
    if base.endswith("/v1"):
        base = base[: -len("/v1")]
    return base
