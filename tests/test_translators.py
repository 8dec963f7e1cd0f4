"""Translator backend tests."""

from __future__ import annotations

import json
from typing import List, Optional
from unittest.mock import AsyncMock
from urllib.parse import parse_qs

import httpx
import pytest
import respx

from translate_worker.config import settings
from translate_worker.errors import (
    QuitJob,
    TranslationError,
    TranslatorAuthError,
    TranslatorConfigError,
)
from translate_worker.schemas.task import GptDesc, SakuraDesc
from translate_worker.translators import BACKENDS, create_translator, get_backend
from translate_worker.translators import base
from translate_worker.translators.base import (
    Translator,
    apply_glossary,
    call_with_retries,
    chunk_paragraphs,
    glossary_for,
)
from translate_worker.translators.llm import ChatTranslator, GptTranslator, SakuraTranslator
from translate_worker.translators.web_engines import (
    BaiduTranslator,
    WebEngineTranslator,
    YoudaoTranslator,
)

from tests.conftest import FakeTranslator


@pytest.fixture
def no_sleep(monkeypatch: pytest.MonkeyPatch) -> AsyncMock:
    sleep = AsyncMock()
    monkeypatch.setattr(base.asyncio, "sleep", sleep)
    return sleep


@pytest.fixture
def single_attempt(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "TRANSLATOR_MAX_RETRIES", 1)


class TestTranslatorContract:
    """Length and order guarantees of Translator.translate."""

    async def test_empty_input_skips_backend(self) -> None:
        translator = FakeTranslator()

        assert await translator.translate([]) == []
        assert translator.calls == []

    async def test_blank_paragraphs_kept_in_place(self) -> None:
        translator = FakeTranslator()

        result = await translator.translate(["一", "", "  ", "二"])

        assert result == ["zh:一", "", "  ", "zh:二"]
        assert translator.calls == [["一", "二"]]

    async def test_only_blank_paragraphs(self) -> None:
        translator = FakeTranslator()

        assert await translator.translate(["", " "]) == ["", " "]
        assert translator.calls == []

    async def test_count_mismatch_is_an_error(self) -> None:
        class Lossy(Translator):
            async def _translate(self, texts: List[str]) -> List[str]:
                return texts[:-1]

        with pytest.raises(TranslationError):
            await Lossy().translate(["一", "二"])


class TestHelpers:
    def test_glossary_longest_term_first(self) -> None:
        assert apply_glossary("太郎と太", {"太": "X", "太郎": "Taro"}) == "TaroとX"

    def test_glossary_subset(self) -> None:
        assert glossary_for(["花子です"], {"花子": "Hanako", "太郎": "Taro"}) == {"花子": "Hanako"}

    def test_chunks_respect_both_limits(self) -> None:
        assert chunk_paragraphs(["aa", "bb", "cc"], max_chars=4, max_lines=10) == [["aa", "bb"], ["cc"]]
        assert chunk_paragraphs(["a", "b", "c"], max_chars=100, max_lines=2) == [["a", "b"], ["c"]]

    def test_oversized_paragraph_gets_its_own_chunk(self) -> None:
        assert chunk_paragraphs(["a" * 10, "b"], max_chars=4, max_lines=10) == [["a" * 10], ["b"]]

    async def test_retries_then_succeeds(self, no_sleep: AsyncMock) -> None:
        fn = AsyncMock(side_effect=[RuntimeError("flaky"), "ok"])
        logs: List[str] = []

        assert await call_with_retries(fn, retries=3, log=logs.append) == "ok"
        assert fn.await_count == 2
        assert no_sleep.await_count == 1
        assert len(logs) == 1

    async def test_gives_up_with_translation_error(self, no_sleep: AsyncMock) -> None:
        fn = AsyncMock(side_effect=RuntimeError("down"))

        with pytest.raises(TranslationError):
            await call_with_retries(fn, retries=2)
        assert fn.await_count == 2

    async def test_quit_is_not_retried(self, no_sleep: AsyncMock) -> None:
        fn = AsyncMock(side_effect=TranslatorAuthError("revoked"))

        with pytest.raises(QuitJob):
            await call_with_retries(fn, retries=3)
        assert fn.await_count == 1
        assert no_sleep.await_count == 0


class TestWebEngines:
    async def test_baidu_applies_glossary_and_splits_lines(self) -> None:
        translator = BaiduTranslator({"太郎": "Taro"})
        with respx.mock(assert_all_called=False) as mock:
            route = mock.post(BaiduTranslator.url).respond(
                json={"data": [{"dst": "是Taro"}, {"dst": "是的"}]}
            )
            result = await translator.translate(["太郎です", "はい"])
        await translator.aclose()

        assert result == ["是Taro", "是的"]
        form = parse_qs(route.calls.last.request.content.decode())
        assert form["query"] == ["Taroです\nはい"]
        assert form["from"] == ["jp"]

    async def test_baidu_line_mismatch(self, single_attempt: None) -> None:
        translator = BaiduTranslator()
        with respx.mock(assert_all_called=False) as mock:
            mock.post(BaiduTranslator.url).respond(json={"data": [{"dst": "一"}]})
            with pytest.raises(TranslationError):
                await translator.translate(["一", "二"])
        await translator.aclose()

    async def test_youdao_joins_sentences_per_paragraph(self) -> None:
        translator = YoudaoTranslator()
        with respx.mock(assert_all_called=False) as mock:
            route = mock.get(YoudaoTranslator.url).respond(
                json={
                    "errorCode": 0,
                    "translateResult": [[{"tgt": "甲"}, {"tgt": "乙"}], [{"tgt": "丙"}]],
                }
            )
            result = await translator.translate(["あ。い。", "う"])
        await translator.aclose()

        assert result == ["甲乙", "丙"]
        assert route.calls.last.request.url.params["type"] == "JA2ZH_CN"

    async def test_youdao_error_code(self, single_attempt: None) -> None:
        translator = YoudaoTranslator()
        with respx.mock(assert_all_called=False) as mock:
            mock.get(YoudaoTranslator.url).respond(json={"errorCode": 40})
            with pytest.raises(TranslationError):
                await translator.translate(["あ"])
        await translator.aclose()


class ScriptedChat(ChatTranslator):
    """Plain newline protocol with canned replies."""

    id = "scripted"

    def __init__(self, replies: List[str]) -> None:
        super().__init__()
        self.replies = list(replies)
        self.prompts: List[str] = []
        self.logs: List[str] = []
        self.log = self.logs.append

    def _build_messages(self, lines: List[str]) -> List[dict]:
        return [{"role": "user", "content": "\n".join(lines)}]

    def _decode(self, output: str, expected: int) -> Optional[List[str]]:
        parts = output.split("\n")
        return parts if len(parts) == expected else None

    async def _complete(self, messages: List[dict]) -> str:
        self.prompts.append(messages[0]["content"])
        return self.replies.pop(0)


class TestTemplateHooks:
    """Backends must implement every protocol hook before they can be built."""

    def test_chat_translator_is_abstract(self) -> None:
        with pytest.raises(TypeError):
            ChatTranslator()

    def test_web_engine_is_abstract(self) -> None:
        with pytest.raises(TypeError):
            WebEngineTranslator()


class TestChatFallback:
    async def test_falls_back_to_one_paragraph_at_a_time(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings, "TRANSLATOR_MAX_RETRIES", 2)
        translator = ScriptedChat(["只有一行", "还是一行", "甲", "乙"])

        result = await translator.translate(["a", "b"])
        await translator.aclose()

        assert result == ["甲", "乙"]
        assert translator.prompts == ["a\nb", "a\nb", "a", "b"]
        assert "分批翻译失败，改为逐段翻译" in translator.logs

    async def test_single_paragraph_that_never_decodes(self, single_attempt: None) -> None:
        translator = ScriptedChat(["x\ny"])

        with pytest.raises(TranslationError):
            await translator.translate(["a"])
        await translator.aclose()


def _sse(*chunks: str) -> str:
    events = [
        "data: " + json.dumps({"choices": [{"delta": {"content": chunk}}]}, ensure_ascii=False)
        for chunk in chunks
    ]
    return "\n\n".join(events + ["data: [DONE]"]) + "\n\n"


class TestGptTranslator:
    def test_decode_numbered_lines(self) -> None:
        translator = GptTranslator(mode="web", endpoint="https://proxy.test", key="tok")

        assert translator._decode("#2: 乙\n#1：甲", 2) == ["甲", "乙"]
        assert translator._decode("#1: 甲", 2) is None

    def test_decode_keeps_continuation_lines(self) -> None:
        translator = GptTranslator(mode="web", endpoint="https://proxy.test", key="tok")

        assert translator._decode("#1: 甲\n乙\n\n#2: 丙", 2) == ["甲\n乙", "丙"]

    async def test_multiline_paragraph_is_not_truncated(self) -> None:
        translator = GptTranslator(mode="web", endpoint="https://proxy.test", key="tok")
        translator._complete = AsyncMock(return_value="#1: 第一行\n第二行")

        result = await translator.translate(["一行目\n二行目"])
        await translator.aclose()

        assert result == ["第一行\n第二行"]
        prompt = translator._complete.await_args.args[0][-1]["content"]
        assert prompt.endswith("#1: 一行目 二行目")

    async def test_web_mode_streams(self) -> None:
        translator = GptTranslator(mode="web", endpoint="https://proxy.test/api/", key="tok")
        with respx.mock(assert_all_called=False) as mock:
            route = mock.post("https://proxy.test/api/chat/completions").respond(
                text=_sse("#1: 你", "好\n#2: 再见"),
                headers={"Content-Type": "text/event-stream"},
            )
            result = await translator.translate(["こんにちは", "さようなら"])
        await translator.aclose()

        assert result == ["你好", "再见"]
        request = route.calls.last.request
        assert request.headers["Authorization"] == "Bearer tok"
        assert json.loads(request.content)["stream"] is True

    async def test_web_mode_rejected_token_quits(self) -> None:
        translator = GptTranslator(mode="web", endpoint="https://proxy.test", key="tok")
        with respx.mock(assert_all_called=False) as mock:
            route = mock.post("https://proxy.test/chat/completions").respond(status_code=401)
            with pytest.raises(TranslatorAuthError):
                await translator.translate(["一"])
        await translator.aclose()

        assert route.call_count == 1

    async def test_api_mode_uses_openai_client(self) -> None:
        translator = GptTranslator(mode="api", endpoint="https://openai.test/v1", key="sk-test")
        completion = {
            "id": "chatcmpl-1",
            "object": "chat.completion",
            "created": 0,
            "model": "gpt-3.5-turbo",
            "choices": [
                {
                    "index": 0,
                    "message": {"role": "assistant", "content": "#1: 你好"},
                    "finish_reason": "stop",
                }
            ],
        }
        with respx.mock(assert_all_called=False) as mock:
            route = mock.post("https://openai.test/v1/chat/completions").respond(json=completion)
            result = await translator.translate(["こんにちは"])
        await translator.aclose()

        assert result == ["你好"]
        assert route.calls.last.request.headers["Authorization"] == "Bearer sk-test"

    async def test_api_mode_auth_failure_quits(self) -> None:
        translator = GptTranslator(mode="api", endpoint="https://openai.test/v1", key="sk-bad")
        with respx.mock(assert_all_called=False) as mock:
            mock.post("https://openai.test/v1/chat/completions").respond(
                status_code=401, json={"error": {"message": "invalid key"}}
            )
            with pytest.raises(TranslatorAuthError):
                await translator.translate(["一"])
        await translator.aclose()


class TestSakuraTranslator:
    async def test_llama_api_prompt_and_decode(self) -> None:
        with respx.mock(assert_all_called=False) as mock:
            mock.get("http://sakura.test/health").respond(json={"status": "ok"})
            route = mock.post("http://sakura.test/completion").respond(
                json={"content": "太郎你好\n再见\n"}
            )
            translator = await create_translator(
                SakuraDesc(id="sakura", endpoint="http://sakura.test/v1/", use_llama_api=True),
                glossary={"太郎": "太郎"},
                log=lambda message: None,
            )
            result = await translator.translate(["太郎こんにちは", "さようなら"])
        await translator.aclose()

        assert result == ["太郎你好", "再见"]
        prompt = json.loads(route.calls.last.request.content)["prompt"]
        assert prompt.endswith("<|im_start|>assistant\n")
        assert "太郎->太郎" in prompt

    async def test_multiline_paragraph_sent_as_one_line(self) -> None:
        translator = SakuraTranslator(endpoint="http://sakura.test", use_llama_api=True)
        with respx.mock(assert_all_called=False) as mock:
            route = mock.post("http://sakura.test/completion").respond(json={"content": "一二\n三"})
            result = await translator.translate(["一行目\n二行目", "三行目"])
        await translator.aclose()

        assert result == ["一二", "三"]
        assert route.call_count == 1
        prompt = json.loads(route.calls.last.request.content)["prompt"]
        assert "一行目 二行目\n三行目" in prompt

    async def test_unreachable_service_fails_creation(self) -> None:
        with respx.mock(assert_all_called=False) as mock:
            mock.get("http://sakura.test/v1/models").respond(status_code=503)
            with pytest.raises(TranslatorConfigError):
                await create_translator(
                    SakuraDesc(id="sakura", endpoint="http://sakura.test"),
                    glossary={},
                    log=lambda message: None,
                )

    async def test_connection_error_fails_creation(self) -> None:
        with respx.mock(assert_all_called=False) as mock:
            mock.get("http://sakura.test/health").mock(side_effect=httpx.ConnectError("refused"))
            with pytest.raises(TranslatorConfigError):
                await SakuraTranslator.create(
                    SakuraDesc(id="sakura", endpoint="http://sakura.test", use_llama_api=True),
                    {},
                    lambda message: None,
                )


class TestRegistry:
    def test_only_gpt_skips_metadata(self) -> None:
        assert {bid for bid, spec in BACKENDS.items() if not spec.translates_metadata} == {"gpt"}
        assert get_backend("gpt").label == "GPT"

    def test_unknown_backend(self) -> None:
        with pytest.raises(TranslatorConfigError):
            get_backend("deepl")

    async def test_gpt_requires_key(self) -> None:
        with pytest.raises(TranslatorConfigError):
            await create_translator(
                GptDesc(id="gpt", type="api", key=" "), glossary={}, log=lambda message: None
            )

    async def test_gpt_web_requires_endpoint(self) -> None:
        with pytest.raises(TranslatorConfigError):
            await create_translator(
                GptDesc(id="gpt", type="web", key="tok"), glossary={}, log=lambda message: None
            )

    async def test_gpt_api_defaults_endpoint(self) -> None:
        translator = await create_translator(
            GptDesc(id="gpt", type="api", key="sk-test"), glossary={}, log=lambda message: None
        )
        try:
            assert translator.endpoint == settings.GPT_API_BASE_URL.rstrip("/")
        finally:
            await translator.aclose()
