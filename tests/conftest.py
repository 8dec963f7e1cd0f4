"""Shared fixtures for translation job tests."""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

import pytest

from translate_worker.catalog.client import CatalogClient
from translate_worker.pipeline import runner
from translate_worker.schemas.task import TaskCallback
from translate_worker.translators.base import Translator


CATALOG_BASE = "https://catalog.test/api"


class Recorder:
    """Collects the callback stream of one job."""

    def __init__(self) -> None:
        self.events: List[tuple] = []

    def callback(self, hook: Optional[Callable[[tuple], None]] = None) -> TaskCallback:
        def record(event: tuple) -> None:
            self.events.append(event)
            if hook:
                hook(event)

        return TaskCallback(
            on_start=lambda total: record(("start", total)),
            on_chapter_success=lambda counts: record(("success", counts)),
            on_chapter_failure=lambda: record(("failure",)),
            log=lambda message: record(("log", message)),
        )

    @property
    def logs(self) -> List[str]:
        return [e[1] for e in self.events if e[0] == "log"]

    @property
    def progress(self) -> List[tuple]:
        return [e for e in self.events if e[0] != "log"]


class FakeTranslator(Translator):
    """Prefixes every paragraph; raises configured errors by first paragraph."""

    id = "fake"

    def __init__(self, errors: Optional[Dict[str, Exception]] = None) -> None:
        super().__init__({}, None)
        self.errors = dict(errors or {})
        self.calls: List[List[str]] = []
        self.closed = False

    async def _translate(self, texts: List[str]) -> List[str]:
        self.calls.append(list(texts))
        error = self.errors.get(texts[0])
        if error is not None:
            raise error
        return [f"zh:{t}" for t in texts]

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def fake_translator() -> FakeTranslator:
    return FakeTranslator()


@pytest.fixture
def install_translator(monkeypatch: pytest.MonkeyPatch) -> Callable[..., Dict[str, Any]]:
    """Route translator construction in the runner to a given object or error."""

    def install(translator: Optional[Translator] = None, error: Optional[Exception] = None) -> Dict[str, Any]:
        seen: Dict[str, Any] = {}

        async def fake_create(desc, *, glossary, log):
            seen["desc"] = desc
            seen["glossary"] = glossary
            seen["log"] = log
            if error is not None:
                raise error
            return translator

        monkeypatch.setattr(runner, "create_translator", fake_create)
        return seen

    return install


@pytest.fixture
async def catalog():
    client = CatalogClient(base_url=CATALOG_BASE, token="test-token")
    yield client
    await client.aclose()

