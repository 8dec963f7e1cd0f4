"""Remote catalog client used by translation jobs.

Review note:
- 每个任务独占一个 httpx.AsyncClient，任务结束即关闭。
- 401/403 抛 CatalogAuthError（属于 QuitJob），其余失败抛 CatalogError。
- 传输层不做重试，失败直接交给执行循环分类。
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Type, TypeVar
from urllib.parse import quote

import httpx
from pydantic import BaseModel, TypeAdapter, ValidationError

from translate_worker.config import settings
from translate_worker.errors import CatalogAuthError, CatalogError
from translate_worker.schemas.catalog import (
    ChapterUpdate,
    MetadataUpdate,
    VolumeTranslateTask,
    WebChapterState,
    WebTranslateTask,
)


ModelT = TypeVar("ModelT", bound=BaseModel)

_paragraphs_adapter = TypeAdapter(List[str])


def _segment(value: str) -> str:
    return quote(str(value), safe="")


class CatalogClient:
    """Thin async wrapper around the catalog HTTP API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout_sec: Optional[int] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = (base_url or settings.CATALOG_BASE_URL or "").rstrip("/")
        if not self.base_url and http_client is None:
            raise CatalogError("CATALOG_BASE_URL 未配置。")
        token = settings.CATALOG_TOKEN if token is None else token
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if http_client is not None:
            self._client = http_client
            self._owns_client = False
        else:
            self._client = httpx.AsyncClient(
                base_url=self.base_url + "/",
                headers=headers,
                timeout=float(timeout_sec or settings.CATALOG_TIMEOUT_SEC),
            )
            self._owns_client = True

    async def __aenter__(self) -> "CatalogClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        try:
            resp = await self._client.request(method, path, json=json, params=params)
        except httpx.HTTPError as exc:
            raise CatalogError(f"书库请求失败: {method} {path}: {exc}") from exc

        if resp.status_code in (401, 403):
            raise CatalogAuthError(
                f"书库拒绝访问: status={resp.status_code}",
                status_code=resp.status_code,
            )
        if resp.status_code >= 400:
            detail = resp.text[:500]
            raise CatalogError(
                f"书库返回错误: status={resp.status_code}, body={detail}",
                status_code=resp.status_code,
            )
        return resp

    async def get_model(self, path: str, model: Type[ModelT]) -> ModelT:
        resp = await self.request("GET", path)
        try:
            return model.model_validate(resp.json())
        except ValueError as exc:
            raise CatalogError(f"书库返回格式错误: {path}: {exc}") from exc

    @staticmethod
    def parse_paragraphs(resp: httpx.Response) -> List[str]:
        try:
            return _paragraphs_adapter.validate_python(resp.json())
        except (ValueError, ValidationError) as exc:
            raise CatalogError(f"章节内容格式错误: {exc}") from exc


class WebTaskApi:
    """Endpoints of a catalog-sourced (web novel) translation task."""

    def __init__(self, client: CatalogClient, provider_id: str, novel_id: str, translator_id: str) -> None:
        self.client = client
        self.endpoint = (
            f"novel/{_segment(provider_id)}/{_segment(novel_id)}/translate/{_segment(translator_id)}"
        )

    async def get_task(self) -> WebTranslateTask:
        return await self.client.get_model(self.endpoint, WebTranslateTask)

    async def update_metadata(self, update: MetadataUpdate) -> str:
        resp = await self.client.request(
            "POST",
            f"{self.endpoint}/metadata",
            json=update.model_dump(exclude_none=True),
        )
        return resp.text

    async def check_chapter(self, chapter_id: str, sync: bool) -> List[str]:
        resp = await self.client.request(
            "POST",
            f"{self.endpoint}/check-chapter/{_segment(chapter_id)}",
            params={"sync": "true" if sync else "false"},
        )
        return self.client.parse_paragraphs(resp)

    async def update_chapter(self, chapter_id: str, update: ChapterUpdate) -> WebChapterState:
        resp = await self.client.request(
            "PUT",
            f"{self.endpoint}/chapter/{_segment(chapter_id)}",
            json=update.model_dump(by_alias=True, exclude_none=True),
        )
        try:
            return WebChapterState.model_validate(resp.json())
        except ValueError as exc:
            raise CatalogError(f"章节上传返回格式错误: {exc}") from exc


class VolumeTaskApi:
    """Endpoints shared by curated-library (wenku) and user-uploaded volumes."""

    def __init__(self, client: CatalogClient, endpoint: str) -> None:
        self.client = client
        self.endpoint = endpoint

    @classmethod
    def wenku(cls, client: CatalogClient, novel_id: str, volume_id: str, translator_id: str) -> "VolumeTaskApi":
        return cls(
            client,
            f"wenku/{_segment(novel_id)}/translate/{_segment(translator_id)}/{_segment(volume_id)}",
        )

    @classmethod
    def personal(cls, client: CatalogClient, volume_id: str, translator_id: str) -> "VolumeTaskApi":
        return cls(
            client,
            f"personal/translate/{_segment(translator_id)}/{_segment(volume_id)}",
        )

    async def get_task(self) -> VolumeTranslateTask:
        return await self.client.get_model(self.endpoint, VolumeTranslateTask)

    async def get_chapter(self, chapter_id: str) -> List[str]:
        resp = await self.client.request("GET", f"{self.endpoint}/{_segment(chapter_id)}")
        return self.client.parse_paragraphs(resp)

    async def update_chapter(self, chapter_id: str, update: ChapterUpdate) -> int:
        resp = await self.client.request(
            "PUT",
            f"{self.endpoint}/{_segment(chapter_id)}",
            json=update.model_dump(by_alias=True, exclude_none=True),
        )
        try:
            return int(resp.json())
        except (TypeError, ValueError) as exc:
            raise CatalogError(f"章节上传返回格式错误: {resp.text[:200]}") from exc
