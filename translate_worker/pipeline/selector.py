"""Chapter selection for translation jobs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional

from translate_worker.schemas.catalog import WebChapter


@dataclass(frozen=True)
class ChapterEntry:
    chapter_id: str
    # 仅网络小说有意义：章节在目录中的位置
    index: Optional[int] = None


def _keep_web_chapter(state: str, translate_expired: bool, sync_from_provider: bool) -> bool:
    if state == "untranslated":
        return True
    if state == "expired":
        return translate_expired or sync_from_provider
    return sync_from_provider


def select_web_chapters(
    chapters: List[WebChapter],
    start_index: int,
    end_index: int,
    translate_expired: bool,
    sync_from_provider: bool,
) -> List[ChapterEntry]:
    """
    Pick chapters of a web novel inside the window [start_index, end_index).

    Untranslated chapters are always kept, expired ones when re-translating
    or syncing, translated ones only when syncing. Catalog order is kept.
    """
    indexed = list(enumerate(chapters))[start_index:end_index]
    return [
        ChapterEntry(chapter_id=chapter.id, index=index)
        for index, chapter in indexed
        if _keep_web_chapter(chapter.state, translate_expired, sync_from_provider)
    ]


def select_volume_chapters(
    untranslated: Iterable[str],
    expired: Iterable[str],
    translate_expired: bool,
) -> List[ChapterEntry]:
    """Pick chapters of a wenku/personal volume, ordered by chapter id."""
    candidates = list(untranslated)
    if translate_expired:
        candidates.extend(expired)
    return [ChapterEntry(chapter_id=chapter_id) for chapter_id in sorted(candidates)]
