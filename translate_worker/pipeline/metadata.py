"""Flatten web novel metadata into one translation batch and back.

The batch order is title (if any), introduction (if any), then every TOC
entry. `decode_metadata` consumes the translated batch in the same order and
keys translated TOC entries by their original text.
"""

from __future__ import annotations

from typing import List

from translate_worker.schemas.catalog import MetadataUpdate, WebTranslateTask


def encode_metadata(task: WebTranslateTask) -> List[str]:
    query: List[str] = []
    if task.title:
        query.append(task.title)
    if task.introduction:
        query.append(task.introduction)
    query.extend(task.toc)
    return query


def decode_metadata(task: WebTranslateTask, translated: List[str]) -> MetadataUpdate:
    expected = len(encode_metadata(task))
    if len(translated) < expected:
        raise ValueError(
            f"元数据译文数量不足: expected={expected}, got={len(translated)}"
        )

    remaining = iter(translated)
    update = MetadataUpdate()
    if task.title:
        update.title = next(remaining)
    if task.introduction:
        update.introduction = next(remaining)
    for text_jp in task.toc:
        update.toc[text_jp] = next(remaining)
    return update
