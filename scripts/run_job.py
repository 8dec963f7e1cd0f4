"""命令行执行一个翻译任务。

Review note:
- 适合在服务器上直接跑批：进度与日志打印到终端，结束时输出汇总。
- 示例：python scripts/run_job.py web syosetu n1234ab --translator sakura --endpoint http://127.0.0.1:8080
"""
import argparse
import asyncio
import logging
import sys
from pathlib import Path

# 添加项目根目录到Python路径
sys.path.insert(0, str(Path(__file__).parent.parent))

from pydantic import TypeAdapter

from translate_worker.pipeline import run_job
from translate_worker.schemas.task import (
    ChapterCounts,
    TaskCallback,
    TaskIn,
    TranslatorDesc,
)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="批量翻译小说章节")
    sub = parser.add_subparsers(dest="type", required=True)

    web = sub.add_parser("web", help="网络小说")
    web.add_argument("provider_id")
    web.add_argument("novel_id")
    web.add_argument("--sync", action="store_true", help="与来源站点同步")
    web.add_argument("--start", type=int, default=0, help="起始章节序号（包含）")
    web.add_argument("--end", type=int, default=65536, help="结束章节序号（不包含）")

    wenku = sub.add_parser("wenku", help="文库小说分卷")
    wenku.add_argument("novel_id")
    wenku.add_argument("volume_id")

    personal = sub.add_parser("personal", help="个人上传分卷")
    personal.add_argument("volume_id")

    for p in (web, wenku, personal):
        p.add_argument("--translator", choices=["baidu", "youdao", "gpt", "sakura"], default="baidu")
        p.add_argument("--gpt-type", choices=["web", "api"], default="api")
        p.add_argument("--endpoint", default="")
        p.add_argument("--key", default="")
        p.add_argument("--llama-api", action="store_true", help="Sakura 使用 llama.cpp 原生接口")
        p.add_argument("--expire", action="store_true", help="重新翻译过期章节")
    return parser


def _task_payload(args: argparse.Namespace) -> dict:
    payload = {"type": args.type, "translate_expired": args.expire}
    if args.type == "web":
        payload.update(
            provider_id=args.provider_id,
            novel_id=args.novel_id,
            sync_from_provider=args.sync,
            start_index=args.start,
            end_index=args.end,
        )
    elif args.type == "wenku":
        payload.update(novel_id=args.novel_id, volume_id=args.volume_id)
    else:
        payload.update(volume_id=args.volume_id)
    return payload


def _translator_payload(args: argparse.Namespace) -> dict:
    if args.translator == "gpt":
        return {"id": "gpt", "type": args.gpt_type, "endpoint": args.endpoint, "key": args.key}
    if args.translator == "sakura":
        return {"id": "sakura", "endpoint": args.endpoint, "use_llama_api": args.llama_api}
    return {"id": args.translator}


async def main(argv=None) -> int:
    args = _build_parser().parse_args(argv)
    summary = {"total": 0, "finished": 0, "failed": 0}

    def on_start(total: int) -> None:
        summary["total"] = total
        print(f"共 {total} 章")

    def on_chapter_success(counts: ChapterCounts) -> None:
        summary["finished"] += 1
        print(f"成功 jp={counts.source} zh={counts.target}")

    def on_chapter_failure() -> None:
        summary["failed"] += 1

    callback = TaskCallback(
        on_start=on_start,
        on_chapter_success=on_chapter_success,
        on_chapter_failure=on_chapter_failure,
        log=print,
    )
    task_in = TypeAdapter(TaskIn).validate_python(_task_payload(args))
    translator = TypeAdapter(TranslatorDesc).validate_python(_translator_payload(args))

    outcome = await run_job(task_in.to_desc(callback), translator)
    print(
        f"\n任务结束（{outcome.value}）：共 {summary['total']} 章，"
        f"成功 {summary['finished']}，失败 {summary['failed']}"
    )
    return 0 if outcome.value == "completed" else 1


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    sys.exit(asyncio.run(main()))
