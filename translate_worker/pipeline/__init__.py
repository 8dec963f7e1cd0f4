"""翻译任务执行流程"""
from translate_worker.pipeline.runner import CancelToken, JobOutcome, run_job

__all__ = [
    "CancelToken",
    "JobOutcome",
    "run_job",
]
