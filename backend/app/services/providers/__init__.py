from __future__ import annotations

from .base import BaseTaskProvider, ResultPages
from .dataforseo import DataForSEOClient


def get_task_provider() -> BaseTaskProvider:
    return DataForSEOClient()


__all__ = ["BaseTaskProvider", "ResultPages", "DataForSEOClient", "get_task_provider"]
