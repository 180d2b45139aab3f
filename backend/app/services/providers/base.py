from abc import ABC, abstractmethod
from typing import Any, Dict, List

ResultPages = List[List[Dict[str, Any]]]


class BaseTaskProvider(ABC):
    """
    Asynchronous task API contract.

    Implementations never retry; poll cadence belongs to the orchestrator.
    """

    name: str

    @abstractmethod
    async def submit(self, platform: str, target: str, full_history: bool) -> str:
        ...

    @abstractmethod
    async def fetch(self, task_id: str, platform: str) -> ResultPages:
        ...
