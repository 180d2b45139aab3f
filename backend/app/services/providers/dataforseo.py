# backend/app/services/providers/dataforseo.py

from __future__ import annotations

from typing import Any, Dict, List, Optional

import json
import logging
import re
import time

import httpx

from .base import BaseTaskProvider, ResultPages
from ..errors import ProviderError, TaskPending

from ...core.config import get_settings

logger = logging.getLogger(__name__)

# Requested review depth, bounded to respect provider limits
FULL_HISTORY_DEPTH = 500
RECENT_DEPTH = 100
TASK_PRIORITY = 2

# 20000 "Ok.", 40601 "Task Handed.", 40602 "Task In Queue."
OK_STATUS_CODE = 20000
PENDING_STATUS_CODES = {40601, 40602}
PENDING_STATUS_MESSAGES = {"task in queue", "task in queue.", "task processing", "task handed", "task handed."}

TRIPADVISOR_PATH_PATTERNS = [
    re.compile(r"tripadvisor\.[a-z.]+(/(?:Attraction_Review|Restaurant_Review|Hotel_Review)-g\d+-d\d+-Reviews-.+\.html)"),
    re.compile(r"tripadvisor\.[a-z.]+(/.*-Reviews-.+\.html)"),
]


def review_depth(full_history: bool) -> int:
    return FULL_HISTORY_DEPTH if full_history else RECENT_DEPTH


def extract_tripadvisor_path(business_id: str) -> str:
    """
    Reduce a TripAdvisor URL to the url_path DataForSEO expects.
    Anything that does not look like a URL is assumed to be a path already.
    """
    business_id = (business_id or "").strip()
    if not business_id:
        raise ProviderError("Missing TripAdvisor URL")
    if not business_id.startswith("http"):
        return business_id

    for pattern in TRIPADVISOR_PATH_PATTERNS:
        match = pattern.search(business_id)
        if match:
            return match.group(1)

    raise ProviderError("Invalid TripAdvisor URL format")


class DataForSEOClient(BaseTaskProvider):
    """
    Thin async client for the DataForSEO business data reviews API
    (task_post / task_get). No retries: every call is a single request
    bounded by `timeout`.
    """

    name = "dataforseo"

    def __init__(
        self,
        username: Optional[str] = None,
        password: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        settings = get_settings()
        self.username = username or settings.DATAFORSEO_USERNAME
        self.password = password or settings.DATAFORSEO_PASSWORD
        if not self.username or not self.password:
            raise ProviderError("DataForSEO credentials not configured")

        self.base_url: str = (base_url or settings.DATAFORSEO_BASE_URL).rstrip("/")
        self.timeout: float = float(timeout or settings.DATAFORSEO_TIMEOUT_SECONDS)
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            auth=httpx.BasicAuth(self.username, self.password),
            timeout=self.timeout,
            transport=self._transport,
        )

    def _build_task(self, platform: str, target: str, full_history: bool) -> Dict[str, Any]:
        task: Dict[str, Any] = {
            "priority": TASK_PRIORITY,
            "depth": review_depth(full_history),
            "tag": f"{platform}_{int(time.time() * 1000)}",
        }
        if platform == "tripadvisor":
            task["url_path"] = extract_tripadvisor_path(target)
        elif platform == "google":
            if not (target or "").strip():
                raise ProviderError("Missing Google business identifier")
            task["keyword"] = target.strip()
        else:
            raise ProviderError(f"Unsupported platform: {platform}")
        return task

    async def _request(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                resp = await client.request(method, url, **kwargs)
                resp.raise_for_status()
                return resp.json()
        except httpx.HTTPStatusError as e:
            body = e.response.text[:500]
            raise ProviderError(f"DataForSEO API error: {e.response.status_code} - {body}") from e
        except httpx.HTTPError as e:
            raise ProviderError(f"DataForSEO request failed: {e}") from e
        except ValueError as e:
            raise ProviderError(f"DataForSEO returned invalid JSON: {e}") from e

    async def submit(self, platform: str, target: str, full_history: bool) -> str:
        task = self._build_task(platform, target, full_history)
        logger.info(
            "Creating DataForSEO task",
            extra={"platform": platform, "step": "provider:submit"},
        )

        body = await self._request("POST", f"{self.base_url}/{platform}/reviews/task_post", json=[task])

        tasks = body.get("tasks") or []
        task_id = tasks[0].get("id") if tasks and isinstance(tasks[0], dict) else None
        if not task_id:
            raise ProviderError(
                f"DataForSEO task creation failed: {json.dumps(body, default=str)[:500]}"
            )

        logger.info(
            "Created DataForSEO task %s",
            task_id,
            extra={"platform": platform, "task_id": task_id, "step": "provider:submit"},
        )
        return task_id

    async def fetch(self, task_id: str, platform: str) -> ResultPages:
        """
        Returns one page per result set, each the list of raw review items.

        Raises:
            TaskPending: the task is queued/processing.
            ProviderError: the task failed or the request did not succeed.
        """
        if platform not in ("tripadvisor", "google"):
            raise ProviderError(f"Unsupported platform: {platform}")

        body = await self._request("GET", f"{self.base_url}/{platform}/reviews/task_get/{task_id}")

        tasks = body.get("tasks") or []
        task_result = tasks[0] if tasks else None
        if not task_result:
            raise ProviderError("No task result found")

        status_code = task_result.get("status_code")
        status_message = task_result.get("status_message") or ""

        if status_code in PENDING_STATUS_CODES or status_message.strip().lower() in PENDING_STATUS_MESSAGES:
            raise TaskPending(task_id, status_message)

        if status_code != OK_STATUS_CODE and not status_message.lower().startswith("ok"):
            raise ProviderError(f"DataForSEO task failed: {status_message or status_code}")

        pages: List[List[Dict[str, Any]]] = []
        for result_set in task_result.get("result") or []:
            items = (result_set or {}).get("items") or []
            pages.append([item for item in items if isinstance(item, dict)])

        logger.info(
            "Retrieved %s result sets from task %s",
            len(pages),
            task_id,
            extra={"platform": platform, "task_id": task_id, "step": "provider:fetch"},
        )
        return pages
