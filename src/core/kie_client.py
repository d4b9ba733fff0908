"""
Kie.AI job runner client.

Submits image-to-image generation jobs and queries their state. Provider
payloads are validated into Pydantic models at this boundary; the rest of
the application only sees ``RemoteTaskStatus``.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Literal, Optional

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from src.core.config import KieConfig, DEFAULT_ASPECT_RATIO, DEFAULT_RESOLUTION
from src.core.retry import async_retry

logger = logging.getLogger(__name__)

RemoteState = Literal["waiting", "success", "fail"]


class KieAPIError(Exception):
    """Raised when the provider rejects a request or returns an unusable payload."""


class KieConfigurationError(KieAPIError):
    """Raised when the client is used without an API key."""


class KieEnvelope(BaseModel):
    """Outer ``{code, msg, data}`` wrapper used by every Kie.AI response."""
    model_config = ConfigDict(extra="ignore")

    code: int
    msg: str = ""
    data: Optional[dict[str, Any]] = None


class KieCreateTaskData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    taskId: str


class KieTaskRecord(BaseModel):
    """Job record returned by recordInfo and posted to the callback URL."""
    model_config = ConfigDict(extra="ignore")

    taskId: str
    state: str
    model: Optional[str] = None
    resultJson: Optional[str] = None
    failCode: Optional[Any] = None
    failMsg: Optional[str] = None


@dataclass
class RemoteTaskStatus:
    """Normalized remote job state."""
    kie_task_id: str
    state: RemoteState
    result_url: Optional[str] = None
    error_message: Optional[str] = None


def extract_result_url(result_json: Optional[str]) -> Optional[str]:
    """Pull the first entry of ``resultUrls`` out of the provider's JSON string."""
    if not result_json:
        return None
    try:
        parsed = json.loads(result_json)
    except (TypeError, ValueError) as e:
        logger.warning(f"Failed to parse resultJson: {e}")
        return None
    if not isinstance(parsed, dict):
        return None
    urls = parsed.get("resultUrls")
    if not isinstance(urls, list) or not urls:
        return None
    first = urls[0]
    if not isinstance(first, str) or not first:
        return None
    return first


def to_remote_status(record: KieTaskRecord) -> RemoteTaskStatus:
    """
    Map a provider record onto the three states we act on.

    Intermediate provider states (queuing, generating, ...) are "waiting".
    A success without a readable result URL is also "waiting": the job is
    not finished from our point of view until there is something to save.
    """
    if record.state == "fail":
        return RemoteTaskStatus(
            kie_task_id=record.taskId,
            state="fail",
            error_message=record.failMsg or None,
        )
    if record.state == "success":
        result_url = extract_result_url(record.resultJson)
        if result_url:
            return RemoteTaskStatus(
                kie_task_id=record.taskId, state="success", result_url=result_url,
            )
        logger.warning(f"Task {record.taskId} reported success without a result URL")
    return RemoteTaskStatus(kie_task_id=record.taskId, state="waiting")


def parse_envelope(payload: Any) -> KieEnvelope:
    try:
        return KieEnvelope.model_validate(payload)
    except ValidationError as e:
        raise KieAPIError(f"Malformed provider response: {e.error_count()} validation errors") from e


def parse_task_record(envelope: KieEnvelope) -> KieTaskRecord:
    if envelope.code != 200:
        raise KieAPIError(envelope.msg or f"Provider returned code {envelope.code}")
    try:
        return KieTaskRecord.model_validate(envelope.data or {})
    except ValidationError as e:
        raise KieAPIError("Malformed task record in provider response") from e


class KieClient:
    """Client for the Kie.AI jobs API.

    Reuses one httpx.AsyncClient for the lifetime of the application.
    Call ``close()`` on shutdown.
    """

    def __init__(self, config: KieConfig, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._client = client or httpx.AsyncClient(timeout=config.timeout)

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }

    def _check_api_key(self) -> None:
        if not self.config.validate():
            raise KieConfigurationError("KIE_AI_API_KEY is not configured")

    async def close(self) -> None:
        await self._client.aclose()

    async def create_task(
        self,
        prompt: str,
        image_url: str,
        aspect_ratio: str = DEFAULT_ASPECT_RATIO,
        resolution: str = DEFAULT_RESOLUTION,
    ) -> str:
        """Submit a generation job and return the provider's task id."""
        self._check_api_key()

        payload: dict[str, Any] = {
            "model": self.config.model,
            "input": {
                "prompt": prompt,
                "image_input": [image_url],
                "aspect_ratio": aspect_ratio,
                "resolution": resolution,
                "output_format": "png",
            },
        }
        if self.config.callback_url:
            payload["callBackUrl"] = self.config.callback_url

        try:
            response = await self._client.post(
                f"{self.config.base_url}/jobs/createTask",
                headers=self.headers,
                json=payload,
            )
        except httpx.HTTPError as e:
            raise KieAPIError(f"Kie.AI request failed: {e}") from e

        if response.status_code >= 400:
            logger.error(f"Kie.AI API error: {response.status_code} {response.text[:500]}")
            raise KieAPIError(f"Kie.AI API error: {response.status_code}")

        envelope = parse_envelope(_json_or_none(response))
        if envelope.code != 200:
            raise KieAPIError(envelope.msg or "Failed to create task")
        try:
            data = KieCreateTaskData.model_validate(envelope.data or {})
        except ValidationError as e:
            raise KieAPIError("Provider did not return a task id") from e

        logger.info(f"Kie.AI task created: {data.taskId}")
        return data.taskId

    @async_retry(max_attempts=2, backoff_base=0.5, retry_on=(httpx.TransportError,))
    async def _fetch_record(self, kie_task_id: str) -> httpx.Response:
        return await self._client.get(
            f"{self.config.base_url}/jobs/recordInfo",
            params={"taskId": kie_task_id},
            headers=self.headers,
        )

    async def get_task_status(self, kie_task_id: str) -> RemoteTaskStatus:
        """Query the provider for the current state of a job."""
        self._check_api_key()

        try:
            response = await self._fetch_record(kie_task_id)
        except httpx.HTTPError as e:
            raise KieAPIError(f"Kie.AI request failed: {e}") from e

        if response.status_code >= 400:
            raise KieAPIError(f"Kie.AI API error: {response.status_code}")

        record = parse_task_record(parse_envelope(_json_or_none(response)))
        return to_remote_status(record)


def _json_or_none(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None
