"""
HTTP uploader for document batches.

Sends each batch to ``{url}/indexes/{index}/documents``:
    - POST for add-or-replace, PUT for add-or-update
    - ``?primaryKey=`` when a primary key is configured
    - ``Authorization: Bearer <api_key>`` when an API key is configured
    - JSON array body, gzip-compressed unless disabled

Response handling:
    2xx                      -> accepted (the server enqueues a task)
    429, 5xx, network errors -> transient, retried with exponential backoff
    "system" error bodies    -> transient (server failed to register the task)
    other 4xx                -> fatal, the run aborts
"""
import gzip
import json
import logging
import time
from typing import Callable, Optional
from urllib.parse import quote

import httpx

from importer import __version__
from importer.batching import Batch
from importer.core.enums import RetryState, UploadOperation
from importer.core.exceptions import (
    FatalUploadError,
    TooManyErrors,
    TransientUploadError,
    UploadError,
)
from .retry import RetryPolicy, UploadTask

logger = logging.getLogger(__name__)

# Error "type" the search engine reports for internal failures,
# including a task that could not be enqueued
TRANSIENT_ERROR_TYPES = {"system"}

_MAX_ERROR_BODY = 500


def documents_url(base_url: str, index: str) -> str:
    """Build the documents endpoint of an index."""
    return f"{base_url.rstrip('/')}/indexes/{quote(index, safe='')}/documents"


class Uploader:
    """
    Uploads batches one at a time with retry.

    Example:
        with Uploader("http://localhost:7700", "movies", api_key="key") as uploader:
            task = uploader.upload(batch)
            print(task.attempts)
    """

    def __init__(
        self,
        url: str,
        index: str,
        api_key: Optional[str] = None,
        primary_key: Optional[str] = None,
        operation: UploadOperation = UploadOperation.ADD_OR_REPLACE,
        policy: Optional[RetryPolicy] = None,
        gzip_payload: bool = True,
        timeout: float = 300.0,
        verify_tls: bool = True,
        client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize uploader.

        Args:
            url: Base URL of the search engine
            index: Target index name
            api_key: Bearer token (omitted from requests when None)
            primary_key: Passed as the primaryKey query parameter when set
            operation: Replace or update semantics
            policy: Retry policy (defaults: 100 ms base, 1 h cap, 20 attempts)
            gzip_payload: Compress request bodies
            timeout: Per-request timeout in seconds
            verify_tls: Verify server certificates
            client: Pre-built httpx client (tests inject a MockTransport here)
            sleep: Blocking wait used between retries
        """
        self.url = documents_url(url, index)
        self.index = index
        self.operation = UploadOperation(operation)
        self.policy = policy or RetryPolicy()
        self.gzip_payload = gzip_payload
        self._sleep = sleep
        self._owns_client = client is None
        self.client = client or httpx.Client(timeout=timeout, verify=verify_tls)

        self.params = {"primaryKey": primary_key} if primary_key else {}
        self.headers = {
            "Content-Type": "application/json",
            "User-Agent": f"docimport/{__version__}",
        }
        if api_key:
            self.headers["Authorization"] = f"Bearer {api_key}"
        if gzip_payload:
            self.headers["Content-Encoding"] = "gzip"

        self.stats = {
            "batches_uploaded": 0,
            "requests": 0,
            "retries": 0,
        }

    @classmethod
    def from_config(cls, config, **kwargs) -> "Uploader":
        """Build from an ImporterConfig; kwargs override (client, sleep)."""
        return cls(
            url=config.url,
            index=config.index,
            api_key=config.api_key,
            primary_key=config.primary_key,
            operation=config.upload_operation,
            policy=RetryPolicy.from_config(config.retry),
            gzip_payload=config.http.gzip,
            timeout=config.http.timeout_seconds,
            verify_tls=config.http.verify_tls,
            **kwargs,
        )

    def __enter__(self) -> "Uploader":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def close(self):
        if self._owns_client:
            self.client.close()

    def upload(self, batch: Batch) -> UploadTask:
        """
        Send one batch, retrying transient failures.

        Returns:
            The finished task (state SUCCEEDED)

        Raises:
            FatalUploadError: On a non-retryable response
            TooManyErrors: When every attempt failed
        """
        body = batch.payload()
        if self.gzip_payload:
            body = gzip.compress(body)

        task = UploadTask(
            url=self.url,
            operation=self.operation,
            payload=body,
            policy=self.policy,
        )

        while True:
            task.begin_attempt()
            try:
                self._send(task)
            except UploadError as e:
                state = task.fail(e)
                if state is RetryState.FAILED:
                    if isinstance(e, FatalUploadError):
                        logger.error(
                            f"[Uploader] Batch {batch.number} rejected on attempt "
                            f"{task.attempts}: {e}"
                        )
                        raise
                    raise TooManyErrors(
                        f"Batch {batch.number} failed {task.attempts} times, giving up. "
                        f"Last error: {e}",
                        status_code=e.status_code,
                        attempts=task.attempts,
                    ) from e

                logger.warning(
                    f"[Uploader] Attempt {task.attempts}/{self.policy.max_attempts} for batch "
                    f"{batch.number} failed: {e}. Retrying in {task.delay:.1f}s"
                )
                self.stats["retries"] += 1
                self._sleep(task.delay)
                task.resume()
                continue

            task.succeed()
            self.stats["batches_uploaded"] += 1
            return task

    def _send(self, task: UploadTask) -> httpx.Response:
        self.stats["requests"] += 1
        try:
            response = self.client.request(
                task.operation.http_method,
                task.url,
                params=self.params,
                content=task.payload,
                headers=self.headers,
            )
        except httpx.TransportError as e:
            raise TransientUploadError(f"{type(e).__name__}: {e}") from e

        if response.is_success:
            logger.debug(
                f"[Uploader] {response.status_code} accepted: {_truncate(response.text)}"
            )
            return response

        raise classify_response(response)


def classify_response(response: httpx.Response) -> UploadError:
    """Map an unsuccessful response to a transient or fatal error."""
    status = response.status_code
    detail = _error_detail(response)
    message = f"HTTP {status}: {detail}"

    if status == 429 or status >= 500:
        return TransientUploadError(message, status_code=status)

    error_type = None
    try:
        body = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        body = None
    if isinstance(body, dict):
        error_type = body.get("type")

    if error_type in TRANSIENT_ERROR_TYPES:
        return TransientUploadError(message, status_code=status)
    return FatalUploadError(message, status_code=status)


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return _truncate(response.text) or response.reason_phrase
    if isinstance(body, dict) and "message" in body:
        code = body.get("code")
        return f"{body['message']} ({code})" if code else str(body["message"])
    return _truncate(response.text)


def _truncate(text: str) -> str:
    text = text.strip()
    if len(text) > _MAX_ERROR_BODY:
        return text[:_MAX_ERROR_BODY] + "..."
    return text
