"""
Unit Tests for the Uploader and Retry Policy
============================================

HTTP is served by httpx.MockTransport; sleeping is recorded, never performed.
"""
import gzip
import json

import httpx
import pytest

from importer.batching import Batcher
from importer.core.enums import RetryState, UploadOperation
from importer.core.exceptions import (
    FatalUploadError,
    TooManyErrors,
    TransientUploadError,
    UploadError,
)
from importer.upload import RetryPolicy, UploadTask, classify_response, documents_url

from conftest import RecordingServer


def _batch(documents=None):
    documents = documents or [{"id": 1, "title": "Carol"}, {"id": 2, "title": "Moana"}]
    return next(iter(Batcher(1_000_000).batches(documents)))


class TestRetryPolicy:
    """Tests for the backoff formula."""

    def test_defaults(self):
        policy = RetryPolicy()

        assert policy.base_delay == 0.1
        assert policy.max_delay == 3600.0
        assert policy.max_attempts == 20

    def test_exponential_growth(self):
        policy = RetryPolicy()

        assert [policy.delay_for(n) for n in range(4)] == pytest.approx([0.1, 0.2, 0.4, 0.8])

    def test_capped_at_max_delay(self):
        policy = RetryPolicy()

        assert policy.delay_for(15) == pytest.approx(0.1 * 2 ** 15)
        assert policy.delay_for(16) == 3600.0
        assert policy.delay_for(1000) == 3600.0

    def test_invalid_policy(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)
        with pytest.raises(ValueError):
            RetryPolicy(base_delay=0)


class TestUploadTask:
    """Tests for the task state machine."""

    def _task(self, max_attempts=3):
        return UploadTask(
            url="http://search.test/indexes/movies/documents",
            operation=UploadOperation.ADD_OR_REPLACE,
            payload=b"[]",
            policy=RetryPolicy(max_attempts=max_attempts),
        )

    def test_success_path(self):
        task = self._task()
        task.begin_attempt()
        task.succeed()

        assert task.state is RetryState.SUCCEEDED
        assert task.attempts == 1

    def test_transient_failure_waits_then_resumes(self):
        task = self._task()
        task.begin_attempt()

        state = task.fail(TransientUploadError("boom"))

        assert state is RetryState.WAITING
        assert task.delay == pytest.approx(0.1)
        task.resume()
        assert task.state is RetryState.PENDING

    def test_fatal_failure_is_terminal(self):
        task = self._task()
        task.begin_attempt()

        assert task.fail(FatalUploadError("bad request", status_code=400)) is RetryState.FAILED
        assert not task.exhausted

    def test_budget_exhaustion(self):
        task = self._task(max_attempts=2)
        task.begin_attempt()
        task.fail(TransientUploadError("1"))
        task.resume()
        task.begin_attempt()

        assert task.fail(TransientUploadError("2")) is RetryState.FAILED
        assert task.exhausted
        assert task.last_error.attempts == 2

    def test_cannot_attempt_while_waiting(self):
        task = self._task()
        task.begin_attempt()
        task.fail(TransientUploadError("boom"))

        with pytest.raises(RuntimeError):
            task.begin_attempt()


class TestRequest:
    """Tests for the HTTP request shape."""

    def test_replace_uses_post(self, server, make_uploader):
        uploader = make_uploader(server, api_key="secret", primary_key="id")

        uploader.upload(_batch())

        request = server.requests[0]
        assert request.method == "POST"
        assert request.url.path == "/indexes/movies/documents"
        assert request.url.params["primaryKey"] == "id"
        assert request.headers["Authorization"] == "Bearer secret"
        assert request.headers["Content-Type"] == "application/json"
        assert request.headers["Content-Encoding"] == "gzip"

    def test_update_uses_put(self, server, make_uploader):
        uploader = make_uploader(server, operation=UploadOperation.ADD_OR_UPDATE)

        uploader.upload(_batch())

        assert server.requests[0].method == "PUT"

    def test_optional_parts_are_omitted(self, server, make_uploader):
        uploader = make_uploader(server)

        uploader.upload(_batch())

        request = server.requests[0]
        assert "Authorization" not in request.headers
        assert "primaryKey" not in request.url.params

    def test_body_is_gzipped_json_array(self, server, make_uploader):
        documents = [{"id": 1, "title": "Amélie"}, {"id": 2}]
        uploader = make_uploader(server)

        uploader.upload(_batch(documents))

        body = gzip.decompress(server.requests[0].content)
        assert json.loads(body) == documents

    def test_plain_body_without_gzip(self, server, make_uploader):
        uploader = make_uploader(server, gzip_payload=False)
        batch = _batch()

        uploader.upload(batch)

        request = server.requests[0]
        assert "Content-Encoding" not in request.headers
        assert request.content == batch.payload()

    def test_index_is_url_quoted(self):
        assert documents_url("http://h:7700/", "my index") == "http://h:7700/indexes/my%20index/documents"


class TestRetries:
    """Tests for the retry loop."""

    def test_success_first_try(self, server, make_uploader, fake_sleep):
        task = make_uploader(server).upload(_batch())

        assert task.attempts == 1
        assert task.state is RetryState.SUCCEEDED
        assert fake_sleep.delays == []

    def test_nineteen_failures_then_success(self, make_uploader, fake_sleep):
        server = RecordingServer([503] * 19)
        uploader = make_uploader(server)

        task = uploader.upload(_batch())

        assert task.attempts == 20
        assert len(server.requests) == 20
        assert len(fake_sleep.delays) == 19
        assert all(delay <= 3600.0 for delay in fake_sleep.delays)
        assert fake_sleep.delays[-1] == 3600.0
        assert fake_sleep.delays[:3] == pytest.approx([0.1, 0.2, 0.4])

    def test_twenty_failures_is_too_many(self, make_uploader, fake_sleep):
        server = RecordingServer([500] * 20)
        uploader = make_uploader(server)

        with pytest.raises(TooManyErrors) as exc_info:
            uploader.upload(_batch())

        assert exc_info.value.attempts == 20
        assert len(server.requests) == 20
        # no wait after the final attempt
        assert len(fake_sleep.delays) == 19

    @pytest.mark.parametrize("status", [429, 500, 502, 503, 504])
    def test_retryable_statuses(self, make_uploader, status):
        server = RecordingServer([status])

        task = make_uploader(server).upload(_batch())

        assert task.attempts == 2

    def test_network_errors_are_retried(self, make_uploader):
        server = RecordingServer([
            httpx.ConnectError("connection refused"),
            httpx.ReadTimeout("timed out"),
        ])

        task = make_uploader(server).upload(_batch())

        assert task.attempts == 3

    def test_system_error_body_is_retried(self, make_uploader):
        enqueue_failure = httpx.Response(
            400,
            json={"message": "Could not register task", "code": "internal", "type": "system"},
        )
        server = RecordingServer([enqueue_failure])

        task = make_uploader(server).upload(_batch())

        assert task.attempts == 2

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 413])
    def test_client_errors_are_fatal(self, make_uploader, fake_sleep, status):
        server = RecordingServer([status])

        with pytest.raises(FatalUploadError) as exc_info:
            make_uploader(server).upload(_batch())

        assert exc_info.value.status_code == status
        assert exc_info.value.attempts == 1
        assert len(server.requests) == 1
        assert fake_sleep.delays == []

    def test_error_message_uses_server_body(self, make_uploader):
        rejected = httpx.Response(
            400,
            json={"message": "The `id` field is invalid", "code": "invalid_document_id", "type": "invalid_request"},
        )
        server = RecordingServer([rejected])

        with pytest.raises(FatalUploadError, match="invalid_document_id"):
            make_uploader(server).upload(_batch())

    def test_stats(self, make_uploader):
        server = RecordingServer([503, 503])
        uploader = make_uploader(server)

        uploader.upload(_batch())

        assert uploader.stats == {"batches_uploaded": 1, "requests": 3, "retries": 2}


class TestClassifyResponse:
    """Tests for status classification."""

    def test_non_json_body(self):
        error = classify_response(httpx.Response(502, text="<html>Bad Gateway</html>"))

        assert isinstance(error, TransientUploadError)
        assert "Bad Gateway" in str(error)

    def test_all_errors_share_base_class(self):
        assert isinstance(classify_response(httpx.Response(400)), UploadError)
        assert isinstance(classify_response(httpx.Response(500)), UploadError)
