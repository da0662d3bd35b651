"""
Pytest configuration and fixtures for all tests.
"""
import json
import sys
from pathlib import Path

import httpx
import pytest

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from importer.upload import RetryPolicy, Uploader


@pytest.fixture
def temp_dir(tmp_path):
    """
    Provide a temporary directory for tests.

    This wraps pytest's built-in tmp_path fixture.
    """
    return tmp_path


@pytest.fixture
def write_ndjson(temp_dir):
    """Write a list of documents as an NDJSON file and return its path."""
    def _write(documents, name="docs.ndjson"):
        path = temp_dir / name
        path.write_text("".join(json.dumps(doc) + "\n" for doc in documents), encoding="utf-8")
        return path
    return _write


@pytest.fixture
def write_text(temp_dir):
    """Write raw text to a file under temp_dir and return its path."""
    def _write(content, name):
        path = temp_dir / name
        path.write_text(content, encoding="utf-8")
        return path
    return _write


@pytest.fixture
def sample_documents():
    """Small heterogeneous documents."""
    return [
        {"id": 1, "title": "Carol", "genres": ["Romance", "Drama"]},
        {"id": 2, "title": "Wonder Woman", "rating": 7.4},
        {"id": 3, "title": "Life of Pi", "released": True, "director": None},
        {"id": 4, "title": "Mad Max: Fury Road", "meta": {"runtime": 120}},
        {"id": 5, "title": "Moana"},
    ]


class FakeSleep:
    """Records requested delays instead of sleeping."""

    def __init__(self):
        self.delays = []

    def __call__(self, seconds):
        self.delays.append(seconds)


@pytest.fixture
def fake_sleep():
    return FakeSleep()


class RecordingServer:
    """
    httpx MockTransport handler that replays scripted responses.

    Each entry of ``script`` is an int status code, an httpx.Response, or an
    exception instance to raise. Once the script runs out, every request
    gets a 202.
    """

    def __init__(self, script=None):
        self.script = list(script or [])
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.script:
            step = self.script.pop(0)
            if isinstance(step, Exception):
                raise step
            if isinstance(step, httpx.Response):
                return step
            return httpx.Response(step, json={"message": f"status {step}"})
        return httpx.Response(202, json={"taskUid": len(self.requests), "status": "enqueued"})

    def payloads(self):
        """Decoded JSON bodies of the received requests."""
        import gzip

        bodies = []
        for request in self.requests:
            body = request.content
            if request.headers.get("Content-Encoding") == "gzip":
                body = gzip.decompress(body)
            bodies.append(json.loads(body))
        return bodies


@pytest.fixture
def server():
    return RecordingServer()


@pytest.fixture
def make_uploader(fake_sleep):
    """Build an Uploader wired to a RecordingServer and the fake sleep."""
    created = []

    def _make(server, **kwargs):
        kwargs.setdefault("policy", RetryPolicy())
        uploader = Uploader(
            url=kwargs.pop("url", "http://search.test"),
            index=kwargs.pop("index", "movies"),
            client=httpx.Client(transport=httpx.MockTransport(server)),
            sleep=fake_sleep,
            **kwargs,
        )
        created.append(uploader)
        return uploader

    yield _make

    for uploader in created:
        uploader.client.close()
