"""Pytest configuration and shared fixtures.

``FakeEngine`` stands in for the HTTP client: it serves scripted replies for
the engine endpoints and records every request it receives.
"""

import io
import random
import threading
import time

import pytest
import requests
from PIL import Image


def make_image_bytes(size=(48, 32), fmt="PNG", mode="RGB", seed=7):
    """Noisy test image so that JPEG quality visibly changes the payload size."""
    rng = random.Random(seed)
    channels = len(mode)
    raw = bytes(rng.getrandbits(8) for _ in range(size[0] * size[1] * channels))
    image = Image.frombytes(mode, size, raw)
    buffer = io.BytesIO()
    image.save(buffer, format=fmt)
    return buffer.getvalue()


def history_pending(prompt_id, status=True):
    if not status:
        return {prompt_id: {"outputs": {}}}
    return {prompt_id: {"status": {"completed": False, "status_str": None}, "outputs": {}}}


def history_completed(prompt_id, outputs, status_str="success"):
    return {
        prompt_id: {
            "status": {"completed": True, "status_str": status_str},
            "outputs": outputs,
        }
    }


class FakeClock:
    """Monotonic clock that only advances when ``sleep`` is called."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


class FakeEngine:
    def __init__(
        self,
        *,
        prompt_reply=None,
        history=None,
        files=None,
        file_delays=None,
        system_stats_error=None,
        prompt_error=None,
        history_error=None,
    ):
        self.prompt_reply = {"prompt_id": "abc"} if prompt_reply is None else prompt_reply
        self.history = list(history or [])
        self.files = dict(files or {})
        self.file_delays = dict(file_delays or {})
        self.system_stats_error = system_stats_error
        self.prompt_error = prompt_error
        self.history_error = history_error
        self.calls = []
        self.posted = []
        self._lock = threading.Lock()

    def _record(self, method, path, params=None):
        with self._lock:
            self.calls.append((method, path, dict(params) if params else None))

    def paths(self, prefix=""):
        return [path for _, path, _ in self.calls if path.startswith(prefix)]

    def get_json(self, path, params=None):
        self._record("GET", path, params)
        if path == "/system_stats":
            if self.system_stats_error:
                raise self.system_stats_error
            return {"system": {"os": "posix"}, "devices": []}
        if path.startswith("/history/"):
            if self.history_error:
                raise self.history_error
            if len(self.history) > 1:
                return self.history.pop(0)
            return self.history[0] if self.history else {}
        raise AssertionError(f"unexpected GET {path}")

    def post_json(self, path, body):
        self._record("POST", path)
        assert path == "/prompt"
        self.posted.append(body)
        if self.prompt_error:
            raise self.prompt_error
        return self.prompt_reply

    def get_bytes(self, path, params=None):
        self._record("GET", path, params)
        assert path == "/view"
        name = params["filename"]
        delay = self.file_delays.get(name)
        if delay:
            time.sleep(delay)
        content = self.files.get(name)
        if content is None:
            raise requests.HTTPError(f"404 Client Error: Not Found for url: /view?filename={name}")
        if isinstance(content, Exception):
            raise content
        return content

    def close(self):
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def png_bytes():
    return make_image_bytes()


@pytest.fixture
def wav_bytes():
    return b"RIFF\x24\x00\x00\x00WAVEfmt " + bytes(28)
