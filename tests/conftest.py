import json
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import List, Optional

import pytest
from fastapi.testclient import TestClient

from archeohub.config import Settings
from archeohub.main import create_app
from archeohub.schemas import Source


class FakeCompletion:
    """Deterministic completion provider; records every call."""

    def __init__(self, answer: str = "The Rosetta Stone is in the British Museum.", error: Optional[Exception] = None):
        self.answer = answer
        self.error = error
        self.calls = []

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        self.calls.append((system_prompt, user_prompt))
        if self.error is not None:
            raise self.error
        return self.answer


class FakeSearch:
    def __init__(self, results: Optional[List[Source]] = None):
        self.results = results or []
        self.calls = []

    def search(self, query: str, count: int = 4) -> List[Source]:
        self.calls.append(query)
        return list(self.results)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        openai_api_key="sk-test",
        bing_api_key="bing-test",
        frontend_origin="https://archeohub.example",
    )


@pytest.fixture
def completion() -> FakeCompletion:
    return FakeCompletion()


@pytest.fixture
def search() -> FakeSearch:
    return FakeSearch()


@pytest.fixture
def client(settings, completion, search) -> TestClient:
    return TestClient(create_app(settings, completion=completion, search=search))


class TricklingCompletionHandler(BaseHTTPRequestHandler):
    """Answers 200 at once, then sends the JSON body 4 bytes every 0.25s."""

    body = json.dumps({"text": "late"}).encode()

    def do_POST(self):
        self.rfile.read(int(self.headers.get("Content-Length", 0)))
        self.send_response(200)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(self.body)))
        self.end_headers()
        try:
            for i in range(0, len(self.body), 4):
                self.wfile.write(self.body[i:i + 4])
                self.wfile.flush()
                time.sleep(0.25)
        except (BrokenPipeError, ConnectionResetError):
            pass

    def log_message(self, format, *args):
        pass


@pytest.fixture
def trickling_upstream():
    """Base URL of a local completion API that takes about 1s to finish its body."""
    server = ThreadingHTTPServer(("127.0.0.1", 0), TricklingCompletionHandler)
    server.daemon_threads = True
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{server.server_address[1]}/v1"
    server.shutdown()
    server.server_close()
