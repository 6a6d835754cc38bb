import asyncio
import json
from typing import Any, Callable, Dict, List, Optional

import pytest

from accessai.completions import CompletionResult
from accessai.credentials import CredentialResult, CredentialSupplier
from accessai.page.browser import PageDriver
from accessai.page.dom import PageDocument


COURSES_PAGE = """
<html><head><title>Open University</title></head>
<body>
  <div id="accessai-sidebar"><button>Stop assistant</button></div>
  <header>
    <a href="/" class="logo"><img src="/logo.png" alt="Home logo"></a>
    <nav>
      <a href="/courses">Courses</a>
      <a href="/subjects/business">Business &amp; Management</a>
      <a href="/about">About us</a>
    </nav>
  </header>
  <main>
    <form role="search">
      <input type="search" name="q" placeholder="Search courses">
      <button type="submit">Search</button>
    </form>
    <div class="promo" style="display:none"><a href="/hidden">Hidden offer</a></div>
    <div class="card"></div>
    <select name="level" aria-label="Study level">
      <option>Undergraduate</option>
      <option>Postgraduate</option>
    </select>
  </main>
</body></html>
"""


# Only "Business & Management" in the nav shares a word with "business courses".
BUSINESS_PAGE = """
<html><head><title>Open University</title></head>
<body>
  <nav>
    <a href="/">Home</a>
    <a href="/subjects/business">Business &amp; Management</a>
    <a href="/study">Study with us</a>
  </nav>
  <main>
    <form role="search">
      <input type="search" name="q" placeholder="Search courses">
      <button type="submit">Search</button>
    </form>
  </main>
</body></html>
"""


class FakeClock:
    def __init__(self, now: float = 100.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakePageDriver(PageDriver):
    """In-memory page: records actions instead of performing them."""

    def __init__(self, html: str = COURSES_PAGE, url: str = "https://www.open.example/", title: str = ""):
        self.html = html
        self.url = url
        self.title = title
        self.actions: List[tuple] = []
        self.captures = 0
        self.last_doc: Optional[PageDocument] = None
        self.on_click: Optional[Callable[[str], None]] = None

    async def capture(self) -> PageDocument:
        self.captures += 1
        self.last_doc = PageDocument(self.html, url=self.url, title=self.title)
        return self.last_doc

    def _describe(self, node_id: str) -> str:
        doc = PageDocument(self.html, url=self.url)
        tag = doc.node(node_id)
        return doc.text_of(tag) if tag is not None else ""

    async def click(self, node_id: str) -> None:
        self.actions.append(("click", node_id, self._describe(node_id)))
        if self.on_click:
            self.on_click(node_id)

    async def fill(self, node_id: str, text: str) -> None:
        self.actions.append(("fill", node_id, text))

    async def press(self, key: str, node_id: Optional[str] = None) -> None:
        self.actions.append(("press", key, node_id))

    async def select_option(self, node_id: str, option: str) -> None:
        self.actions.append(("select", node_id, option))

    async def scroll(self, direction: str) -> None:
        self.actions.append(("scroll", direction))

    async def goto(self, url: str) -> None:
        self.actions.append(("goto", url))


def tool_call(name: str, arguments: Dict[str, Any], call_id: str = "call_1") -> Dict[str, Any]:
    return {
        "id": call_id,
        "type": "function",
        "function": {"name": name, "arguments": json.dumps(arguments)},
    }


def completion(content: Optional[str] = None, tool_calls: Optional[List[Dict[str, Any]]] = None) -> CompletionResult:
    message: Dict[str, Any] = {"role": "assistant"}
    if content is not None:
        message["content"] = content
    if tool_calls:
        message["tool_calls"] = tool_calls
    return CompletionResult(success=True, data={"choices": [{"message": message}]})


class ScriptedCompletions:
    """Replays queued results; repeats the last one when the script runs out."""

    def __init__(self, results: List[CompletionResult]):
        self.results = list(results)
        self.requests: List[List[Dict[str, Any]]] = []

    async def request(self, messages, **kwargs) -> CompletionResult:
        self.requests.append([dict(m) for m in messages])
        if len(self.results) > 1:
            return self.results.pop(0)
        return self.results[0]


class StaticCredentials(CredentialSupplier):
    def __init__(self, token: Optional[str] = "sk-test"):
        super().__init__(timeout=1.0)
        self.token = token
        self.calls = 0

    async def _fetch(self) -> CredentialResult:
        self.calls += 1
        if not self.token:
            return CredentialResult(False, error="no key")
        return CredentialResult(True, token=self.token)


_CLOSED = object()


class FakeTransport:
    """Websocket stand-in: inbound frames are queued by the test."""

    def __init__(self, ack: bool = True, reject: bool = False):
        self.ack = ack
        self.reject = reject
        self.sent: List[Dict[str, Any]] = []
        self.inbound: "asyncio.Queue[Any]" = asyncio.Queue()
        self.closed = False

    async def send(self, data: str) -> None:
        if self.closed:
            raise ConnectionError("closed")
        payload = json.loads(data)
        self.sent.append(payload)
        if payload["type"] == "session.update":
            if self.reject:
                self.push({"type": "error", "error": {"code": "invalid_value", "message": "bad config"}})
            elif self.ack:
                self.push({"type": "session.updated", "session": payload["session"]})

    def push(self, event: Any) -> None:
        self.inbound.put_nowait(event if isinstance(event, str) else json.dumps(event))

    def drop(self) -> None:
        """Simulate the server going away."""
        self.inbound.put_nowait(_CLOSED)

    async def close(self) -> None:
        self.closed = True
        self.inbound.put_nowait(_CLOSED)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self.inbound.get()
        if item is _CLOSED:
            self.closed = True
            raise StopAsyncIteration
        return item

    def sent_types(self) -> List[str]:
        return [p["type"] for p in self.sent]


class FakeConnector:
    """Connect factory returning queued transports, or raising for ``None`` entries."""

    def __init__(self, transports: Optional[List[Optional[FakeTransport]]] = None, default_fail: bool = False):
        self.transports = list(transports or [])
        self.default_fail = default_fail
        self.calls: List[tuple] = []

    async def __call__(self, url: str, subprotocols: List[str]) -> FakeTransport:
        self.calls.append((url, list(subprotocols)))
        if self.transports:
            transport = self.transports.pop(0)
        elif self.default_fail:
            transport = None
        else:
            transport = FakeTransport()
        if transport is None:
            raise OSError("connection refused")
        return transport


class FakeAudioSource:
    """Captured frames are fed by the test."""

    def __init__(self):
        self.queue: "asyncio.Queue[Any]" = asyncio.Queue()
        self.closed = False

    def feed(self, frame) -> None:
        self.queue.put_nowait(frame)

    async def frames(self):
        while True:
            frame = await self.queue.get()
            if frame is None:
                return
            yield frame

    def close(self) -> None:
        self.closed = True
        self.queue.put_nowait(None)


class RecordingSleep:
    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


async def settle(rounds: int = 10) -> None:
    """Let scheduled tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


async def eventually(predicate: Callable[[], bool], rounds: int = 500) -> bool:
    for _ in range(rounds):
        if predicate():
            return True
        await asyncio.sleep(0)
    return predicate()


@pytest.fixture
def driver():
    return FakePageDriver()


@pytest.fixture
def courses_doc():
    return PageDocument(COURSES_PAGE, url="https://www.open.example/")
