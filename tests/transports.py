"""
Fake transports for the harness tests.

SimulatedEndpoint behaves like the timeout test server without real sockets or
real sleeps. It reads the client's timeout budget from the request's "timeout"
extension (httpx sets it on every request), compares it with the requested
server delay and raises the timeout a real socket would raise. It also fires the
"trace" extension events httpcore would fire, so phase tracking works as it does
over the network.
"""

import asyncio
from typing import Callable, Dict, List, Optional

import httpx

KB = 1024

SEND_BUFFER = 256 * KB
SERVER_READ_BUDGET = 5.0


async def emit(request: httpx.Request, event: str) -> None:
  trace = request.extensions.get("trace")
  if trace is not None:
    await trace(event, {})


def exceeds_budget(request: httpx.Request, kind: str, delay: float) -> bool:
  """True when the server delay is longer than the client's read or write timeout."""
  budget = request.extensions.get("timeout", {}).get(kind)
  return budget is not None and delay > budget


def delay_seconds(request: httpx.Request, name: str, default_ms: int) -> float:
  return int(request.url.params.get(name, default_ms)) / 1000


class VirtualClock:
  """A clock that only moves when someone sleeps on it."""

  def __init__(self):
    self.now = 0.0
    self.sleeps: List[float] = []

  def time(self) -> float:
    return self.now

  async def sleep(self, seconds: float) -> None:
    self.sleeps.append(seconds)
    self.now += seconds
    await asyncio.sleep(0)


class ChunkStream(httpx.AsyncByteStream):
  """
  Response body of `chunks` chunks.

  When `stall_after` is set, the server stalls after that many chunks for longer
  than the client's read timeout and the read times out.
  """

  def __init__(self, request: httpx.Request, chunks: int, chunk_size: int, stall_after: Optional[int] = None):
    self.request = request
    self.chunks = chunks
    self.chunk_size = chunk_size
    self.stall_after = stall_after
    self.sent = 0
    self.closed = False

  async def __aiter__(self):
    await emit(self.request, "http11.receive_response_body.started")
    for index in range(self.chunks):
      if self.stall_after is not None and index == self.stall_after:
        raise httpx.ReadTimeout("timed out", request=self.request)
      self.sent += 1
      yield bytes([index % 256]) * self.chunk_size

  async def aclose(self) -> None:
    self.closed = True


class BlockingStream(httpx.AsyncByteStream):
  """Sends one chunk, then waits until released."""

  def __init__(self):
    self.started = asyncio.Event()
    self.release = asyncio.Event()
    self.closed = False

  async def __aiter__(self):
    yield b"x" * KB
    self.started.set()
    await self.release.wait()

  async def aclose(self) -> None:
    self.closed = True


class SimulatedEndpoint(httpx.AsyncBaseTransport):
  def __init__(self, clock: Optional[VirtualClock] = None, download_chunks: int = 4, download_chunk_size: int = KB):
    self.clock = clock or VirtualClock()
    self.download_chunks = download_chunks
    self.download_chunk_size = download_chunk_size
    self.requests: List[httpx.Request] = []
    self.streams: List[httpx.AsyncByteStream] = []
    self.received: Dict[str, int] = {}
    self.routes: Dict[str, Callable] = {
      "/api/ping": self.ping,
      "/api/download/slow-server": self.download_slow_server,
      "/api/download/large-file": self.download,
      "/api/download/expect-slow-client": self.download,
      "/api/download/test-server-write-timeout": self.download,
      "/api/upload/slow-server": self.upload_slow_server,
      "/api/upload/slow-response": self.upload_slow_response,
      "/api/upload/normal": self.upload,
      "/api/upload/expect-fast-client": self.upload_expect_fast_client,
    }

  async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
    self.requests.append(request)
    await emit(request, "connection.connect_tcp.started")
    await emit(request, "http11.send_request_headers.started")
    handler = self.routes.get(request.url.path)
    if handler is None:
      await emit(request, "http11.receive_response_headers.started")
      return httpx.Response(404, text="not found")
    return await handler(request)

  def _stream(self, stream: httpx.AsyncByteStream) -> httpx.Response:
    self.streams.append(stream)
    return httpx.Response(200, stream=stream)

  async def _receive(self, request: httpx.Request, on_chunk=None) -> int:
    await emit(request, "http11.send_request_body.started")
    received = 0
    last = self.clock.time()
    async for chunk in request.stream:
      if on_chunk is not None:
        on_chunk(received, self.clock.time() - last)
      received += len(chunk)
      last = self.clock.time()
    self.received[request.url.path] = received
    return received

  async def ping(self, request):
    await emit(request, "http11.receive_response_headers.started")
    return httpx.Response(200, text="pong")

  async def download(self, request):
    await emit(request, "http11.receive_response_headers.started")
    return self._stream(ChunkStream(request, self.download_chunks, self.download_chunk_size))

  async def download_slow_server(self, request):
    delay = delay_seconds(request, "delayBetweenChunks", 6000)
    stall_after = 1 if exceeds_budget(request, "read", delay) else None
    await emit(request, "http11.receive_response_headers.started")
    return self._stream(ChunkStream(request, self.download_chunks, self.download_chunk_size, stall_after))

  async def upload(self, request):
    received = await self._receive(request)
    await emit(request, "http11.receive_response_headers.started")
    return httpx.Response(200, text=f"Upload complete: {received} bytes")

  async def upload_slow_server(self, request):
    delay = delay_seconds(request, "delayBetweenReads", 6000)
    stalls = exceeds_budget(request, "write", delay)

    def on_chunk(received, gap):
      # once the server stops draining, the send buffer fills and write() blocks
      if stalls and received >= SEND_BUFFER:
        raise httpx.WriteTimeout("timed out", request=request)

    return await self._upload_with(request, on_chunk)

  async def upload_slow_response(self, request):
    delay = delay_seconds(request, "delayBeforeResponse", 8000)
    received = await self._receive(request)
    await emit(request, "http11.receive_response_headers.started")
    if exceeds_budget(request, "read", delay):
      raise httpx.ReadTimeout("timed out", request=request)
    return httpx.Response(200, text=f"Upload complete: {received} bytes")

  async def upload_expect_fast_client(self, request):
    def on_chunk(received, gap):
      if gap > SERVER_READ_BUDGET:
        raise httpx.RemoteProtocolError("Server disconnected without sending a response.", request=request)

    return await self._upload_with(request, on_chunk)

  async def _upload_with(self, request, on_chunk):
    received = await self._receive(request, on_chunk)
    await emit(request, "http11.receive_response_headers.started")
    return httpx.Response(200, text=f"Upload complete: {received} bytes")


class UnreachableEndpoint(httpx.AsyncBaseTransport):
  """Every connection attempt is refused."""

  def __init__(self):
    self.requests: List[httpx.Request] = []

  async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
    self.requests.append(request)
    await emit(request, "connection.connect_tcp.started")
    raise httpx.ConnectError("[Errno 111] Connection refused", request=request)


class HangingEndpoint(SimulatedEndpoint):
  """Answers ping, then hangs every download after the first chunk."""

  def __init__(self):
    super().__init__()
    self.hanging = BlockingStream()
    self.routes["/api/download/slow-server"] = self.hang

  async def hang(self, request):
    await emit(request, "http11.receive_response_headers.started")
    return self._stream(self.hanging)
