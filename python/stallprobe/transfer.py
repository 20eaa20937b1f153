"""
Rate-controlled streaming transfers.

Downloads pull the response body chunk by chunk and uploads push the request
body chunk by chunk. After every Nth chunk the transfer sleeps on the same
coroutine that moves the bytes, so the pause genuinely stalls the socket: a
paused download stops draining the receive buffer, a paused upload stops
feeding the send buffer. This is what lets a scenario make the server observe
a slow client without controlling the server.

The transfer does not interpret failures. It tags them with the phase that was
in flight and hands them on as TransferError.
"""

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import AsyncContextManager, AsyncIterator, Awaitable, Callable, Optional

import httpx

from .errors import TransferError
from .logs import get_logger

logger = get_logger("transfer")


class TransferPhase(str, Enum):
  CONNECT = "connect"
  WRITE = "write"
  READ = "read"


@dataclass(frozen=True)
class TransferPlan:
  """
  How fast a transfer moves data.

  chunk_size: Bytes per chunk
  sleep_every: Sleep after every Nth chunk, 0 means never
  sleep_seconds: Length of each pause
  """

  chunk_size: int = 1024
  sleep_every: int = 0
  sleep_seconds: float = 0.0

  def __post_init__(self):
    if self.chunk_size <= 0:
      raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")
    if self.sleep_every < 0:
      raise ValueError(f"sleep_every must not be negative, got {self.sleep_every}")
    if self.sleep_seconds < 0:
      raise ValueError(f"sleep_seconds must not be negative, got {self.sleep_seconds}")

  @property
  def throttled(self) -> bool:
    return self.sleep_every > 0 and self.sleep_seconds > 0

  def should_sleep(self, chunks_moved: int) -> bool:
    return self.throttled and chunks_moved % self.sleep_every == 0

  def __str__(self) -> str:
    if not self.throttled:
      return f"{self.chunk_size}B chunks, unthrottled"
    return f"{self.chunk_size}B chunks, {self.sleep_seconds:g}s pause every {self.sleep_every} chunks"


@dataclass(frozen=True)
class TransferResult:
  bytes_moved: int
  chunks_moved: int
  elapsed: float
  acknowledgement: Optional[str] = None


# substrings of httpcore trace event names, e.g. "connection.connect_tcp.started"
TRACE_PHASES = (
  ("connect_tcp", TransferPhase.CONNECT),
  ("connect_unix_socket", TransferPhase.CONNECT),
  ("start_tls", TransferPhase.CONNECT),
  ("send_request", TransferPhase.WRITE),
  ("send_connection_init", TransferPhase.WRITE),
  ("receive_response", TransferPhase.READ),
)


class PhaseTracker:
  """
  Remembers which phase of a transfer is in flight.

  The transfer advances the phase itself as it hands out and consumes chunks. The
  `trace` hook, passed to httpx as the "trace" request extension, refines it from
  transport events, e.g. while the client waits for response headers.
  """

  def __init__(self):
    self.phase = TransferPhase.CONNECT

  def enter(self, phase: TransferPhase) -> None:
    if phase != self.phase:
      logger.debug(f"phase {self.phase.value} -> {phase.value}")
      self.phase = phase

  async def trace(self, event_name: str, info: dict) -> None:
    for marker, phase in TRACE_PHASES:
      if marker in event_name:
        self.enter(phase)
        return


DownloadSource = Callable[[Callable], AsyncContextManager[httpx.Response]]
UploadSink = Callable[..., Awaitable[str]]


class RateControlledTransfer:
  def __init__(
    self,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    clock: Callable[[], float] = time.monotonic,
  ):
    self._sleep = sleep
    self._clock = clock

  async def download(self, source: DownloadSource, plan: TransferPlan = TransferPlan()) -> TransferResult:
    """
    Consume a streaming response at the plan's pace.

    :param source: Called with the trace hook, returns the streaming response context
    :param plan: Chunk size and pause schedule
    :return: Bytes and chunks received and the elapsed wall-clock time
    :raises TransferError: On any failure, tagged with the phase in flight
    """
    tracker = PhaseTracker()
    bytes_moved = 0
    chunks_moved = 0
    start = self._clock()

    try:
      async with source(tracker.trace) as response:
        tracker.enter(TransferPhase.READ)
        response.raise_for_status()
        async for chunk in response.aiter_bytes(plan.chunk_size):
          bytes_moved += len(chunk)
          chunks_moved += 1
          if plan.should_sleep(chunks_moved):
            logger.debug(f"read {bytes_moved // 1024}KB, pausing {plan.sleep_seconds:g}s")
            await self._sleep(plan.sleep_seconds)
    except Exception as e:
      raise TransferError(tracker.phase, e, bytes_moved, chunks_moved, self._clock() - start) from e

    elapsed = self._clock() - start
    logger.debug(f"download complete: {bytes_moved} bytes in {chunks_moved} chunks, {elapsed:.2f}s")
    return TransferResult(bytes_moved=bytes_moved, chunks_moved=chunks_moved, elapsed=elapsed)

  async def upload(self, sink: UploadSink, payload: bytes, plan: TransferPlan = TransferPlan()) -> TransferResult:
    """
    Send a payload at the plan's pace.

    :param sink: Called as sink(body, content_length=..., trace=...), returns the acknowledgement
    :param payload: The complete request body
    :param plan: Chunk size and pause schedule
    :return: Bytes and chunks the transport accepted, elapsed time and the acknowledgement
    :raises TransferError: On any failure, tagged with the phase in flight
    """
    tracker = PhaseTracker()
    total = len(payload)
    view = memoryview(payload)
    moved = {"bytes": 0, "chunks": 0}
    start = self._clock()

    async def body() -> AsyncIterator[bytes]:
      # the transport pulls the next chunk only after the previous one was written
      tracker.enter(TransferPhase.WRITE)
      for offset in range(0, total, plan.chunk_size):
        chunk = bytes(view[offset : offset + plan.chunk_size])
        yield chunk
        moved["bytes"] += len(chunk)
        moved["chunks"] += 1
        if moved["bytes"] < total and plan.should_sleep(moved["chunks"]):
          logger.debug(f"wrote {moved['bytes'] // 1024}KB, pausing {plan.sleep_seconds:g}s")
          await self._sleep(plan.sleep_seconds)
      tracker.enter(TransferPhase.READ)

    try:
      acknowledgement = await sink(body(), content_length=total, trace=tracker.trace)
    except Exception as e:
      raise TransferError(tracker.phase, e, moved["bytes"], moved["chunks"], self._clock() - start) from e

    elapsed = self._clock() - start
    logger.debug(f"upload complete: {moved['bytes']} bytes in {moved['chunks']} chunks, {elapsed:.2f}s")
    return TransferResult(
      bytes_moved=moved["bytes"],
      chunks_moved=moved["chunks"],
      elapsed=elapsed,
      acknowledgement=acknowledgement,
    )
