"""
Typed facade over the routes of the timeout test endpoint.

The gateway only builds requests. It passes delay hints through as query
parameters and leaves it to the server to honor them. It never retries and
never interprets a failure.
"""

from enum import Enum
from typing import AsyncContextManager, AsyncIterable, Awaitable, Callable, Optional, Union

import httpx

from .errors import ServerUnreachableError
from .logs import get_logger

logger = get_logger("gateway")

TraceHook = Callable[[str, dict], Awaitable[None]]
UploadContent = Union[bytes, AsyncIterable[bytes]]


class Route(str, Enum):
  PING = "/api/ping"
  DOWNLOAD_SLOW_SERVER = "/api/download/slow-server"
  DOWNLOAD_LARGE_FILE = "/api/download/large-file"
  DOWNLOAD_EXPECT_SLOW_CLIENT = "/api/download/expect-slow-client"
  DOWNLOAD_TEST_SERVER_WRITE_TIMEOUT = "/api/download/test-server-write-timeout"
  UPLOAD_SLOW_SERVER = "/api/upload/slow-server"
  UPLOAD_SLOW_RESPONSE = "/api/upload/slow-response"
  UPLOAD_NORMAL = "/api/upload/normal"
  UPLOAD_EXPECT_FAST_CLIENT = "/api/upload/expect-fast-client"

  @property
  def is_upload(self) -> bool:
    return self.value.startswith("/api/upload/")

  @property
  def is_download(self) -> bool:
    return self.value.startswith("/api/download/")

  @property
  def delay_param(self) -> Optional[tuple[str, int]]:
    """Query parameter name and default value (ms) of the route's delay hint."""
    return DELAY_PARAMS.get(self)


DELAY_PARAMS = {
  Route.DOWNLOAD_SLOW_SERVER: ("delayBetweenChunks", 6000),
  Route.UPLOAD_SLOW_SERVER: ("delayBetweenReads", 6000),
  Route.UPLOAD_SLOW_RESPONSE: ("delayBeforeResponse", 8000),
}


def _delay_params(route: Route, delay_ms: Optional[int]) -> dict:
  if route.delay_param is None:
    if delay_ms is not None:
      raise ValueError(f"{route.value} does not accept a delay hint")
    return {}
  name, default = route.delay_param
  return {name: default if delay_ms is None else int(delay_ms)}


def _extensions(trace: Optional[TraceHook]) -> Optional[dict]:
  return {"trace": trace} if trace is not None else None


class EndpointGateway:
  """
  One operation per endpoint route, bound to a single client.

  Downloads return the (not yet entered) streaming response context, so the caller
  controls how fast the body is consumed. Uploads return the server's text
  acknowledgement.
  """

  def __init__(self, client: httpx.AsyncClient):
    self.client = client

  async def ping(self) -> str:
    """
    Check that the endpoint is reachable.

    :raises ServerUnreachableError: On any transport failure or non-2xx status
    """
    try:
      response = await self.client.get(Route.PING.value)
      response.raise_for_status()
    except httpx.HTTPError as e:
      raise ServerUnreachableError(str(self.client.base_url), e) from e
    return response.text

  def stream(
    self,
    route: Route,
    delay_ms: Optional[int] = None,
    trace: Optional[TraceHook] = None,
  ) -> AsyncContextManager[httpx.Response]:
    if not route.is_download:
      raise ValueError(f"{route.value} is not a download route")
    logger.debug(f"GET {route.value} delay_ms={delay_ms}")
    return self.client.stream(
      "GET",
      route.value,
      params=_delay_params(route, delay_ms),
      extensions=_extensions(trace),
    )

  async def upload(
    self,
    route: Route,
    content: UploadContent,
    content_length: Optional[int] = None,
    delay_ms: Optional[int] = None,
    trace: Optional[TraceHook] = None,
  ) -> str:
    """
    POST a body to an upload route and return the acknowledgement text.

    :param content: Payload bytes or an async iterator of chunks
    :param content_length: Sent as Content-Length, so iterator bodies are not chunk-encoded
    """
    if not route.is_upload:
      raise ValueError(f"{route.value} is not an upload route")

    headers = {"Content-Type": "application/octet-stream"}
    if content_length is not None:
      headers["Content-Length"] = str(content_length)

    logger.debug(f"POST {route.value} delay_ms={delay_ms} content_length={content_length}")
    response = await self.client.post(
      route.value,
      params=_delay_params(route, delay_ms),
      content=content,
      headers=headers,
      extensions=_extensions(trace),
    )
    response.raise_for_status()
    return response.text

  def download_slow_server(self, delay_between_chunks: int = 6000, trace: Optional[TraceHook] = None):
    return self.stream(Route.DOWNLOAD_SLOW_SERVER, delay_between_chunks, trace)

  def download_large_file(self, trace: Optional[TraceHook] = None):
    return self.stream(Route.DOWNLOAD_LARGE_FILE, trace=trace)

  def download_expect_slow_client(self, trace: Optional[TraceHook] = None):
    return self.stream(Route.DOWNLOAD_EXPECT_SLOW_CLIENT, trace=trace)

  def download_test_server_write_timeout(self, trace: Optional[TraceHook] = None):
    return self.stream(Route.DOWNLOAD_TEST_SERVER_WRITE_TIMEOUT, trace=trace)

  async def upload_slow_server(self, content: UploadContent, delay_between_reads: int = 6000, **kwargs) -> str:
    return await self.upload(Route.UPLOAD_SLOW_SERVER, content, delay_ms=delay_between_reads, **kwargs)

  async def upload_slow_response(self, content: UploadContent, delay_before_response: int = 8000, **kwargs) -> str:
    return await self.upload(Route.UPLOAD_SLOW_RESPONSE, content, delay_ms=delay_before_response, **kwargs)

  async def upload_normal(self, content: UploadContent, **kwargs) -> str:
    return await self.upload(Route.UPLOAD_NORMAL, content, **kwargs)

  async def upload_expect_fast_client(self, content: UploadContent, **kwargs) -> str:
    return await self.upload(Route.UPLOAD_EXPECT_FAST_CLIENT, content, **kwargs)
