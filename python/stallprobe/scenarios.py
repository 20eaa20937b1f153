"""
Declarative timeout scenarios.

Each scenario pairs a client profile with an endpoint route, a server delay hint
and a transfer pace, and states the outcome the client should observe. The
runner executes them in declaration order.

DEFAULT_SCENARIOS covers the two client-side stalls (read and write), each
once with a budget that is too small for the server's delay and once with a
budget that is large enough. EXTENDED_SCENARIOS adds slow responses after an
upload, a large download and the server-side stalls.
"""

from dataclasses import dataclass, field
from typing import Optional

from .classifier import OutcomeKind
from .gateway import Route
from .transfer import TransferPlan

KB = 1024
MB = 1024 * KB

# routes whose delay hint stalls the client's reads or writes
STALL_DIRECTIONS = {
  Route.DOWNLOAD_SLOW_SERVER: "read",
  Route.UPLOAD_SLOW_RESPONSE: "read",
  Route.UPLOAD_SLOW_SERVER: "write",
}

CLIENT_CANNOT_PACE_TCP = (
  "The client only paces what it hands to the socket. TCP decides when bytes actually "
  "move, so whether the server times out depends on its configuration and on buffer sizes."
)


@dataclass(frozen=True)
class ScenarioSpec:
  id: str
  description: str
  profile: str
  route: Route
  expected: OutcomeKind
  server_delay_ms: Optional[int] = None
  plan: TransferPlan = field(default_factory=TransferPlan)
  payload_size: int = 0
  best_effort: bool = False
  notes: str = ""

  def __post_init__(self):
    if not (self.route.is_download or self.route.is_upload):
      raise ValueError(f"Scenario '{self.id}' must use a download or upload route, got {self.route.value}")
    if self.server_delay_ms is not None and self.route.delay_param is None:
      raise ValueError(f"Scenario '{self.id}': {self.route.value} does not accept a delay hint")
    if self.payload_size < 0:
      raise ValueError(f"Scenario '{self.id}': payload_size must not be negative")
    if self.route.is_download and self.payload_size:
      raise ValueError(f"Scenario '{self.id}': downloads do not send a payload")

  @property
  def effective_delay_ms(self) -> Optional[int]:
    """The delay the server is asked for, including the route's default."""
    if self.server_delay_ms is not None:
      return self.server_delay_ms
    if self.route.delay_param is not None:
      return self.route.delay_param[1]
    return None

  @property
  def stall_direction(self) -> Optional[str]:
    return STALL_DIRECTIONS.get(self.route)


def make_payload(size: int) -> bytes:
  """A payload of `size` bytes counting 0..255 over and over."""
  pattern = bytes(range(256))
  return pattern * (size // 256) + pattern[: size % 256]


DEFAULT_SCENARIOS = (
  ScenarioSpec(
    id="download-client-read-timeout",
    description="Download - CLIENT read timeout fails: server sends data slowly, client times out waiting to READ",
    profile="short-read",
    route=Route.DOWNLOAD_SLOW_SERVER,
    server_delay_ms=6000,
    plan=TransferPlan(chunk_size=1 * KB),
    expected=OutcomeKind.CLIENT_READ_TIMEOUT,
  ),
  ScenarioSpec(
    id="download-client-read-timeout-fixed",
    description="Download - CLIENT read timeout fixed: same slow server, client has a longer read timeout",
    profile="long",
    route=Route.DOWNLOAD_SLOW_SERVER,
    server_delay_ms=6000,
    plan=TransferPlan(chunk_size=1 * KB),
    expected=OutcomeKind.SUCCESS,
  ),
  ScenarioSpec(
    id="upload-client-write-timeout",
    description="Upload - CLIENT write timeout fails: server reads slowly, client times out trying to WRITE",
    profile="short-write",
    route=Route.UPLOAD_SLOW_SERVER,
    server_delay_ms=6000,
    payload_size=5 * MB,
    plan=TransferPlan(chunk_size=64 * KB),
    expected=OutcomeKind.CLIENT_WRITE_TIMEOUT,
  ),
  ScenarioSpec(
    id="upload-client-write-timeout-fixed",
    description="Upload - CLIENT write timeout fixed: same slow server, client has a longer write timeout",
    profile="long",
    route=Route.UPLOAD_SLOW_SERVER,
    server_delay_ms=6000,
    payload_size=5 * MB,
    plan=TransferPlan(chunk_size=64 * KB),
    expected=OutcomeKind.SUCCESS,
  ),
)

EXTENDED_SCENARIOS = DEFAULT_SCENARIOS + (
  ScenarioSpec(
    id="upload-client-read-timeout",
    description="Upload - CLIENT read timeout fails: after the upload, the client times out waiting for the response",
    profile="short-read",
    route=Route.UPLOAD_SLOW_RESPONSE,
    server_delay_ms=8000,
    payload_size=10 * KB,
    plan=TransferPlan(chunk_size=10 * KB),
    expected=OutcomeKind.CLIENT_READ_TIMEOUT,
  ),
  ScenarioSpec(
    id="upload-client-read-timeout-fixed",
    description="Upload - CLIENT read timeout fixed: the client waits long enough for the slow response",
    profile="long",
    route=Route.UPLOAD_SLOW_RESPONSE,
    server_delay_ms=8000,
    payload_size=10 * KB,
    plan=TransferPlan(chunk_size=10 * KB),
    expected=OutcomeKind.SUCCESS,
  ),
  ScenarioSpec(
    id="download-large-file",
    description="Large file download with normal timeouts: continuous data never trips the read timeout",
    profile="normal",
    route=Route.DOWNLOAD_LARGE_FILE,
    plan=TransferPlan(chunk_size=1 * MB),
    expected=OutcomeKind.SUCCESS,
  ),
  ScenarioSpec(
    id="download-server-write-timeout-slow-reader",
    description="Download - SERVER write timeout: the client reads slowly so the server's write() blocks",
    profile="normal",
    route=Route.DOWNLOAD_TEST_SERVER_WRITE_TIMEOUT,
    plan=TransferPlan(chunk_size=64 * KB, sleep_every=5, sleep_seconds=2.0),
    expected=OutcomeKind.SUCCESS,
    best_effort=True,
    notes="A server with an aggressive write timeout drops the connection here; check its logs. "
    + CLIENT_CANNOT_PACE_TCP,
  ),
  ScenarioSpec(
    id="download-server-write-timeout-normal-reader",
    description="Download - normal reading: the client drains the stream, the server's write never blocks",
    profile="normal",
    route=Route.DOWNLOAD_TEST_SERVER_WRITE_TIMEOUT,
    plan=TransferPlan(chunk_size=512 * KB),
    expected=OutcomeKind.SUCCESS,
  ),
  ScenarioSpec(
    id="download-expect-slow-client",
    description="Download - SERVER write timeout (legacy): the client throttles reading to fill the server's send buffer",
    profile="normal",
    route=Route.DOWNLOAD_EXPECT_SLOW_CLIENT,
    plan=TransferPlan(chunk_size=1 * KB, sleep_every=100, sleep_seconds=0.5),
    expected=OutcomeKind.SUCCESS,
    best_effort=True,
    notes="Fix on the server side: increase its write timeout or speed up client consumption. "
    + CLIENT_CANNOT_PACE_TCP,
  ),
  ScenarioSpec(
    id="upload-server-read-timeout-slow-writer",
    description="Upload - SERVER read timeout: the client pauses mid-body, the server times out waiting to READ",
    profile="normal",
    route=Route.UPLOAD_EXPECT_FAST_CLIENT,
    payload_size=50 * KB,
    plan=TransferPlan(chunk_size=25 * KB, sleep_every=1, sleep_seconds=6.0),
    expected=OutcomeKind.UNCLASSIFIED,
    best_effort=True,
    notes="Expects the server to close the connection after its short inbound-read budget (about 5s). "
    + CLIENT_CANNOT_PACE_TCP,
  ),
  ScenarioSpec(
    id="upload-server-read-timeout-normal-writer",
    description="Upload - normal upload speed: the body arrives within the server's read budget",
    profile="normal",
    route=Route.UPLOAD_EXPECT_FAST_CLIENT,
    payload_size=100 * KB,
    plan=TransferPlan(chunk_size=100 * KB),
    expected=OutcomeKind.SUCCESS,
  ),
)


def select_scenarios(scenarios, patterns) -> tuple:
  """Keep the scenarios whose id contains any of the patterns, all of them when there are none."""
  if not patterns:
    return tuple(scenarios)
  return tuple(s for s in scenarios if any(p in s.id for p in patterns))
