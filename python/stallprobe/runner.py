"""
Scenario runner.

Runs scenarios one at a time, in declaration order, and turns each one into a
Verdict: the classified outcome compared with the expected one, plus a short
explanation of the causal chain (which side timed out, which budget was smaller
than which delay).

Lifecycle of a scenario:

    PENDING -> RUNNING -> COMPLETED   a Verdict was produced, pass or fail
                       -> ABORTED     the ping precondition failed, the run was
                                      cancelled, or the task was cancelled mid-transfer

Usage:
    async with ClientRegistry() as registry:
      runner = ScenarioRunner(registry, DEFAULT_SCENARIOS, sink=ConsoleSink())
      report = await runner.run()
      sys.exit(0 if report.passed else 1)
"""

import asyncio
import functools
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional

from .classifier import OutcomeKind, classify
from .errors import ServerUnreachableError, TransferError
from .gateway import EndpointGateway
from .logs import InfoContext, get_logger
from .profiles import ClientProfile, ClientRegistry
from .scenarios import DEFAULT_SCENARIOS, ScenarioSpec, make_payload
from .sinks import LoggerSink, ResultSink
from .transfer import RateControlledTransfer, TransferResult

RULE = "=" * 80

SKIPPED_PRECONDITION = "skipped-precondition"
CANCELLED = "cancelled"


class ScenarioState(str, Enum):
  PENDING = "pending"
  RUNNING = "running"
  COMPLETED = "completed"
  ABORTED = "aborted"


class RunOutcome(str, Enum):
  PASSED = "passed"
  FAILED = "failed"
  SERVER_UNREACHABLE = "server-unreachable"
  CANCELLED = "cancelled"


@dataclass(frozen=True)
class Verdict:
  scenario_id: str
  expected: OutcomeKind
  actual: OutcomeKind
  passed: bool
  detail: str
  state: ScenarioState = ScenarioState.COMPLETED
  reason: Optional[str] = None
  result: Optional[TransferResult] = None

  def render(self) -> List[str]:
    if self.state == ScenarioState.ABORTED:
      status = "ABORTED"
    else:
      status = "PASS" if self.passed else "FAIL"
    lines = [
      f"[{status}] {self.scenario_id}: expected {self.expected.label}, observed {self.actual.label}",
      f"  -> {self.detail}",
    ]
    return lines


@dataclass
class RunReport:
  verdicts: List[Verdict] = field(default_factory=list)
  outcome: RunOutcome = RunOutcome.PASSED

  @property
  def passed(self) -> bool:
    return self.outcome == RunOutcome.PASSED

  @property
  def failures(self) -> List[Verdict]:
    return [v for v in self.verdicts if not v.passed]


def _seconds(ms: Optional[int]) -> str:
  return f"{ms / 1000:g}s" if ms is not None else "none"


def _describe_error(error: BaseException) -> str:
  cause = error.cause if isinstance(error, TransferError) else error
  text = f"{type(cause).__name__}: {cause}".rstrip(": ")
  if isinstance(error, TransferError):
    text += f" (during {error.phase.value}, after {error.bytes_moved} bytes)"
  return text


def _describe_result(result: TransferResult) -> str:
  text = f"Moved {result.bytes_moved} bytes in {result.chunks_moved} chunks in {result.elapsed:.1f}s"
  if result.acknowledgement:
    text += f", server replied {result.acknowledgement.strip()!r}"
  return text


def explain(
  scenario: ScenarioSpec,
  profile: ClientProfile,
  actual: OutcomeKind,
  error: Optional[BaseException],
  result: Optional[TransferResult],
) -> str:
  """Build the causal explanation of a completed scenario."""
  budget = profile.budget
  delay = _seconds(scenario.effective_delay_ms)
  expected = scenario.expected

  if actual == expected == OutcomeKind.CLIENT_READ_TIMEOUT:
    detail = (
      f"Where: CLIENT side. Server delay ({delay}) > client read timeout ({budget.read:g}s), the client "
      f"gave up waiting to READ. Fix: increase the client read timeout above {delay}."
    )
  elif actual == expected == OutcomeKind.CLIENT_WRITE_TIMEOUT:
    detail = (
      f"Where: CLIENT side. Server delay ({delay}) > client write timeout ({budget.write:g}s), write() "
      f"blocked because the server stopped draining the TCP buffer. Fix: increase the client write timeout above {delay}."
    )
  elif actual == expected == OutcomeKind.SUCCESS:
    detail = _describe_result(result) + "."
    if scenario.stall_direction == "read":
      detail += f" Client read timeout ({budget.read:g}s) > server delay ({delay})."
    elif scenario.stall_direction == "write":
      detail += f" Client write timeout ({budget.write:g}s) > server delay ({delay})."
  elif actual == expected:
    detail = f"Observed as expected: {_describe_error(error)}."
  elif actual == OutcomeKind.SUCCESS:
    detail = (
      f"Transfer succeeded but a {expected.label} was expected. {_describe_result(result)}. "
      f"The timeout configuration is NOT working or the server did not delay."
    )
  else:
    detail = f"Unexpected outcome: {_describe_error(error)}."
    if actual == OutcomeKind.CLIENT_READ_TIMEOUT:
      detail += f" The server was slower than the client read timeout ({budget.read:g}s)."
    elif actual == OutcomeKind.CLIENT_WRITE_TIMEOUT:
      detail += f" The server drained the request slower than the client write timeout ({budget.write:g}s)."

  if scenario.best_effort and scenario.notes:
    detail += f" Best effort: {scenario.notes}"
  return detail


class ScenarioRunner(InfoContext):
  def __init__(
    self,
    registry: ClientRegistry,
    scenarios: Iterable[ScenarioSpec] = DEFAULT_SCENARIOS,
    sink: Optional[ResultSink] = None,
    transfer: Optional[RateControlledTransfer] = None,
    ping_profile: str = "normal",
  ):
    self.logger = get_logger("runner")
    self.registry = registry
    self.scenarios = tuple(scenarios)
    self.sink = sink or LoggerSink()
    self.transfer = transfer or RateControlledTransfer()
    self.ping_profile = ping_profile
    self.report = RunReport()
    self.states: Dict[str, ScenarioState] = {s.id: ScenarioState.PENDING for s in self.scenarios}
    self._cancelled = asyncio.Event()

    ids = [s.id for s in self.scenarios]
    if len(set(ids)) != len(ids):
      raise ValueError("Scenario ids must be unique")

  def cancel(self) -> None:
    """
    Stop the current run before its next scenario starts. The scenario in flight runs to completion.

    A later run() starts uncancelled.
    """
    self._cancelled.set()

  def _emit(self, *lines: str) -> None:
    for line in lines:
      self.sink.append(line)

  def _record(self, scenario: ScenarioSpec, verdict: Verdict) -> Verdict:
    self.states[scenario.id] = verdict.state
    self.report.verdicts.append(verdict)
    self._emit(*verdict.render())
    return verdict

  def _abort(self, scenario: ScenarioSpec, reason: str, detail: str) -> Verdict:
    verdict = Verdict(
      scenario_id=scenario.id,
      expected=scenario.expected,
      actual=OutcomeKind.UNCLASSIFIED,
      passed=False,
      detail=detail,
      state=ScenarioState.ABORTED,
      reason=reason,
    )
    return self._record(scenario, verdict)

  async def run(self) -> RunReport:
    """
    Execute every scenario once, in order.

    :return: The report with one Verdict per scenario
    :raises UnknownProfileError: If a scenario names an unregistered profile, before any network call
    """
    for scenario in self.scenarios:
      self.registry.profile(scenario.profile)
    self.registry.profile(self.ping_profile)

    self.report = RunReport()
    self._cancelled.clear()
    self.states = {s.id: ScenarioState.PENDING for s in self.scenarios}
    self._emit(RULE, "HTTP Timeout Test Suite", f"Endpoint: {self.registry.base_url}", RULE)

    with self.info("Starting timeout scenario run", "Timeout scenario run finished"):
      if not await self._ping():
        self.report.outcome = RunOutcome.SERVER_UNREACHABLE
        for scenario in self.scenarios:
          self._abort(scenario, SKIPPED_PRECONDITION, "Skipped: the ping precondition failed.")
        self._summarize()
        return self.report

      for scenario in self.scenarios:
        if self._cancelled.is_set():
          self.report.outcome = RunOutcome.CANCELLED
          self._abort(scenario, CANCELLED, "Skipped: the run was cancelled.")
          continue
        await self.run_scenario(scenario)

      if self.report.outcome != RunOutcome.CANCELLED:
        self.report.outcome = RunOutcome.PASSED if all(v.passed for v in self.report.verdicts) else RunOutcome.FAILED
      self._summarize()
      return self.report

  async def _ping(self) -> bool:
    self._emit("[PING] Verifying the server is reachable")
    try:
      client = await self.registry.get(self.ping_profile)
      acknowledgement = await EndpointGateway(client).ping()
    except ServerUnreachableError as e:
      self.logger.error(str(e))
      self._emit(f"  -> Cannot reach server: {e}")
      return False
    self._emit(f"  -> Server is reachable, replied {acknowledgement.strip()!r}")
    return True

  async def run_scenario(self, scenario: ScenarioSpec) -> Verdict:
    """
    Execute one scenario and record its Verdict.

    Every failure of the endpoint call or the transfer becomes part of the Verdict.
    Cancelling the task mid-transfer closes the connection, records the scenario as
    ABORTED and re-raises the cancellation.
    """
    profile = self.registry.profile(scenario.profile)
    self.states[scenario.id] = ScenarioState.RUNNING
    self._emit(
      "",
      f"[{scenario.id}] {scenario.description}",
      f"  Configuration: profile {profile.name} ({profile.budget}), "
      f"server delay {_seconds(scenario.effective_delay_ms)}, {scenario.plan}",
    )
    self.logger.debug(f"running {scenario.id} against {scenario.route.value}")

    error = None
    result = None
    try:
      result = await self._execute(scenario)
    except asyncio.CancelledError:
      self.report.outcome = RunOutcome.CANCELLED
      self._abort(scenario, CANCELLED, "Cancelled while the transfer was in flight, connection closed.")
      raise
    except Exception as e:
      error = e

    actual = classify(error)
    verdict = Verdict(
      scenario_id=scenario.id,
      expected=scenario.expected,
      actual=actual,
      passed=actual == scenario.expected,
      detail=explain(scenario, profile, actual, error, result),
      result=result,
    )
    if not verdict.passed:
      self.logger.warning(f"{scenario.id}: expected {scenario.expected.value}, observed {actual.value}")
    return self._record(scenario, verdict)

  async def _execute(self, scenario: ScenarioSpec) -> TransferResult:
    client = await self.registry.get(scenario.profile)
    gateway = EndpointGateway(client)

    if scenario.route.is_download:
      source = functools.partial(gateway.stream, scenario.route, scenario.server_delay_ms)
      return await self.transfer.download(source, scenario.plan)

    sink = functools.partial(gateway.upload, scenario.route, delay_ms=scenario.server_delay_ms)
    return await self.transfer.upload(sink, make_payload(scenario.payload_size), scenario.plan)

  def _summarize(self) -> None:
    verdicts = self.report.verdicts
    passed = sum(1 for v in verdicts if v.passed)
    self._emit(
      "",
      RULE,
      f"ALL TESTS COMPLETED: {self.report.outcome.value.upper()}",
      RULE,
      f"{passed}/{len(verdicts)} scenarios passed",
    )
    for verdict in verdicts:
      mark = "✓" if verdict.passed else "✗"
      self._emit(f"{mark} {verdict.scenario_id}")
