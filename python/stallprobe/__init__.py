from .classifier import OutcomeKind, classify
from .errors import HarnessError, ServerUnreachableError, TransferError, UnknownProfileError
from .gateway import EndpointGateway, Route
from .profiles import ClientProfile, ClientRegistry, TimeoutBudget, DEFAULT_PROFILES
from .runner import RunOutcome, RunReport, ScenarioRunner, ScenarioState, Verdict
from .scenarios import DEFAULT_SCENARIOS, EXTENDED_SCENARIOS, ScenarioSpec
from .sinks import ConsoleSink, ListSink, LoggerSink, ResultSink
from .transfer import RateControlledTransfer, TransferPhase, TransferPlan, TransferResult

__all__ = [
  "OutcomeKind",
  "classify",
  "HarnessError",
  "ServerUnreachableError",
  "TransferError",
  "UnknownProfileError",
  "EndpointGateway",
  "Route",
  "ClientProfile",
  "ClientRegistry",
  "TimeoutBudget",
  "DEFAULT_PROFILES",
  "RunOutcome",
  "RunReport",
  "ScenarioRunner",
  "ScenarioState",
  "Verdict",
  "DEFAULT_SCENARIOS",
  "EXTENDED_SCENARIOS",
  "ScenarioSpec",
  "ConsoleSink",
  "ListSink",
  "LoggerSink",
  "ResultSink",
  "RateControlledTransfer",
  "TransferPhase",
  "TransferPlan",
  "TransferResult",
]
