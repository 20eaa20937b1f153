"""
Maps the outcome of a scenario to a fixed set of causes.

Read versus write is decided by the phase the transfer was in when the error
surfaced, never by the wording of the error message.
"""

from enum import Enum
from typing import Optional

import httpx

from .errors import TransferError
from .transfer import TransferPhase


class OutcomeKind(str, Enum):
  SUCCESS = "success"
  CLIENT_READ_TIMEOUT = "client-read-timeout"
  CLIENT_WRITE_TIMEOUT = "client-write-timeout"
  CONNECT_FAILURE = "connect-failure"
  UNCLASSIFIED = "unclassified"

  @property
  def label(self) -> str:
    return OUTCOME_LABELS[self]


OUTCOME_LABELS = {
  OutcomeKind.SUCCESS: "Success",
  OutcomeKind.CLIENT_READ_TIMEOUT: "CLIENT read timeout",
  OutcomeKind.CLIENT_WRITE_TIMEOUT: "CLIENT write timeout",
  OutcomeKind.CONNECT_FAILURE: "Connection failure",
  OutcomeKind.UNCLASSIFIED: "Unclassified error",
}

TIMEOUT_BY_PHASE = {
  TransferPhase.CONNECT: OutcomeKind.CONNECT_FAILURE,
  TransferPhase.WRITE: OutcomeKind.CLIENT_WRITE_TIMEOUT,
  TransferPhase.READ: OutcomeKind.CLIENT_READ_TIMEOUT,
}

# failures that can only happen while establishing the connection
CONNECT_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout, httpx.PoolTimeout, ConnectionRefusedError)

TIMEOUT_ERRORS = (httpx.TimeoutException, TimeoutError)


def classify(error: Optional[BaseException]) -> OutcomeKind:
  """
  Classify a finished scenario.

  :param error: None when the transfer completed, otherwise the raised exception
  :return: The OutcomeKind of the scenario
  """
  if error is None:
    return OutcomeKind.SUCCESS

  if not isinstance(error, TransferError):
    return OutcomeKind.UNCLASSIFIED

  cause = error.cause
  if isinstance(cause, CONNECT_ERRORS):
    return OutcomeKind.CONNECT_FAILURE
  if isinstance(cause, TIMEOUT_ERRORS):
    return TIMEOUT_BY_PHASE.get(error.phase, OutcomeKind.UNCLASSIFIED)
  return OutcomeKind.UNCLASSIFIED
