"""
Line sinks for the result log.

The runner appends ordered text lines to a sink and knows nothing about how they
are presented. Anything with an `append(line)` method is a sink.
"""

import sys
from typing import List, Protocol, TextIO

from .logs import get_logger


class ResultSink(Protocol):
  def append(self, line: str) -> None: ...


class ListSink:
  """Keeps every line in memory."""

  def __init__(self):
    self.lines: List[str] = []

  def append(self, line: str) -> None:
    self.lines.append(line)

  @property
  def text(self) -> str:
    return "\n".join(self.lines)


class LoggerSink:
  """Forwards every line to a logger, one record per line."""

  def __init__(self, logger_name: str = "sinks"):
    self.logger = get_logger(logger_name)

  def append(self, line: str) -> None:
    self.logger.info(line)


class ConsoleSink:
  def __init__(self, stream: TextIO = None):
    self.stream = stream or sys.stdout

  def append(self, line: str) -> None:
    print(line, file=self.stream, flush=True)


class TeeSink:
  def __init__(self, *sinks: ResultSink):
    self.sinks = sinks

  def append(self, line: str) -> None:
    for sink in self.sinks:
      sink.append(line)
