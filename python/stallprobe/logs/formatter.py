import logging
from datetime import datetime, UTC

from colorlog import ColoredFormatter

# verdict prefixes of the result lines, see Verdict.render
VERDICT_COLORS = {
  "[PASS]": "\033[32m",
  "[FAIL]": "\033[31m",
  "[ABORTED]": "\033[33m",
}


class Formatter(ColoredFormatter):
  """
  Colored single-line formatter for the harness loggers.

  Formats a copy of each record, so handlers that run after this one (a result
  log subscriber on the "sinks" logger, pytest's capture) see the record as it
  was emitted.
  """

  GREY = "\033[38;5;245m"
  YELLOW = "\033[33m"
  RESET = "\033[0m"

  def __init__(self, *args, **kwargs):
    kwargs.setdefault("datefmt", "%Y-%m-%dT%H:%M:%S.%fZ")
    super().__init__(*args, **kwargs)

  def format(self, record: logging.LogRecord) -> str:
    return super().format(logging.makeLogRecord(record.__dict__))

  def formatTime(self, record, datefmt=None) -> str:
    try:
      dt = datetime.fromtimestamp(record.created, UTC)
      if datefmt:
        return dt.strftime(datefmt)
      return super().formatTime(record, datefmt)
    except Exception:
      # interpreter shutdown can leave datetime half torn down
      return f"{record.created}"

  def formatMessage(self, record: logging.LogRecord) -> str:
    # record is the copy made in format()
    try:
      record.name = f"{self.GREY}{record.name}{self.RESET}"
      record.asctime = f"{self.GREY}{self.formatTime(record, self.datefmt)}{self.RESET}"
      record.message = self._highlight_verdict(record.message)
      message = super().formatMessage(record)
    except Exception:
      return record.message
    if record.levelname == "WARNING":
      message = message.replace("WARNING", f"{self.YELLOW} WARN{self.RESET}", 1)
    return message

  def _highlight_verdict(self, message: str) -> str:
    for prefix, color in VERDICT_COLORS.items():
      if message.startswith(prefix):
        return f"{color}{prefix}{self.RESET}{message[len(prefix):]}"
    return message
