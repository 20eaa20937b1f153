from .logs import (
  get_logger,
  set_log_levels,
  create_log_levels,
  InfoContext,
)
from .formatter import Formatter
from logging import Logger

__all__ = [
  "Formatter",
  "Logger",
  "get_logger",
  "set_log_levels",
  "create_log_levels",
  "InfoContext",
]
