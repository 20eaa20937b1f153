"""
Exception classes for the timeout harness.

Errors carry structured context (the profile, the base URL, the phase of the
transfer in flight) and build a helpful message with a suggestion, so that a
failed run explains itself in the result log.
"""

from typing import Any, Dict, Iterable, Optional


class HarnessError(Exception):
  """
  Base class for harness errors.

  Attributes:
    context: Additional context about the failure
    message: Human-readable error message
  """

  def __init__(self, context: Optional[Dict[str, Any]] = None, message: Optional[str] = None):
    self.context = context or {}

    if message is None:
      message = self._build_message()

    self.message = message
    super().__init__(message)

  def _build_message(self) -> str:
    parts = [self._describe()]

    if self.context:
      context_parts = [f"{k}: {v}" for k, v in self.context.items() if v is not None]
      if context_parts:
        parts.append(f"Context: {', '.join(context_parts)}.")

    suggestion = self._get_suggestion()
    if suggestion:
      parts.append(suggestion)

    return " ".join(parts)

  def _describe(self) -> str:
    return "Timeout harness error."

  def _get_suggestion(self) -> str:
    return ""


class UnknownProfileError(HarnessError, KeyError):
  """
  Raised when a scenario or caller asks for a client profile that was never registered.

  This is a configuration defect and aborts the run before any network call.

  Example:
    try:
      client = await registry.get("nonexistent")
    except UnknownProfileError as e:
      print(f"Known profiles: {e.known}")
  """

  def __init__(self, name: str, known: Iterable[str] = ()):
    self.name = name
    self.known = sorted(known)
    super().__init__(context={"known profiles": ", ".join(self.known) or None})

  def _describe(self) -> str:
    return f"Unknown client profile '{self.name}'."

  def _get_suggestion(self) -> str:
    return "Register the profile with the ClientRegistry or fix the scenario's profile name."

  def __str__(self) -> str:
    # KeyError would otherwise quote the message
    return self.message


class ServerUnreachableError(HarnessError):
  """
  Raised when the ping precondition fails.

  Every timing assumption of the remaining scenarios depends on the endpoint being
  reachable, so the runner skips them instead of reporting misleading timeouts.
  """

  def __init__(self, base_url: str, cause: Optional[BaseException] = None):
    self.base_url = base_url
    self.cause = cause
    cause_text = f"{type(cause).__name__}: {cause}" if cause is not None else None
    super().__init__(context={"base_url": base_url, "cause": cause_text})

  def _describe(self) -> str:
    return "Cannot reach the timeout test endpoint."

  def _get_suggestion(self) -> str:
    return f"Make sure the server is running and reachable at {self.base_url}."


class TransferError(HarnessError):
  """
  Raised when a rate-controlled transfer is interrupted by an I/O failure.

  The transfer does not interpret the failure. It records which phase was in
  flight and how far it got, and keeps the raw error as the cause for the
  outcome classifier.

  Attributes:
    phase: The TransferPhase in flight when the error surfaced
    bytes_moved: Bytes transferred before the failure
    chunks_moved: Chunks transferred before the failure
    elapsed: Seconds spent in the transfer before the failure
    cause: The raw exception
  """

  def __init__(self, phase, cause: BaseException, bytes_moved: int = 0, chunks_moved: int = 0, elapsed: float = 0.0):
    self.phase = phase
    self.cause = cause
    self.bytes_moved = bytes_moved
    self.chunks_moved = chunks_moved
    self.elapsed = elapsed
    super().__init__(
      context={
        "phase": getattr(phase, "value", phase),
        "bytes_moved": bytes_moved,
        "chunks_moved": chunks_moved,
        "elapsed": f"{elapsed:.2f}s",
      }
    )

  def _describe(self) -> str:
    return f"Transfer failed with {type(self.cause).__name__}: {self.cause}."
