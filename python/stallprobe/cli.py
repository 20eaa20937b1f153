"""
Command line entry point.

Usage:
    # Run the client read/write timeout scenarios against http://localhost:8080
    stallprobe

    # Run every scenario, including the best-effort server-side ones
    STALLPROBE_BASE_URL=http://10.0.2.2:8080 stallprobe --extended

    # Run only the upload scenarios with debug logs for the transfer
    stallprobe --extended -k upload --log-levels "info,transfer=debug"
"""

import argparse
import asyncio
import sys
from typing import Optional, Sequence

from .logs import get_logger, set_log_levels
from .profiles import ClientRegistry
from .runner import RunOutcome, ScenarioRunner
from .scenarios import DEFAULT_SCENARIOS, EXTENDED_SCENARIOS, select_scenarios
from .sinks import ConsoleSink

EXIT_CODES = {
  RunOutcome.PASSED: 0,
  RunOutcome.FAILED: 1,
  RunOutcome.CANCELLED: 1,
  RunOutcome.SERVER_UNREACHABLE: 2,
}


def build_parser() -> argparse.ArgumentParser:
  parser = argparse.ArgumentParser(
    prog="stallprobe",
    description="Reproduce and verify client and server HTTP read/write timeouts.",
  )
  parser.add_argument("--base-url", help="Endpoint base URL (default: $STALLPROBE_BASE_URL or http://localhost:8080)")
  parser.add_argument("--extended", action="store_true", help="Include the slow-response, large-file and server-side scenarios")
  parser.add_argument("-k", "--select", action="append", default=[], help="Only run scenarios whose id contains this text")
  parser.add_argument("--log-levels", help='Log levels, e.g. "info,transfer=debug"')
  parser.add_argument("--list", action="store_true", help="List the selected scenarios and exit")
  return parser


async def run(base_url: Optional[str], scenarios) -> RunOutcome:
  async with ClientRegistry(base_url=base_url) as registry:
    runner = ScenarioRunner(registry, scenarios, sink=ConsoleSink())
    report = await runner.run()
    return report.outcome


def main(argv: Optional[Sequence[str]] = None) -> int:
  args = build_parser().parse_args(argv)
  if args.log_levels:
    set_log_levels(args.log_levels)
  logger = get_logger("cli")

  catalog = EXTENDED_SCENARIOS if args.extended else DEFAULT_SCENARIOS
  scenarios = select_scenarios(catalog, args.select)
  if not scenarios:
    logger.error(f"No scenario matches {args.select}")
    return 1

  if args.list:
    for scenario in scenarios:
      marker = " (best effort)" if scenario.best_effort else ""
      print(f"{scenario.id}: {scenario.profile} -> {scenario.route.value}, expect {scenario.expected.value}{marker}")
    return 0

  try:
    outcome = asyncio.run(run(args.base_url, scenarios))
  except KeyboardInterrupt:
    logger.warning("Interrupted")
    return 130
  return EXIT_CODES[outcome]


if __name__ == "__main__":
  sys.exit(main())
