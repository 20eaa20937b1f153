"""
Endpoint configuration for the timeout harness.

Environment Variables:
- STALLPROBE_BASE_URL: Base URL of the timeout test endpoint (default: http://localhost:8080)
- STALLPROBE_BASE_URL_FILE: Path to a file containing the base URL
- STALLPROBE_MAX_CONNECTIONS: Connection pool size of each profile's client (default: 1)

Resolution Order for the base URL:
1. STALLPROBE_BASE_URL env var (direct value, highest priority)
2. STALLPROBE_BASE_URL_FILE env var (path to file)
3. DEFAULT_BASE_URL
"""

import os

import httpx

from .logs import get_logger

logger = get_logger("registry")

# The endpoint usually runs on the developer's machine
DEFAULT_BASE_URL = "http://localhost:8080"

# Scenarios run one at a time, a single connection per client is enough
DEFAULT_MAX_CONNECTIONS = 1


def get_base_url() -> str:
  """
  Get the endpoint base URL from environment or use default.

  :return: Base URL without a trailing slash
  """
  if url := os.environ.get("STALLPROBE_BASE_URL"):
    return url.rstrip("/")

  if url_file := os.environ.get("STALLPROBE_BASE_URL_FILE"):
    try:
      with open(url_file, "r") as f:
        url = f.read().strip()
        if url:
          return url.rstrip("/")
    except (IOError, OSError) as e:
      logger.warning(f"Failed to read base URL from {url_file}: {e}")

  return DEFAULT_BASE_URL


def get_connection_limits() -> httpx.Limits:
  """
  Create connection pool limits for a profile's client.

  Keep-alive is disabled so that every scenario opens a fresh connection and no
  scenario inherits a socket another scenario left in a stalled state.
  """
  max_connections = DEFAULT_MAX_CONNECTIONS
  if value := os.environ.get("STALLPROBE_MAX_CONNECTIONS"):
    try:
      max_connections = max(1, int(value))
    except ValueError:
      logger.warning(f"Ignoring invalid STALLPROBE_MAX_CONNECTIONS={value!r}")

  return httpx.Limits(max_connections=max_connections, max_keepalive_connections=0)
