"""
Client profiles and the registry that materializes their HTTP clients.

A profile is a named timeout budget. The registry builds one httpx.AsyncClient
per profile the first time it is asked for it and hands out that same instance
on every later call, so scenarios that share a budget share a client.

Usage:
    registry = ClientRegistry(DEFAULT_PROFILES)

    # Builds the client on first call, returns the cached one afterwards
    client = await registry.get("short-read")

    # Static lookup, never touches the network
    budget = registry.profile("short-read").budget
"""

import asyncio
from dataclasses import dataclass
from typing import Dict, Iterable, Optional

import httpx

from .config import get_base_url, get_connection_limits
from .errors import UnknownProfileError
from .logs import get_logger

logger = get_logger("registry")


@dataclass(frozen=True)
class TimeoutBudget:
  """Connect/read/write timeouts, in seconds."""

  connect: float
  read: float
  write: float

  def __post_init__(self):
    for field_name in ("connect", "read", "write"):
      value = getattr(self, field_name)
      if value is None or value <= 0:
        raise ValueError(f"{field_name} timeout must be positive, got {value!r}")

  def to_httpx(self) -> httpx.Timeout:
    return httpx.Timeout(connect=self.connect, read=self.read, write=self.write, pool=self.connect)

  def __str__(self) -> str:
    return f"connect={self.connect:g}s read={self.read:g}s write={self.write:g}s"


@dataclass(frozen=True)
class ClientProfile:
  name: str
  budget: TimeoutBudget
  description: str = ""


SHORT_READ = ClientProfile(
  name="short-read",
  budget=TimeoutBudget(connect=10.0, read=3.0, write=10.0),
  description="Short read timeout, times out when the server is slow to send data",
)

LONG = ClientProfile(
  name="long",
  budget=TimeoutBudget(connect=10.0, read=60.0, write=60.0),
  description="Long timeouts for operations that legitimately take a long time",
)

SHORT_WRITE = ClientProfile(
  name="short-write",
  budget=TimeoutBudget(connect=10.0, read=30.0, write=3.0),
  description="Short write timeout, times out when the server is slow to accept data",
)

NORMAL = ClientProfile(
  name="normal",
  budget=TimeoutBudget(connect=10.0, read=30.0, write=30.0),
  description="Standard configuration suitable for most network operations",
)

DEFAULT_PROFILES = (SHORT_READ, LONG, SHORT_WRITE, NORMAL)


class ClientRegistry:
  """
  Holds client profiles and lazily builds one shared client per profile.

  Initialization on first use: a profile's client does not exist until the first
  `get()` for that profile. Concurrent first callers for the same profile wait on
  that profile's lock and the double-check after acquiring it guarantees a single
  construction. Each profile has its own lock, so building one client never makes
  callers of another profile wait.
  """

  def __init__(
    self,
    profiles: Iterable[ClientProfile] = DEFAULT_PROFILES,
    base_url: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
  ):
    """
    :param profiles: Profiles to register, names must be unique
    :param base_url: Endpoint base URL, defaults to get_base_url()
    :param transport: Transport shared by every client (tests inject fakes here)
    """
    self.base_url = base_url or get_base_url()
    self._transport = transport
    self._profiles: Dict[str, ClientProfile] = {}
    self._clients: Dict[str, httpx.AsyncClient] = {}
    self._locks: Dict[str, asyncio.Lock] = {}

    for profile in profiles:
      self.register(profile)

  def register(self, profile: ClientProfile) -> None:
    if profile.name in self._profiles:
      raise ValueError(f"Client profile '{profile.name}' is already registered")
    self._profiles[profile.name] = profile
    self._locks[profile.name] = asyncio.Lock()

  @property
  def names(self) -> list[str]:
    return list(self._profiles)

  def profile(self, name: str) -> ClientProfile:
    try:
      return self._profiles[name]
    except KeyError:
      raise UnknownProfileError(name, self._profiles) from None

  async def get(self, name: str) -> httpx.AsyncClient:
    """
    Get the shared client of a profile, building it on first call.

    :param name: Profile name
    :return: The cached client for the profile
    :raises UnknownProfileError: If the profile was never registered
    """
    profile = self.profile(name)

    client = self._clients.get(name)
    if client is not None:
      return client

    async with self._locks[name]:
      # Double-check after acquiring lock
      client = self._clients.get(name)
      if client is not None:
        return client

      client = self._build_client(profile)
      self._clients[name] = client
      logger.debug(f"Initialized client for profile '{name}' ({profile.budget}) at {self.base_url}")
      return client

  def _build_client(self, profile: ClientProfile) -> httpx.AsyncClient:
    kwargs = {}
    if self._transport is not None:
      kwargs["transport"] = self._transport
    else:
      kwargs["limits"] = get_connection_limits()

    return httpx.AsyncClient(
      base_url=self.base_url,
      timeout=profile.budget.to_httpx(),
      follow_redirects=False,
      **kwargs,
    )

  async def aclose(self) -> None:
    """
    Close every client built so far and release their connection pools.
    """
    clients, self._clients = self._clients, {}
    for name, client in clients.items():
      try:
        await client.aclose()
        logger.debug(f"Closed client for profile '{name}'")
      except Exception as e:
        logger.warning(f"Error closing client for profile '{name}': {e}")

  async def __aenter__(self) -> "ClientRegistry":
    return self

  async def __aexit__(self, *exc_info) -> None:
    await self.aclose()
