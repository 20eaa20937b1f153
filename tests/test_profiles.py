"""
Tests for client profiles and the client registry.
"""

import asyncio

import httpx
import pytest

from stallprobe.errors import UnknownProfileError
from stallprobe.profiles import (
  ClientProfile,
  ClientRegistry,
  DEFAULT_PROFILES,
  TimeoutBudget,
)

from transports import SimulatedEndpoint


class TestTimeoutBudget:
  def test_default_profile_budgets(self):
    budgets = {p.name: p.budget for p in DEFAULT_PROFILES}
    assert budgets["short-read"] == TimeoutBudget(connect=10.0, read=3.0, write=10.0)
    assert budgets["long"] == TimeoutBudget(connect=10.0, read=60.0, write=60.0)
    assert budgets["short-write"] == TimeoutBudget(connect=10.0, read=30.0, write=3.0)
    assert budgets["normal"] == TimeoutBudget(connect=10.0, read=30.0, write=30.0)

  @pytest.mark.parametrize("field", ["connect", "read", "write"])
  def test_rejects_non_positive_values(self, field):
    values = {"connect": 1.0, "read": 1.0, "write": 1.0, field: 0}
    with pytest.raises(ValueError, match=field):
      TimeoutBudget(**values)

  def test_is_immutable(self):
    budget = TimeoutBudget(connect=1.0, read=2.0, write=3.0)
    with pytest.raises(AttributeError):
      budget.read = 5.0

  def test_to_httpx(self):
    timeout = TimeoutBudget(connect=10.0, read=3.0, write=30.0).to_httpx()
    assert timeout.connect == 10.0
    assert timeout.read == 3.0
    assert timeout.write == 30.0
    assert timeout.pool == 10.0


class TestClientRegistry:
  @pytest.fixture
  def registry(self):
    return ClientRegistry(base_url="http://endpoint.test", transport=SimulatedEndpoint())

  def test_profile_lookup(self, registry):
    assert registry.profile("short-read").budget.read == 3.0
    assert registry.names == ["short-read", "long", "short-write", "normal"]

  def test_unknown_profile_fails_without_network(self):
    transport = SimulatedEndpoint()
    registry = ClientRegistry(base_url="http://endpoint.test", transport=transport)

    with pytest.raises(UnknownProfileError) as exc_info:
      registry.profile("nonexistent")

    assert exc_info.value.name == "nonexistent"
    assert "short-read" in exc_info.value.known
    assert "Unknown client profile 'nonexistent'" in str(exc_info.value)
    assert transport.requests == []

  @pytest.mark.asyncio
  async def test_get_unknown_profile(self, registry):
    with pytest.raises(UnknownProfileError):
      await registry.get("nonexistent")

  def test_duplicate_profile_names_are_rejected(self):
    profile = ClientProfile("dup", TimeoutBudget(1.0, 1.0, 1.0))
    with pytest.raises(ValueError, match="already registered"):
      ClientRegistry([profile, profile], base_url="http://endpoint.test")

  @pytest.mark.asyncio
  async def test_client_is_built_once_and_cached(self, registry):
    first = await registry.get("short-read")
    second = await registry.get("short-read")

    assert first is second
    assert isinstance(first, httpx.AsyncClient)
    assert first.timeout.read == 3.0
    assert first.timeout.write == 10.0
    assert first.base_url.host == "endpoint.test"

  @pytest.mark.asyncio
  async def test_profiles_get_distinct_clients(self, registry):
    short_read = await registry.get("short-read")
    long = await registry.get("long")
    assert short_read is not long
    assert long.timeout.read == 60.0

  @pytest.mark.asyncio
  async def test_concurrent_first_calls_build_a_single_client(self, registry, monkeypatch):
    builds = []
    original = registry._build_client

    def counting_build(profile):
      builds.append(profile.name)
      return original(profile)

    monkeypatch.setattr(registry, "_build_client", counting_build)

    clients = await asyncio.gather(*[registry.get("normal") for _ in range(20)])

    assert builds == ["normal"]
    assert all(client is clients[0] for client in clients)

  @pytest.mark.asyncio
  async def test_building_one_profile_does_not_block_another(self, registry):
    # hold the lock of one profile as if its construction were in progress
    async with registry._locks["long"]:
      client = await asyncio.wait_for(registry.get("normal"), timeout=1.0)
    assert client.timeout.read == 30.0

  @pytest.mark.asyncio
  async def test_additional_profiles_can_be_registered(self, registry):
    registry.register(ClientProfile("tiny-read", TimeoutBudget(connect=1.0, read=0.1, write=1.0)))
    client = await registry.get("tiny-read")
    assert client.timeout.read == 0.1

  @pytest.mark.asyncio
  async def test_aclose_closes_clients(self, registry):
    client = await registry.get("normal")
    await registry.aclose()
    assert client.is_closed
    assert await registry.get("normal") is not client
