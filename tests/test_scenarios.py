import pytest

from stallprobe.classifier import OutcomeKind
from stallprobe.gateway import Route
from stallprobe.profiles import DEFAULT_PROFILES
from stallprobe.scenarios import (
  DEFAULT_SCENARIOS,
  EXTENDED_SCENARIOS,
  KB,
  MB,
  ScenarioSpec,
  make_payload,
  select_scenarios,
)


def make_scenario(**overrides) -> ScenarioSpec:
  values = dict(
    id="s",
    description="",
    profile="normal",
    route=Route.DOWNLOAD_SLOW_SERVER,
    expected=OutcomeKind.SUCCESS,
  )
  values.update(overrides)
  return ScenarioSpec(**values)


class TestScenarioSpec:
  def test_ping_is_not_a_scenario_route(self):
    with pytest.raises(ValueError, match="download or upload"):
      make_scenario(route=Route.PING)

  def test_delay_requires_a_delay_route(self):
    with pytest.raises(ValueError, match="does not accept a delay hint"):
      make_scenario(route=Route.DOWNLOAD_LARGE_FILE, server_delay_ms=100)

  def test_downloads_carry_no_payload(self):
    with pytest.raises(ValueError, match="payload"):
      make_scenario(payload_size=10)

  def test_negative_payload(self):
    with pytest.raises(ValueError, match="negative"):
      make_scenario(route=Route.UPLOAD_NORMAL, payload_size=-1)

  def test_effective_delay_falls_back_to_the_route_default(self):
    assert make_scenario().effective_delay_ms == 6000
    assert make_scenario(server_delay_ms=250).effective_delay_ms == 250
    assert make_scenario(route=Route.UPLOAD_SLOW_RESPONSE).effective_delay_ms == 8000
    assert make_scenario(route=Route.UPLOAD_NORMAL).effective_delay_ms is None

  def test_stall_direction(self):
    assert make_scenario().stall_direction == "read"
    assert make_scenario(route=Route.UPLOAD_SLOW_SERVER).stall_direction == "write"
    assert make_scenario(route=Route.DOWNLOAD_LARGE_FILE).stall_direction is None


class TestCatalog:
  def test_default_scenarios_in_order(self):
    assert [s.id for s in DEFAULT_SCENARIOS] == [
      "download-client-read-timeout",
      "download-client-read-timeout-fixed",
      "upload-client-write-timeout",
      "upload-client-write-timeout-fixed",
    ]

  def test_ids_are_unique(self):
    ids = [s.id for s in EXTENDED_SCENARIOS]
    assert len(ids) == len(set(ids))

  def test_extended_starts_with_the_defaults(self):
    assert EXTENDED_SCENARIOS[: len(DEFAULT_SCENARIOS)] == DEFAULT_SCENARIOS

  def test_every_profile_is_registered(self):
    names = {p.name for p in DEFAULT_PROFILES}
    assert all(s.profile in names for s in EXTENDED_SCENARIOS)

  def test_write_timeout_payload_exceeds_socket_buffers(self):
    upload = DEFAULT_SCENARIOS[2]
    assert upload.payload_size == 5 * MB
    assert upload.plan.chunk_size == 64 * KB

  def test_best_effort_scenarios_explain_themselves(self):
    for scenario in EXTENDED_SCENARIOS:
      if scenario.best_effort:
        assert "TCP" in scenario.notes


class TestPayload:
  def test_size_and_pattern(self):
    payload = make_payload(600)
    assert len(payload) == 600
    assert payload[:3] == b"\x00\x01\x02"
    assert payload[256] == 0
    assert payload[599] == 599 % 256

  def test_empty(self):
    assert make_payload(0) == b""


class TestSelect:
  def test_no_patterns_selects_everything(self):
    assert select_scenarios(EXTENDED_SCENARIOS, []) == EXTENDED_SCENARIOS

  def test_substring_match(self):
    selected = select_scenarios(EXTENDED_SCENARIOS, ["upload-client"])
    assert [s.id for s in selected] == [
      "upload-client-write-timeout",
      "upload-client-write-timeout-fixed",
      "upload-client-read-timeout",
      "upload-client-read-timeout-fixed",
    ]

  def test_no_match(self):
    assert select_scenarios(DEFAULT_SCENARIOS, ["nothing"]) == ()
