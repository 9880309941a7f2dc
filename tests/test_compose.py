import pytest
import requests
import yaml

from solana_localnet.core.compose import (
    ComposeStack,
    ComposeTopology,
    render_compose,
    rpc_health,
    validate_network,
    wait_for_rpc,
    write_compose_files,
)
from solana_localnet.core.config import ComposeSettings
from solana_localnet.core.errors import ComposeError, RpcUnavailableError


def network_settings(**overrides):
    values = dict(dns_ip="172.28.1.1", subnet="172.28.0.0/16",
                  ip_range="172.28.5.0/24", gateway="172.28.0.1")
    values.update(overrides)
    return ComposeSettings(**values)


def test_topology_document_layout():
    doc = ComposeTopology.from_settings().to_dict()

    dns = doc["services"]["dns"]
    assert dns["image"] == "coredns/coredns:latest"
    assert dns["profiles"] == ["localnet"]
    assert dns["networks"] == {"default-network": {"ipv4_address": "${COMPOSE_NET_DNS_IP}"}}
    assert dns["extra_hosts"] == ["dns:${COMPOSE_NET_DNS_IP}", "host.docker.internal:host-gateway"]

    validator = doc["services"]["solana-test-validator"]
    assert validator["image"] == "solanalabs/solana:stable"
    assert validator["ports"] == ["8899:8899", "8900:8900", "9900:9900"]
    assert validator["volumes"] == ["solana-test-ledger:/var/lib/solana/test-ledger"]
    assert "--gossip-port 64898" in validator["command"][0]

    assert "solana-test-ledger" in doc["volumes"]
    ipam = doc["networks"]["default-network"]["ipam"]["config"][0]
    assert ipam == {"subnet": "${COMPOSE_NET_SUBNET}",
                    "ip_range": "${COMPOSE_NET_IP_RANGE}",
                    "gateway": "${COMPOSE_NET_GATEWAY}"}


def test_literal_topology_uses_configured_addresses():
    topology = ComposeTopology.from_settings(network_settings(), literal=True)
    assert topology.service("dns").networks["default-network"]["ipv4_address"] == "172.28.1.1"
    assert topology.subnet == "172.28.0.0/16"


def test_literal_topology_requires_addresses():
    with pytest.raises(ComposeError):
        ComposeTopology.from_settings(ComposeSettings(), literal=True)


def test_rendered_yaml_parses_back():
    rendered = render_compose(ComposeTopology.from_settings())
    assert list(yaml.safe_load(rendered)["services"]) == ["dns", "solana-test-validator"]


def test_write_compose_files(tmp_path):
    written = write_compose_files(tmp_path, network_settings())
    assert [p.relative_to(tmp_path).as_posix() for p in written] == ["docker-compose.yml", "docker/dns/Corefile"]
    assert "172.28.1.1 dns" in (tmp_path / "docker" / "dns" / "Corefile").read_text()


def test_write_compose_files_without_dns_ip_skips_corefile(tmp_path):
    written = write_compose_files(tmp_path, ComposeSettings())
    assert [p.name for p in written] == ["docker-compose.yml"]


def test_validate_network_accepts_consistent_settings():
    validate_network(network_settings())


def test_validate_network_reports_all_missing_variables():
    with pytest.raises(ComposeError) as excinfo:
        validate_network(ComposeSettings())
    assert len(excinfo.value.problems) == 4


@pytest.mark.parametrize("overrides, fragment", [
    ({"subnet": "172.28.0.1/16"}, "COMPOSE_NET_SUBNET is not a valid"),
    ({"dns_ip": "10.0.0.2"}, "COMPOSE_NET_DNS_IP 10.0.0.2 is not inside"),
    ({"gateway": "172.28.255.255"}, "reserved address"),
    ({"ip_range": "10.0.0.0/24"}, "COMPOSE_NET_IP_RANGE 10.0.0.0/24 is not inside"),
    ({"dns_ip": "172.28.0.1"}, "must differ"),
    ({"gateway": "not-an-ip"}, "COMPOSE_NET_GATEWAY is not a valid IPv4 address"),
])
def test_validate_network_rejects(overrides, fragment):
    with pytest.raises(ComposeError) as excinfo:
        validate_network(network_settings(**overrides))
    assert any(fragment in problem for problem in excinfo.value.problems)


def test_stack_up_runs_docker_compose_with_profiles(tmp_path, runner):
    settings = network_settings(project_name="devnet", profiles=["localnet"])
    ComposeStack(settings, runner, tmp_path).up()
    assert runner.calls == [[
        "docker", "compose", "-f", str(tmp_path / "docker-compose.yml"),
        "-p", "devnet", "--profile", "localnet", "up", "-d",
    ]]


def test_stack_up_validates_network_first(tmp_path, runner):
    with pytest.raises(ComposeError):
        ComposeStack(ComposeSettings(), runner, tmp_path).up()
    assert runner.calls == []


def test_stack_down_with_volumes(tmp_path, runner):
    ComposeStack(network_settings(), runner, tmp_path).down(volumes=True)
    assert runner.calls[0][-2:] == ["down", "--volumes"]


class FakeResponse:
    def __init__(self, body):
        self.body = body

    def raise_for_status(self):
        pass

    def json(self):
        return self.body


class FakeSession:
    """Answers getHealth from a scripted list of bodies or exceptions."""

    def __init__(self, replies):
        self.replies = list(replies)
        self.requests = []

    def post(self, url, json=None, timeout=None):
        self.requests.append(json)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        return FakeResponse(reply)


def test_rpc_health_handles_errors():
    assert rpc_health("http://x", session=FakeSession([{"result": "ok"}])) == "ok"
    assert rpc_health("http://x", session=FakeSession([requests.ConnectionError("down")])) is None
    assert rpc_health("http://x", session=FakeSession([{"error": {"code": -32005}}])) is None


@pytest.mark.parametrize("body", [["ok"], "ok", None])
def test_rpc_health_non_object_body_is_unhealthy(body):
    assert rpc_health("http://x", session=FakeSession([body])) is None


def test_wait_for_rpc_polls_until_healthy():
    session = FakeSession([requests.ConnectionError("down"), {"error": {}}, {"result": "ok"}])
    now = [0.0]
    waited = wait_for_rpc("http://x", timeout=10, interval=1, session=session,
                          clock=lambda: now[0], sleep=lambda s: now.__setitem__(0, now[0] + s))
    assert waited == 2.0
    assert session.requests[0]["method"] == "getHealth"


def test_wait_for_rpc_times_out():
    now = [0.0]
    with pytest.raises(RpcUnavailableError):
        wait_for_rpc("http://x", timeout=3, interval=1,
                     session=FakeSession([requests.ConnectionError("down")]),
                     clock=lambda: now[0], sleep=lambda s: now.__setitem__(0, now[0] + s))
