"""
Localnet Container Topology

Two services on one bridge network:

- ``dns``: CoreDNS with a static address, so other containers (and the
  host, through ``host.docker.internal``) can resolve each other
- ``solana-test-validator``: the stock Solana image running a test
  validator whose ledger lives in a named volume

Both are gated behind the ``localnet`` profile. The subnet, ip range,
gateway and DNS address are left as ``${COMPOSE_NET_*}`` placeholders for
docker compose to substitute from the operator's environment.
"""

import ipaddress
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests
import yaml

from .commands import CommandResult, CommandRunner
from .config import ComposeSettings
from .errors import ComposeError, RpcUnavailableError


logger = logging.getLogger(__name__)

NETWORK_NAME = "default-network"
LEDGER_VOLUME = "solana-test-ledger"
LEDGER_PATH = "/var/lib/solana/test-ledger"
VALIDATOR_IMAGE = "solanalabs/solana:stable"
DNS_IMAGE = "coredns/coredns:latest"
RPC_PORT = 8899
PUBSUB_PORT = 8900
FAUCET_PORT = 9900
GOSSIP_PORT = 64898

NETWORK_VARIABLES = {
    "dns_ip": "COMPOSE_NET_DNS_IP",
    "subnet": "COMPOSE_NET_SUBNET",
    "ip_range": "COMPOSE_NET_IP_RANGE",
    "gateway": "COMPOSE_NET_GATEWAY",
}

VALIDATOR_RUST_LOG = ",".join([
    "solana_runtime::system_instruction_processor=trace",
    "solana_runtime::message_processor=info",
    "solana_bpf_loader=debug",
    "solana_rbpf=trace",
])

COREFILE = """\
. {{
    hosts {{
        {dns_ip} dns
        fallthrough
    }}
    forward . /etc/resolv.conf
    cache 30
    log
    errors
}}
"""


def placeholder(variable: str) -> str:
    return "${" + variable + "}"


@dataclass
class ServiceSpec:
    """One compose service, keeping only the keys this topology uses."""
    name: str
    image: str
    profiles: List[str]
    networks: Any
    command: Any = None
    entrypoint: Optional[List[str]] = None
    environment: Dict[str, str] = field(default_factory=dict)
    volumes: List[str] = field(default_factory=list)
    ports: List[str] = field(default_factory=list)
    extra_hosts: List[str] = field(default_factory=list)
    restart: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        doc: Dict[str, Any] = {"image": self.image, "profiles": list(self.profiles)}
        if self.environment:
            doc["environment"] = dict(self.environment)
        if self.entrypoint:
            doc["entrypoint"] = list(self.entrypoint)
        if self.volumes:
            doc["volumes"] = list(self.volumes)
        if self.command is not None:
            doc["command"] = self.command
        if self.restart:
            doc["restart"] = self.restart
        doc["networks"] = self.networks
        if self.ports:
            doc["ports"] = list(self.ports)
        if self.extra_hosts:
            doc["extra_hosts"] = list(self.extra_hosts)
        return doc


@dataclass
class ComposeTopology:
    """The DNS + validator stack as data."""
    services: List[ServiceSpec]
    subnet: str
    ip_range: str
    gateway: str
    volumes: List[str] = field(default_factory=lambda: [LEDGER_VOLUME])

    @classmethod
    def from_settings(cls, settings: Optional[ComposeSettings] = None,
                      literal: bool = False) -> 'ComposeTopology':
        """
        Build the standard topology.

        With ``literal=True`` the configured addresses are written into the
        document instead of ``${COMPOSE_NET_*}`` placeholders.
        """
        settings = settings or ComposeSettings()
        profiles = list(settings.profiles) or ["localnet"]

        def value(attr: str) -> str:
            if literal:
                configured = getattr(settings, attr)
                if not configured:
                    raise ComposeError([f"{NETWORK_VARIABLES[attr]} is not set"])
                return configured
            return placeholder(NETWORK_VARIABLES[attr])

        dns_ip = value("dns_ip")
        dns = ServiceSpec(
            name="dns",
            image=DNS_IMAGE,
            profiles=profiles,
            volumes=["./docker/dns/Corefile:/Corefile:ro"],
            command="-conf /Corefile",
            restart="always",
            networks={NETWORK_NAME: {"ipv4_address": dns_ip}},
            extra_hosts=[f"dns:{dns_ip}", "host.docker.internal:host-gateway"],
        )
        validator = ServiceSpec(
            name="solana-test-validator",
            image=VALIDATOR_IMAGE,
            profiles=profiles,
            environment={"RUST_LOG": VALIDATOR_RUST_LOG},
            entrypoint=["bash", "-c"],
            volumes=[f"{LEDGER_VOLUME}:{LEDGER_PATH}"],
            command=[validator_command()],
            networks=[NETWORK_NAME],
            ports=[f"{port}:{port}" for port in (RPC_PORT, PUBSUB_PORT, FAUCET_PORT)],
        )
        return cls(
            services=[dns, validator],
            subnet=value("subnet"),
            ip_range=value("ip_range"),
            gateway=value("gateway"),
        )

    def service(self, name: str) -> ServiceSpec:
        for service in self.services:
            if service.name == name:
                return service
        raise KeyError(f"Service {name} not found")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "services": {s.name: s.to_dict() for s in self.services},
            "volumes": {name: None for name in self.volumes},
            "networks": {
                NETWORK_NAME: {
                    "driver": "bridge",
                    "ipam": {
                        "driver": "default",
                        "config": [{
                            "subnet": self.subnet,
                            "ip_range": self.ip_range,
                            "gateway": self.gateway,
                        }],
                    },
                },
            },
        }


def validator_command() -> str:
    return " ".join([
        "cd /var/lib/solana/;",
        "solana-test-validator",
        f"--ledger {LEDGER_PATH}",
        "--limit-ledger-size 1000000",
        "--gossip-host solana-test-validator",
        f"--gossip-port {GOSSIP_PORT}",
    ])


def render_compose(topology: ComposeTopology) -> str:
    return yaml.safe_dump(topology.to_dict(), sort_keys=False, default_flow_style=False)


def render_corefile(dns_ip: str) -> str:
    return COREFILE.format(dns_ip=dns_ip)


def write_compose_files(root: Path, settings: Optional[ComposeSettings] = None) -> List[Path]:
    """
    Write the compose file and the CoreDNS Corefile under ``root``.

    The Corefile needs a concrete DNS address, so it is only written when
    one is configured.
    """
    settings = settings or ComposeSettings()
    root = Path(root)
    root.mkdir(parents=True, exist_ok=True)

    compose_path = root / settings.compose_file
    compose_path.write_text(render_compose(ComposeTopology.from_settings(settings)), encoding="utf-8")
    written = [compose_path]

    if settings.dns_ip:
        corefile = root / "docker" / "dns" / "Corefile"
        corefile.parent.mkdir(parents=True, exist_ok=True)
        corefile.write_text(render_corefile(settings.dns_ip), encoding="utf-8")
        written.append(corefile)
    else:
        logger.warning("COMPOSE_NET_DNS_IP not set; Corefile not written")
    return written


def validate_network(settings: ComposeSettings) -> None:
    """
    Check the operator-supplied network addresses before docker sees them.

    All problems are collected and reported together.
    """
    problems = []
    for attr, variable in NETWORK_VARIABLES.items():
        if not getattr(settings, attr):
            problems.append(f"{variable} is not set")
    if problems:
        raise ComposeError(problems)

    try:
        subnet = ipaddress.IPv4Network(settings.subnet, strict=True)
    except ValueError as exc:
        raise ComposeError([f"COMPOSE_NET_SUBNET is not a valid IPv4 network: {exc}"]) from None

    try:
        ip_range = ipaddress.IPv4Network(settings.ip_range, strict=True)
        if not ip_range.subnet_of(subnet):
            problems.append(f"COMPOSE_NET_IP_RANGE {ip_range} is not inside subnet {subnet}")
    except ValueError as exc:
        problems.append(f"COMPOSE_NET_IP_RANGE is not a valid IPv4 network: {exc}")

    for attr in ("dns_ip", "gateway"):
        variable = NETWORK_VARIABLES[attr]
        try:
            address = ipaddress.IPv4Address(getattr(settings, attr))
        except ValueError as exc:
            problems.append(f"{variable} is not a valid IPv4 address: {exc}")
            continue
        if address not in subnet:
            problems.append(f"{variable} {address} is not inside subnet {subnet}")
        elif address in (subnet.network_address, subnet.broadcast_address):
            problems.append(f"{variable} {address} is a reserved address of {subnet}")

    if settings.dns_ip == settings.gateway:
        problems.append("COMPOSE_NET_DNS_IP must differ from COMPOSE_NET_GATEWAY")

    if problems:
        raise ComposeError(problems)


class ComposeStack:
    """Start and stop the localnet containers with ``docker compose``."""

    def __init__(self, settings: ComposeSettings, runner: CommandRunner, project_dir: Path):
        self.settings = settings
        self.runner = runner
        self.project_dir = Path(project_dir)

    def _compose(self, *args: str) -> CommandResult:
        base = ["compose", "-f", str(self.project_dir / self.settings.compose_file),
                "-p", self.settings.project_name]
        for profile in self.settings.profiles:
            base.extend(["--profile", profile])
        return self.runner.run("docker", *base, *args, env=self.settings.environment())

    def up(self) -> CommandResult:
        validate_network(self.settings)
        print(f"🚀 Starting localnet containers ({self.settings.project_name})")
        return self._compose("up", "-d")

    def down(self, volumes: bool = False) -> CommandResult:
        print(f"🛑 Stopping localnet containers ({self.settings.project_name})")
        args = ["down"]
        if volumes:
            args.append("--volumes")
        return self._compose(*args)

    def ps(self) -> CommandResult:
        return self._compose("ps")


def rpc_health(url: str, session: Optional[requests.Session] = None, timeout: float = 5.0) -> Optional[str]:
    """Return the validator's getHealth result, or None if it is unreachable."""
    http = session or requests
    payload = {"jsonrpc": "2.0", "id": 1, "method": "getHealth"}
    try:
        response = http.post(url, json=payload, timeout=timeout)
        response.raise_for_status()
        body = response.json()
    except (requests.RequestException, ValueError) as exc:
        logger.debug("RPC health check failed: %s", exc)
        return None
    if not isinstance(body, dict):
        logger.debug("RPC health returned unexpected body: %r", body)
        return None
    if "error" in body:
        logger.debug("RPC health error: %s", body["error"])
        return None
    return body.get("result")


def wait_for_rpc(url: str, timeout: float = 60.0, interval: float = 1.0,
                 session: Optional[requests.Session] = None,
                 clock=time.monotonic, sleep=time.sleep) -> float:
    """
    Poll the validator until it reports healthy.

    Returns the seconds waited; raises RpcUnavailableError on timeout.
    """
    start = clock()
    while True:
        if rpc_health(url, session=session) == "ok":
            waited = clock() - start
            logger.info("Validator at %s healthy after %.1fs", url, waited)
            return waited
        if clock() - start >= timeout:
            raise RpcUnavailableError(f"Validator RPC at {url} not healthy after {timeout:g}s")
        sleep(interval)
