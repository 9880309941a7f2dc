"""
Localnet Configuration

Settings are layered, later sources winning:

1. Built-in defaults (the values the provisioning scripts have always used)
2. Optional YAML config file (``--config`` or LOCALNET_CONFIG_FILE)
3. ``.env`` file in the project directory (the same file docker compose reads)
4. Process environment

The compose network addresses (COMPOSE_NET_*) have no defaults: the operator
chooses a subnet that does not collide with the host network.
"""

import logging
import os
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from dotenv import dotenv_values

from .errors import ConfigError


logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILENAME = "localnet.yaml"
CONFIG_FILE_ENV = "LOCALNET_CONFIG_FILE"

DEFAULT_RPC_URL = "http://localhost:8899"
DEFAULT_DECIMALS = 6
DEFAULT_SOL_AIRDROP_AMOUNT = 1000
DEFAULT_MINT_AMOUNT = 1000
DEFAULT_PLAYERS = 2
DEFAULT_WALLETS_PER_PLAYER = 10


@dataclass
class ToolPaths:
    """Executables the harness shells out to."""
    solana: str = "solana"
    solana_keygen: str = "solana-keygen"
    spl_token: str = "spl-token"
    docker: str = "docker"

    def executable(self, tool: str) -> str:
        try:
            return getattr(self, tool.replace("-", "_"))
        except AttributeError:
            raise ConfigError(f"Unknown tool: {tool}") from None


@dataclass
class ComposeSettings:
    """Container topology knobs, mirroring the COMPOSE_* environment variables."""
    project_name: str = "localnet"
    profiles: List[str] = field(default_factory=lambda: ["localnet"])
    dns_ip: Optional[str] = None
    subnet: Optional[str] = None
    ip_range: Optional[str] = None
    gateway: Optional[str] = None
    compose_file: str = "docker-compose.yml"

    def environment(self) -> Dict[str, str]:
        """Variables docker compose needs to substitute into the compose file."""
        env = {
            "COMPOSE_PROJECT_NAME": self.project_name,
            "COMPOSE_PROFILES": ",".join(self.profiles),
        }
        for name, value in (("COMPOSE_NET_DNS_IP", self.dns_ip),
                            ("COMPOSE_NET_SUBNET", self.subnet),
                            ("COMPOSE_NET_IP_RANGE", self.ip_range),
                            ("COMPOSE_NET_GATEWAY", self.gateway)):
            if value:
                env[name] = value
        return env


@dataclass
class TransferCase:
    """One scripted test transfer between two generated wallets (by index)."""
    from_index: int
    to_index: int
    amount: float


@dataclass
class LocalnetConfig:
    """Everything the harness needs to know, resolved from all sources."""
    workdir: Path = field(default_factory=lambda: Path.cwd() / "workdir")
    rpc_url: str = DEFAULT_RPC_URL
    decimals: int = DEFAULT_DECIMALS
    sol_airdrop_amount: float = DEFAULT_SOL_AIRDROP_AMOUNT
    mint_amount: float = DEFAULT_MINT_AMOUNT
    players: int = DEFAULT_PLAYERS
    wallets_per_player: int = DEFAULT_WALLETS_PER_PLAYER
    command_timeout: Optional[float] = None
    tools: ToolPaths = field(default_factory=ToolPaths)
    compose: ComposeSettings = field(default_factory=ComposeSettings)
    sol_transfers: List[TransferCase] = field(default_factory=list)
    token_transfers: List[TransferCase] = field(default_factory=list)

    @property
    def owner_keypair_path(self) -> Path:
        return self.workdir / "owner.json"

    @property
    def mint_keypair_path(self) -> Path:
        return self.workdir / "mint.json"

    @property
    def wallets_dir(self) -> Path:
        return self.workdir / "wallets"

    def to_dict(self) -> Dict[str, Any]:
        """Plain representation for ``show-config``."""
        data = asdict(self)
        data["workdir"] = str(self.workdir)
        return data


def load_config(config_file: Optional[str] = None,
                project_dir: Optional[Path] = None,
                environ: Optional[Mapping[str, str]] = None) -> LocalnetConfig:
    """
    Build a LocalnetConfig from defaults, YAML, .env and the environment.

    Args:
        config_file: Explicit YAML path; a missing explicit file is an error
        project_dir: Directory holding ``.env`` and the default config file
        environ: Environment mapping (defaults to os.environ)
    """
    project_dir = Path(project_dir) if project_dir else Path.cwd()
    environ = dict(os.environ if environ is None else environ)

    config = LocalnetConfig(workdir=project_dir / "workdir")

    explicit = config_file or environ.get(CONFIG_FILE_ENV)
    path = Path(explicit) if explicit else project_dir / DEFAULT_CONFIG_FILENAME
    if path.exists():
        _apply_yaml(config, _read_yaml(path))
    elif explicit:
        raise ConfigError(f"Read failed: path: {path}; cause: file does not exist")
    else:
        logger.debug("No config file at %s, using defaults", path)

    dotenv_path = project_dir / ".env"
    env: Dict[str, str] = {}
    if dotenv_path.exists():
        env.update({k: v for k, v in dotenv_values(dotenv_path).items() if v is not None})
        logger.debug("Loaded %d variables from %s", len(env), dotenv_path)
    env.update(environ)
    _apply_environment(config, env)

    return config


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle) or {}
    except OSError as exc:
        raise ConfigError(f"Read failed: path: {path}; cause: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Parse config failed: path: {path}; cause: {exc}") from exc

    if not isinstance(loaded, dict):
        raise ConfigError(f"Parse config failed: path: {path}; cause: top level must be a mapping")
    logger.debug("Loaded config file %s", path)
    return loaded


def _section(data: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Config section '{name}' must be a mapping")
    return value


def _number(value: Any, name: str, kind=float):
    try:
        return kind(value)
    except (TypeError, ValueError):
        raise ConfigError(f"Config value '{name}' must be a number, got {value!r}") from None


def _transfer_cases(raw: Any, name: str) -> List[TransferCase]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ConfigError(f"Config value '{name}' must be a list")
    cases = []
    for i, item in enumerate(raw):
        if not isinstance(item, Mapping) or not {"from", "to", "amount"} <= set(item):
            raise ConfigError(f"Config value '{name}[{i}]' needs 'from', 'to' and 'amount'")
        cases.append(TransferCase(
            from_index=_number(item["from"], f"{name}[{i}].from", int),
            to_index=_number(item["to"], f"{name}[{i}].to", int),
            amount=_number(item["amount"], f"{name}[{i}].amount"),
        ))
    return cases


def _apply_yaml(config: LocalnetConfig, data: Mapping[str, Any]) -> None:
    if "workdir" in data:
        config.workdir = Path(data["workdir"]).expanduser()

    rpc = _section(data, "rpc")
    if "uri" in rpc:
        config.rpc_url = str(rpc["uri"])
    if "timeout" in rpc:
        config.command_timeout = _number(rpc["timeout"], "rpc.timeout")

    token = _section(data, "token")
    if "decimals" in token:
        config.decimals = _number(token["decimals"], "token.decimals", int)
    if "mint_amount" in token:
        config.mint_amount = _number(token["mint_amount"], "token.mint_amount")

    airdrop = _section(data, "airdrop")
    if "sols" in airdrop:
        config.sol_airdrop_amount = _number(airdrop["sols"], "airdrop.sols")

    wallets = _section(data, "wallets")
    if "players" in wallets:
        config.players = _number(wallets["players"], "wallets.players", int)
    if "per_player" in wallets:
        config.wallets_per_player = _number(wallets["per_player"], "wallets.per_player", int)

    for name, value in _section(data, "tools").items():
        attr = str(name).replace("-", "_")
        if not hasattr(config.tools, attr):
            raise ConfigError(f"Unknown tool in config: {name}")
        setattr(config.tools, attr, str(value))

    compose = _section(data, "compose")
    for key in ("project_name", "dns_ip", "subnet", "ip_range", "gateway", "compose_file"):
        if key in compose:
            setattr(config.compose, key, str(compose[key]))
    if "profiles" in compose:
        profiles = compose["profiles"]
        config.compose.profiles = [profiles] if isinstance(profiles, str) else [str(p) for p in profiles]

    transfers = _section(_section(data, "test"), "transfers")
    config.sol_transfers = _transfer_cases(transfers.get("sols"), "test.transfers.sols")
    config.token_transfers = _transfer_cases(transfers.get("tokens"), "test.transfers.tokens")


def _apply_environment(config: LocalnetConfig, env: Mapping[str, str]) -> None:
    if env.get("WORKDIR"):
        config.workdir = Path(env["WORKDIR"]).expanduser()
    if env.get("LOCALNET_RPC_URL"):
        config.rpc_url = env["LOCALNET_RPC_URL"]

    compose = config.compose
    if env.get("COMPOSE_PROJECT_NAME"):
        compose.project_name = env["COMPOSE_PROJECT_NAME"]
    if env.get("COMPOSE_PROFILES"):
        compose.profiles = [p.strip() for p in env["COMPOSE_PROFILES"].split(",") if p.strip()]
    if env.get("COMPOSE_FILE"):
        compose.compose_file = env["COMPOSE_FILE"]
    compose.dns_ip = env.get("COMPOSE_NET_DNS_IP") or compose.dns_ip
    compose.subnet = env.get("COMPOSE_NET_SUBNET") or compose.subnet
    compose.ip_range = env.get("COMPOSE_NET_IP_RANGE") or compose.ip_range
    compose.gateway = env.get("COMPOSE_NET_GATEWAY") or compose.gateway
