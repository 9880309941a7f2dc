"""Pytest configuration shared across the test suite."""

import sys
from pathlib import Path
from typing import Callable, List, Optional

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT / "src") not in sys.path:
    sys.path.insert(0, str(ROOT / "src"))

import pytest

from solana_localnet.core.commands import CommandResult, CommandRunner
from solana_localnet.core.config import LocalnetConfig
from solana_localnet.core.errors import CommandFailedError
from solana_localnet.core.keypairs import Keypair, generate_keypair


def write_keypair(path: Path, keypair: Optional[Keypair] = None) -> Keypair:
    keypair = keypair or generate_keypair()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(keypair.to_json(), encoding="utf-8")
    return Keypair(secret=keypair.secret, path=path)


def default_output(argv: List[str]) -> str:
    """Plausible stdout for the commands whose output the harness parses."""
    tool, args = argv[0], argv[1:]
    if tool == "spl-token" and "address" in args:
        owner = args[args.index("--owner") + 1]
        return f"Wallet address: {owner}\nAssociated token address: ATA{owner[:8]}\n"
    if tool == "spl-token" and "balance" in args:
        return "1000\n"
    if tool == "solana" and "balance" in args:
        return "1000 SOL\n"
    return ""


class FakeRunner(CommandRunner):
    """Records every invocation instead of executing anything."""

    def __init__(self, fail_on: Optional[Callable[[List[str]], bool]] = None,
                 output: Callable[[List[str]], str] = default_output, dry_run: bool = False):
        super().__init__(dry_run=dry_run)
        self.calls: List[List[str]] = []
        self.fail_on = fail_on
        self.output_for = output

    def run(self, tool, *args, capture=False, env=None):
        argv = [tool, *[str(a) for a in args]]
        self.calls.append(argv)
        if self.fail_on is not None and self.fail_on(argv):
            raise CommandFailedError(argv, 1, "simulated failure")
        if tool == "solana-keygen" and args and args[0] == "new" and not self.dry_run:
            write_keypair(Path(args[args.index("-o") + 1]))
        return CommandResult(argv=argv, returncode=0, stdout=self.output_for(argv))


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def config(tmp_path: Path) -> LocalnetConfig:
    return LocalnetConfig(workdir=tmp_path / "workdir")


@pytest.fixture
def provisioned_workdir(config: LocalnetConfig):
    """Owner, mint and three wallets written to the config's workdir."""
    owner = write_keypair(config.owner_keypair_path)
    mint = write_keypair(config.mint_keypair_path)
    wallets = [write_keypair(config.wallets_dir / f"p1w{i}.json") for i in range(3)]
    return owner, mint, wallets


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for name in ("WORKDIR", "LOCALNET_RPC_URL", "LOCALNET_CONFIG_FILE", "COMPOSE_PROJECT_NAME",
                 "COMPOSE_PROFILES", "COMPOSE_FILE", "COMPOSE_NET_DNS_IP", "COMPOSE_NET_SUBNET",
                 "COMPOSE_NET_IP_RANGE", "COMPOSE_NET_GATEWAY"):
        monkeypatch.delenv(name, raising=False)
