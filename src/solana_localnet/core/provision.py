"""
Localnet Token Provisioning

Prepares a freshly started test validator for use:

1. Airdrop SOL to the token owner
2. Create the SPL token mint (owner is fee payer and mint authority)
3. Create the owner's token account
4. For every player wallet: airdrop SOL, create its associated token
   account, and mint a fixed amount of tokens into it

The sequence is strictly linear. The first failing command aborts the run;
there is no retry and no attempt to recover a half-provisioned ledger.
Restart the validator with a clean ledger volume to start over.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Union

from .commands import CommandRunner
from .config import LocalnetConfig
from .errors import KeypairError, TokenError
from .keypairs import Keypair, list_wallet_files, load_keypair, wallet_names
from .units import format_amount


logger = logging.getLogger(__name__)

ATA_MARKER = "Associated token address:"
DRY_RUN_ATA = "<associated-token-address>"


def parse_associated_token_address(output: str) -> str:
    """
    Extract the address from ``spl-token address -v`` output.

    The verbose output ends with a line of the form
    ``Associated token address: <base58>``.
    """
    for line in reversed(output.splitlines()):
        line = line.strip()
        if line.startswith(ATA_MARKER):
            address = line[len(ATA_MARKER):].strip()
            if address:
                return address
    raise TokenError(f"Associated token address not found in spl-token output: {output.strip()!r}")


@dataclass(frozen=True)
class PlannedKeypair:
    """A keypair file that keygen would write but a dry run never created."""
    path: Path

    @property
    def name(self) -> str:
        return self.path.stem

    @property
    def pubkey(self) -> str:
        return f"<{self.path.stem}-pubkey>"


AnyKeypair = Union[Keypair, PlannedKeypair]


@dataclass
class WalletProvision:
    """What was done for one wallet."""
    name: str
    pubkey: str
    token_account: str


@dataclass
class ProvisionReport:
    mint: str
    owner: str
    wallets: List[WalletProvision] = field(default_factory=list)


class Provisioner:
    """Runs the airdrop and token minting sequence against the validator."""

    def __init__(self, config: LocalnetConfig, runner: CommandRunner):
        self.config = config
        self.runner = runner
        self.rpc_url = config.rpc_url

    def _solana(self, *args: str):
        return self.runner.run("solana", "-u", self.rpc_url, *args)

    def _spl_token(self, *args: str):
        return self.runner.run("spl-token", "-u", self.rpc_url, *args)

    def _require(self, path: Path, role: str) -> AnyKeypair:
        if not path.exists():
            if self.runner.dry_run:
                return PlannedKeypair(path)
            raise KeypairError(f"{role} keypair not found at {path}; run keygen first")
        return load_keypair(path)

    def _wallets(self) -> List[AnyKeypair]:
        wallet_files = list_wallet_files(self.config.wallets_dir)
        if wallet_files or not self.runner.dry_run:
            return [load_keypair(path) for path in wallet_files]
        names = wallet_names(self.config.players, self.config.wallets_per_player)
        return [PlannedKeypair(self.config.wallets_dir / f"{name}.json") for name in names]

    def airdrop(self, keypair_path: Path) -> None:
        self._solana("-k", str(keypair_path), "airdrop", format_amount(self.config.sol_airdrop_amount))

    def create_token(self, owner: AnyKeypair, mint: AnyKeypair) -> None:
        self._spl_token(
            "create-token",
            "--decimals", str(self.config.decimals),
            "--fee-payer", str(owner.path),
            "--mint-authority", owner.pubkey,
            "--", str(mint.path),
        )

    def create_token_account(self, mint: AnyKeypair, holder_pubkey: str, fee_payer: Path) -> None:
        self._spl_token(
            "create-account", mint.pubkey,
            "--owner", holder_pubkey,
            "--fee-payer", str(fee_payer),
        )

    def associated_token_address(self, mint: AnyKeypair, holder_pubkey: str) -> str:
        result = self.runner.run(
            "spl-token", "address", "-v",
            "--token", mint.pubkey,
            "--owner", holder_pubkey,
            capture=True,
        )
        if self.runner.dry_run:
            return DRY_RUN_ATA
        return parse_associated_token_address(result.stdout)

    def mint_to(self, mint: AnyKeypair, owner: AnyKeypair, fee_payer: Path, token_account: str) -> None:
        self._spl_token(
            "mint", mint.pubkey, format_amount(self.config.mint_amount),
            "--fee-payer", str(fee_payer),
            "--mint-authority", str(owner.path),
            token_account,
        )

    def provision_wallet(self, wallet: AnyKeypair, mint: AnyKeypair, owner: AnyKeypair) -> WalletProvision:
        sols = format_amount(self.config.sol_airdrop_amount)
        print(f"\nAirdrop {sols} SOL for {wallet.pubkey} ({wallet.path.name})")
        self.airdrop(wallet.path)

        print(f"\nCreate token account for {wallet.pubkey}")
        self.create_token_account(mint, wallet.pubkey, wallet.path)
        token_account = self.associated_token_address(mint, wallet.pubkey)

        print(f"\nMint {format_amount(self.config.mint_amount)} tokens for {wallet.pubkey} ({wallet.path.name})")
        self.mint_to(mint, owner, wallet.path, token_account)

        return WalletProvision(name=wallet.name, pubkey=wallet.pubkey, token_account=token_account)

    def run(self) -> ProvisionReport:
        """Execute the whole sequence; any failure propagates."""
        owner = self._require(self.config.owner_keypair_path, "Owner")
        mint = self._require(self.config.mint_keypair_path, "Mint")
        wallets = self._wallets()
        logger.info("Provisioning %d wallets against %s", len(wallets), self.rpc_url)

        print(f"\nAirdrop {format_amount(self.config.sol_airdrop_amount)} for token owner ({owner.pubkey})")
        self.airdrop(owner.path)

        print(f"\nCreate token {mint.pubkey}")
        self.create_token(owner, mint)

        print("\nCreate owner's token account")
        self.create_token_account(mint, owner.pubkey, owner.path)

        report = ProvisionReport(mint=mint.pubkey, owner=owner.pubkey)
        for wallet in wallets:
            report.wallets.append(self.provision_wallet(wallet, mint, owner))

        print(f"\n✅ Provisioned {len(report.wallets)} wallets with token {mint.pubkey}")
        return report
