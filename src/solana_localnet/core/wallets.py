"""
Wallet Operations

Day-to-day helpers on top of a provisioned localnet: balance listings,
bulk airdrops and scripted test transfers between the generated wallets.

Unlike provisioning, these report per-wallet failures and keep going, so
one bad wallet does not hide the state of the others.
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Optional

from .commands import CommandRunner
from .config import LocalnetConfig, TransferCase
from .errors import CommandError
from .keypairs import Keypair, load_keypair, load_wallets
from .units import coins_to_subunits, format_amount, lamports_to_sol, sol_to_lamports, subunits_to_coins


logger = logging.getLogger(__name__)

_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")


def parse_balance(output: str) -> float:
    """First number in ``solana balance`` / ``spl-token balance`` output."""
    match = _NUMBER.search(output)
    if match is None:
        raise ValueError(f"No balance in output: {output.strip()!r}")
    return float(match.group())


def round_sols(sols: float) -> float:
    """Drop precision below one lamport."""
    return lamports_to_sol(sol_to_lamports(sols))


@dataclass
class BalanceLine:
    index: str
    pubkey: str
    balance: Optional[float] = None
    error: Optional[str] = None

    def __str__(self) -> str:
        if self.error is not None:
            return f"{self.index}. {self.pubkey}: error: {self.error}"
        return f"{self.index}. {self.pubkey}: {self.balance:g}"


@dataclass
class TransferOutcome:
    index: int
    case: TransferCase
    ok: bool
    message: str


class WalletManager:
    """Operations over the owner and player wallets of a workdir."""

    def __init__(self, config: LocalnetConfig, runner: CommandRunner):
        self.config = config
        self.runner = runner
        self._wallets: Optional[List[Keypair]] = None

    @property
    def wallets(self) -> List[Keypair]:
        if self._wallets is None:
            self._wallets = load_wallets(self.config.wallets_dir)
        return self._wallets

    def owner(self) -> Keypair:
        return load_keypair(self.config.owner_keypair_path)

    def mint(self) -> Keypair:
        return load_keypair(self.config.mint_keypair_path)

    def describe(self, show_pubkey: bool = True, show_keypair: bool = False) -> List[str]:
        """Lines for ``wallet list``; both or neither flag shows both columns."""
        lines = []
        for wallet in self.wallets:
            if show_pubkey == show_keypair:
                lines.append(f"{wallet.pubkey} | {wallet.to_base58()}")
            elif show_pubkey:
                lines.append(wallet.pubkey)
            else:
                lines.append(wallet.to_base58())
        return lines

    def _balance(self, index: str, pubkey: str, *argv: str) -> BalanceLine:
        try:
            output = self.runner.output(*argv)
            return BalanceLine(index, pubkey, balance=parse_balance(output))
        except (CommandError, ValueError) as exc:
            logger.debug("Balance lookup failed for %s: %s", pubkey, exc)
            return BalanceLine(index, pubkey, error=str(exc))

    def sol_balances(self) -> List[BalanceLine]:
        return [self._balance(str(i), w.pubkey, "solana", "-u", self.config.rpc_url, "balance", w.pubkey)
                for i, w in enumerate(self.wallets)]

    def token_balances(self) -> List[BalanceLine]:
        mint = self.mint()
        return [self._balance(str(i), w.pubkey, "spl-token", "-u", self.config.rpc_url,
                              "balance", mint.pubkey, "--owner", w.pubkey)
                for i, w in enumerate(self.wallets)]

    def round_tokens(self, amount: float) -> float:
        """Drop precision below the mint's smallest unit."""
        decimals = self.config.decimals
        return subunits_to_coins(coins_to_subunits(amount, decimals), decimals)

    def airdrop_all(self, sols: float) -> List[str]:
        """Airdrop to every wallet and then the token owner."""
        sols = round_sols(sols)
        targets = [(f"{i}. ", w) for i, w in enumerate(self.wallets)]
        if self.config.owner_keypair_path.exists():
            targets.append(("token:owner. ", self.owner()))

        results = []
        for prefix, keypair in targets:
            try:
                self.runner.output("solana", "-u", self.config.rpc_url, "-k", str(keypair.path),
                                   "airdrop", format_amount(sols))
                line = f"{prefix}{keypair.pubkey}: airdropped {format_amount(sols)} SOL"
            except CommandError as exc:
                line = f"{prefix}{keypair.pubkey}: error: {exc}"
            print(line)
            results.append(line)
        return results

    def _pair(self, case: TransferCase):
        count = len(self.wallets)
        if not 0 <= case.from_index < count:
            return None, f"invalid sender wallet index {case.from_index}"
        if not 0 <= case.to_index < count:
            return None, f"invalid receiver wallet index {case.to_index}"
        return (self.wallets[case.from_index], self.wallets[case.to_index]), None

    def _run_transfers(self, cases: List[TransferCase], unit: str, normalize, build_argv) -> List[TransferOutcome]:
        outcomes = []
        for i, case in enumerate(cases):
            pair, problem = self._pair(case)
            if problem:
                print(problem)
                outcomes.append(TransferOutcome(i, case, False, problem))
                continue
            sender, receiver = pair
            amount = format_amount(normalize(case.amount))
            try:
                self.runner.output(*build_argv(sender, receiver, amount))
                message = f"{i}. transferred {amount} {unit} from {sender.pubkey} to {receiver.pubkey}"
                ok = True
            except CommandError as exc:
                message = f"{i}. transfer {amount} {unit} {sender.pubkey} -> {receiver.pubkey} error: {exc}"
                ok = False
            print(message)
            outcomes.append(TransferOutcome(i, case, ok, message))
        return outcomes

    def transfer_sols(self) -> List[TransferOutcome]:
        rpc = self.config.rpc_url
        return self._run_transfers(
            self.config.sol_transfers, "SOL", round_sols,
            lambda sender, receiver, amount: (
                "solana", "-u", rpc, "-k", str(sender.path),
                "transfer", "--allow-unfunded-recipient", receiver.pubkey, amount,
            ),
        )

    def transfer_tokens(self) -> List[TransferOutcome]:
        rpc = self.config.rpc_url
        mint = self.mint()
        return self._run_transfers(
            self.config.token_transfers, "Tokens", self.round_tokens,
            lambda sender, receiver, amount: (
                "spl-token", "-u", rpc, "transfer", mint.pubkey, amount, receiver.pubkey,
                "--owner", str(sender.path), "--fee-payer", str(sender.path), "--fund-recipient",
            ),
        )
