#!/usr/bin/env python3
"""
Solana Localnet CLI

A command-line interface for bringing up a local Solana test validator and
preparing it for development: keypairs, SOL airdrops and an SPL token
minted to every player wallet.

Usage:
    solana-localnet up                  # Start DNS + validator containers
    solana-localnet keygen              # Generate owner, mint and player keypairs
    solana-localnet setup               # Airdrop SOL, create token, mint to wallets
    solana-localnet bootstrap           # All of the above, in order
    solana-localnet token balances      # Show token balances of all wallets
"""

import argparse
import json
import logging
import math
import sys
from pathlib import Path
from typing import List, Optional

from .core.commands import CommandRunner
from .core.compose import ComposeStack, write_compose_files, validate_network, wait_for_rpc
from .core.config import LocalnetConfig, load_config
from .core.errors import LocalnetError
from .core.keypairs import KeypairGenerator, generate_keypair, load_keypair, save_keypairs
from .core.provision import Provisioner, ProvisionReport
from .core.wallets import WalletManager


logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(verbose: int = 0) -> None:
    """WARNING by default, INFO with -v, DEBUG with -vv."""
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr)


class LocalnetCLI:
    """
    Command handlers for the localnet harness.

    Each handler does one step of the local development workflow; the
    bootstrap handler chains them in dependency order.
    """

    def __init__(self, config: LocalnetConfig, project_dir: Optional[Path] = None,
                 dry_run: bool = False, runner: Optional[CommandRunner] = None):
        self.config = config
        self.project_dir = Path(project_dir) if project_dir else Path.cwd()
        self.runner = runner or CommandRunner(
            tools=config.tools,
            timeout=config.command_timeout,
            dry_run=dry_run,
        )

    # Containers

    def compose_stack(self) -> ComposeStack:
        return ComposeStack(self.config.compose, self.runner, self.project_dir)

    def up(self):
        compose_file = self.project_dir / self.config.compose.compose_file
        if not compose_file.exists():
            if self.runner.dry_run:
                print(f"📝 Would write {compose_file}")
            else:
                print(f"📝 Writing {compose_file}")
                write_compose_files(self.project_dir, self.config.compose)
        self.compose_stack().up()
        print(f"💡 RPC: {self.config.rpc_url}")

    def down(self, volumes: bool = False):
        self.compose_stack().down(volumes=volumes)

    def status(self):
        self.compose_stack().ps()

    def wait(self, timeout: float = 60.0):
        print(f"⏳ Waiting for validator at {self.config.rpc_url}...")
        waited = wait_for_rpc(self.config.rpc_url, timeout=timeout)
        print(f"✅ Validator healthy ({waited:.1f}s)")

    def render_compose(self, output: Optional[Path] = None):
        target = Path(output) if output else self.project_dir
        if self.config.compose.dns_ip:
            validate_network(self.config.compose)
        if self.runner.dry_run:
            print(f"📝 Would write {target / self.config.compose.compose_file}")
            return
        for path in write_compose_files(target, self.config.compose):
            print(f"📝 Wrote {path}")

    # Keypairs and provisioning

    def keygen(self) -> List[Path]:
        generator = KeypairGenerator(
            self.runner, self.config.workdir,
            players=self.config.players,
            wallets_per_player=self.config.wallets_per_player,
        )
        files = generator.generate_all()
        print(f"✅ {len(files)} keypairs written to {self.config.workdir}")
        return files

    def setup(self) -> ProvisionReport:
        return Provisioner(self.config, self.runner).run()

    def bootstrap(self, timeout: float = 60.0) -> ProvisionReport:
        self.up()
        if not self.runner.dry_run:
            self.wait(timeout)
        self.keygen()
        return self.setup()

    # Wallets

    def wallet_generate(self, count: int, save_to: Optional[Path] = None):
        keypairs = [generate_keypair() for _ in range(count)]
        if save_to is None:
            for keypair in keypairs:
                print(f"- {keypair.to_base58()}")
            return
        for keypair, path in zip(keypairs, save_keypairs(keypairs, Path(save_to))):
            print(f"- keypair: {keypair.to_base58()}\n  saved_to: {path}")

    def wallet_list(self, pubkey: bool = False, keypair: bool = False):
        for line in WalletManager(self.config, self.runner).describe(pubkey, keypair):
            print(line)

    def wallet_read(self, path: Path):
        print(load_keypair(Path(path)).to_base58())

    def balances(self):
        for line in WalletManager(self.config, self.runner).sol_balances():
            print(line)

    def token_balances(self):
        for line in WalletManager(self.config, self.runner).token_balances():
            print(line)

    def airdrop(self, sols: float):
        WalletManager(self.config, self.runner).airdrop_all(sols)

    def transfer(self, kind: str):
        manager = WalletManager(self.config, self.runner)
        if kind == "sols":
            manager.transfer_sols()
        else:
            manager.transfer_tokens()

    def show_config(self):
        print(json.dumps(self.config.to_dict(), indent=2, default=str))


def positive_float(value: str) -> float:
    try:
        number = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a number: {value}") from None
    if not math.isfinite(number) or number <= 0:
        raise argparse.ArgumentTypeError(f"must be a positive finite number, got {value}")
    return number


def positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {value}") from None
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be positive, got {value}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="solana-localnet",
        description="Local Solana test validator harness",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  solana-localnet up                     # Start containers
  solana-localnet keygen                 # Generate keypairs in ./workdir
  solana-localnet setup                  # Airdrop and mint tokens
  solana-localnet bootstrap              # Everything, in order
  solana-localnet wallet list --pubkey   # Show wallet addresses
        """
    )
    parser.add_argument('-c', '--config', help='YAML config file (default: ./localnet.yaml)')
    parser.add_argument('--workdir', help='Directory for keypair files (env: WORKDIR)')
    parser.add_argument('-u', '--url', help='Validator RPC URL')
    parser.add_argument('--dry-run', action='store_true', help='Print commands instead of running them')
    parser.add_argument('-v', '--verbose', action='count', default=0, help='More logging (-vv for debug)')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    subparsers.add_parser('up', help='Start the DNS and validator containers')
    down_parser = subparsers.add_parser('down', help='Stop the containers')
    down_parser.add_argument('--volumes', action='store_true', help='Also remove the ledger volume')
    subparsers.add_parser('status', help='Show container status')
    wait_parser = subparsers.add_parser('wait', help='Wait until the validator RPC is healthy')
    wait_parser.add_argument('--timeout', type=positive_float, default=60.0, help='Seconds to wait')

    compose_parser = subparsers.add_parser('compose', help='Compose file management')
    compose_sub = compose_parser.add_subparsers(dest='compose_command')
    render_parser = compose_sub.add_parser('render', help='Write docker-compose.yml and Corefile')
    render_parser.add_argument('--output', help='Target directory (default: current directory)')

    subparsers.add_parser('keygen', help='Generate owner, mint and player keypairs')
    subparsers.add_parser('setup', help='Airdrop SOL, create the token and mint to every wallet')
    bootstrap_parser = subparsers.add_parser('bootstrap', help='up, wait, keygen and setup')
    bootstrap_parser.add_argument('--timeout', type=positive_float, default=60.0, help='RPC wait timeout')

    wallet_parser = subparsers.add_parser('wallet', help='Wallets management')
    wallet_sub = wallet_parser.add_subparsers(dest='wallet_command')
    generate_parser = wallet_sub.add_parser('generate', help='Generate keypairs locally')
    generate_parser.add_argument('count', type=positive_int, help='Number of keypairs')
    generate_parser.add_argument('save_to', nargs='?', help='Directory to save solana-cli json files in')
    list_parser = wallet_sub.add_parser('list', help='List wallets')
    list_parser.add_argument('--pubkey', action='store_true', help='Show public key (account address)')
    list_parser.add_argument('--keypair', action='store_true', help='Show keypair')
    read_parser = wallet_sub.add_parser('read', help='Print a keypair file as a base58 string')
    read_parser.add_argument('path', help='Keypair file path')

    subparsers.add_parser('balances', help='Show SOL balances')
    token_parser = subparsers.add_parser('token', help='Token management')
    token_sub = token_parser.add_subparsers(dest='token_command')
    token_sub.add_parser('balances', help='Show token balances of all wallets')

    airdrop_parser = subparsers.add_parser('airdrop', help='Airdrop SOL to all wallets and the owner')
    airdrop_parser.add_argument('sols', type=positive_float, help='Amount in SOL')

    transfer_parser = subparsers.add_parser('transfer', help='Run configured test transfers')
    transfer_parser.add_argument('kind', choices=['sols', 'tokens'])

    subparsers.add_parser('show-config', help='Show config values')
    return parser


def dispatch(cli: LocalnetCLI, args: argparse.Namespace, parser: argparse.ArgumentParser) -> int:
    command = args.command
    if command == 'up':
        cli.up()
    elif command == 'down':
        cli.down(volumes=args.volumes)
    elif command == 'status':
        cli.status()
    elif command == 'wait':
        cli.wait(args.timeout)
    elif command == 'compose' and args.compose_command == 'render':
        cli.render_compose(args.output)
    elif command == 'keygen':
        cli.keygen()
    elif command == 'setup':
        cli.setup()
    elif command == 'bootstrap':
        cli.bootstrap(args.timeout)
    elif command == 'wallet' and args.wallet_command == 'generate':
        cli.wallet_generate(args.count, args.save_to)
    elif command == 'wallet' and args.wallet_command == 'list':
        cli.wallet_list(args.pubkey, args.keypair)
    elif command == 'wallet' and args.wallet_command == 'read':
        cli.wallet_read(args.path)
    elif command == 'balances':
        cli.balances()
    elif command == 'token' and args.token_command == 'balances':
        cli.token_balances()
    elif command == 'airdrop':
        cli.airdrop(args.sols)
    elif command == 'transfer':
        cli.transfer(args.kind)
    elif command == 'show-config':
        cli.show_config()
    else:
        parser.print_help()
        return 2
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    try:
        config = load_config(args.config)
        if args.workdir:
            config.workdir = Path(args.workdir).expanduser()
        if args.url:
            config.rpc_url = args.url
        cli = LocalnetCLI(config, dry_run=args.dry_run)
        return dispatch(cli, args, parser)

    except KeyboardInterrupt:
        print("\n👋 Interrupted")
        return 130

    except LocalnetError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"❌ Error: {e}", file=sys.stderr)
        return e.exit_code


if __name__ == '__main__':
    sys.exit(main())
