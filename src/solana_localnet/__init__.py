"""
Solana Localnet Harness

Local development environment for Solana programs and clients: a test
validator and DNS container on a private bridge network, plus provisioning
that fills the fresh ledger with funded wallets and an SPL token.

Key Features:
- ✅ Compose topology with static DNS address and persistent ledger volume
- ✅ Owner, mint and player keypairs generated with solana-keygen
- ✅ SOL airdrops and SPL token minting to every player wallet
- ✅ Balance listings and scripted test transfers
- ✅ Abort-on-first-failure provisioning, like a `set -e` script

The validator, the token program and the DNS server are the stock
upstream images and CLIs; this package only drives them.
"""

__version__ = "0.1.0"

from .core import *
from .localnet_cli import LocalnetCLI, main

__all__ = [
    # Configuration
    'LocalnetConfig',
    'ComposeSettings',
    'load_config',

    # Building blocks
    'CommandRunner',
    'Keypair',
    'KeypairGenerator',
    'ComposeTopology',
    'ComposeStack',
    'Provisioner',
    'WalletManager',

    # Errors
    'LocalnetError',
    'CommandFailedError',

    # Main application
    'LocalnetCLI',
    'main',
]
