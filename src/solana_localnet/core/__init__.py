"""
Localnet Core Components

Building blocks of the local Solana development harness: configuration,
the external command runner, keypair files, container topology, token
provisioning and wallet operations.
"""

from .errors import (
    LocalnetError,
    ConfigError,
    KeypairError,
    TokenError,
    ComposeError,
    RpcUnavailableError,
    CommandError,
    ToolNotFoundError,
    CommandFailedError,
    CommandTimeoutError,
)
from .config import LocalnetConfig, ComposeSettings, ToolPaths, TransferCase, load_config
from .commands import CommandRunner, CommandResult
from .keypairs import (
    Keypair,
    KeypairGenerator,
    generate_keypair,
    load_keypair,
    list_wallet_files,
    save_keypairs,
    wallet_names,
)
from .compose import ComposeStack, ComposeTopology, render_compose, validate_network, wait_for_rpc
from .provision import Provisioner, ProvisionReport, parse_associated_token_address
from .wallets import WalletManager

__all__ = [
    'LocalnetError', 'ConfigError', 'KeypairError', 'TokenError', 'ComposeError',
    'RpcUnavailableError', 'CommandError', 'ToolNotFoundError', 'CommandFailedError',
    'CommandTimeoutError',
    'LocalnetConfig', 'ComposeSettings', 'ToolPaths', 'TransferCase', 'load_config',
    'CommandRunner', 'CommandResult',
    'Keypair', 'KeypairGenerator', 'generate_keypair', 'load_keypair',
    'list_wallet_files', 'save_keypairs', 'wallet_names',
    'ComposeStack', 'ComposeTopology', 'render_compose', 'validate_network', 'wait_for_rpc',
    'Provisioner', 'ProvisionReport', 'parse_associated_token_address',
    'WalletManager',
]
