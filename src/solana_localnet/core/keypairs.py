"""
Solana Keypair Files

Keypairs are stored in the solana-cli JSON format: an array of 64 integers,
the 32-byte Ed25519 seed followed by the 32-byte public key. Addresses are
the base58 encoding of the public key.

Files for the localnet are produced by ``solana-keygen`` so that they are
exactly what the Solana tools expect; this module reads them back, checks
that the public half matches the seed, and can also mint throwaway
keypairs locally for ad-hoc use.

Based on: https://docs.solanalabs.com/cli/wallets/file-system
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional

import base58
from ecdsa import Ed25519, SigningKey

from .commands import CommandRunner
from .errors import KeypairError


logger = logging.getLogger(__name__)

SEED_LENGTH = 32
KEYPAIR_LENGTH = 64


@dataclass(frozen=True)
class Keypair:
    """An Ed25519 keypair as stored by the Solana CLI."""
    secret: bytes            # 64 bytes: seed + public key
    path: Optional[Path] = None

    @property
    def seed(self) -> bytes:
        return self.secret[:SEED_LENGTH]

    @property
    def public_key(self) -> bytes:
        return self.secret[SEED_LENGTH:]

    @property
    def pubkey(self) -> str:
        """Account address (base58 public key)."""
        return base58.b58encode(self.public_key).decode("ascii")

    @property
    def name(self) -> str:
        return self.path.stem if self.path else self.pubkey

    def to_base58(self) -> str:
        """Whole 64-byte secret in base58, the form wallets import."""
        return base58.b58encode(self.secret).decode("ascii")

    def to_json(self) -> str:
        return json.dumps(list(self.secret))

    def __str__(self) -> str:
        return self.pubkey


def derive_public_key(seed: bytes) -> bytes:
    """Compute the Ed25519 public key for a 32-byte seed."""
    signing_key = SigningKey.from_string(seed, curve=Ed25519)
    return signing_key.verifying_key.to_string()


def keypair_from_bytes(data: bytes, path: Optional[Path] = None) -> Keypair:
    """
    Validate raw keypair bytes.

    The stored public key must be the one derived from the seed; a mismatch
    means the file was corrupted or hand-edited.
    """
    where = f" ({path})" if path else ""
    if len(data) != KEYPAIR_LENGTH:
        raise KeypairError(f"Keypair must be {KEYPAIR_LENGTH} bytes, got {len(data)}{where}")

    derived = derive_public_key(data[:SEED_LENGTH])
    if derived != data[SEED_LENGTH:]:
        raise KeypairError(f"Public key does not match secret key{where}")
    return Keypair(secret=bytes(data), path=path)


def load_keypair(path: Path) -> Keypair:
    """Read a solana-cli keypair JSON file."""
    path = Path(path)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise KeypairError(f"Keypair file not found: {path}") from None
    except OSError as exc:
        raise KeypairError(f"Can't read keypair json file: path: {path}; cause: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise KeypairError(f"Can't parse keypair json file: path: {path}; cause: {exc}") from exc

    if not isinstance(raw, list) or not all(isinstance(b, int) and 0 <= b <= 255 for b in raw):
        raise KeypairError(f"Keypair file must contain a JSON array of bytes: {path}")
    return keypair_from_bytes(bytes(raw), path=path)


def generate_keypair() -> Keypair:
    """Generate a fresh keypair in memory."""
    signing_key = SigningKey.generate(curve=Ed25519)
    seed = signing_key.to_string()
    return Keypair(secret=seed + signing_key.verifying_key.to_string())


def save_keypairs(keypairs: Iterable[Keypair], directory: Path) -> List[Path]:
    """
    Write keypairs as ``id000000.json``, ``id000001.json``, ... into an
    existing directory. Returns the written paths.
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise KeypairError(f"Invalid wallet save dir: {directory}")

    written = []
    for i, keypair in enumerate(keypairs):
        target = directory / f"id{i:06d}.json"
        try:
            target.write_text(keypair.to_json(), encoding="utf-8")
        except OSError as exc:
            raise KeypairError(f"Can't save generated wallet to file: path: {target}; cause: {exc}") from exc
        written.append(target)
    return written


def wallet_names(players: int, per_player: int) -> List[str]:
    """Player wallet names: p1w0 ... p1w9, p2w0 ... for the defaults."""
    return [f"p{player}w{wallet}"
            for player in range(1, players + 1)
            for wallet in range(per_player)]


def list_wallet_files(wallets_dir: Path) -> List[Path]:
    """Wallet keypair files in a stable (sorted by name) order."""
    wallets_dir = Path(wallets_dir)
    if not wallets_dir.is_dir():
        return []
    return sorted((p for p in wallets_dir.glob("*.json") if p.is_file()), key=lambda p: p.name)


def load_wallets(wallets_dir: Path) -> List[Keypair]:
    return [load_keypair(path) for path in list_wallet_files(wallets_dir)]


class KeypairGenerator:
    """
    Creates the owner, mint and player keypair files with solana-keygen.

    Existing files are overwritten (``--force``), so rerunning gives a
    completely fresh set of identities.
    """

    def __init__(self, runner: CommandRunner, workdir: Path,
                 players: int = 2, wallets_per_player: int = 10):
        self.runner = runner
        self.workdir = Path(workdir)
        self.players = players
        self.wallets_per_player = wallets_per_player

    @property
    def wallets_dir(self) -> Path:
        return self.workdir / "wallets"

    def keygen(self, target: Path) -> Path:
        """Run ``solana-keygen new`` for a single file."""
        if not self.runner.dry_run:
            target.parent.mkdir(parents=True, exist_ok=True)
        self.runner.run(
            "solana-keygen", "new", "-s",
            "-o", str(target),
            "--no-bip39-passphrase", "--force",
        )
        logger.debug("Generated keypair %s", target)
        return target

    def planned_files(self) -> List[Path]:
        """Every file generate_all() writes, in generation order."""
        files = [self.workdir / "owner.json", self.workdir / "mint.json"]
        files.extend(self.wallets_dir / f"{name}.json"
                     for name in wallet_names(self.players, self.wallets_per_player))
        return files

    def generate_all(self) -> List[Path]:
        """Generate owner, mint and all player wallets."""
        files = self.planned_files()
        print(f"🔑 Generating {len(files)} keypairs in {self.workdir}")
        return [self.keygen(path) for path in files]
