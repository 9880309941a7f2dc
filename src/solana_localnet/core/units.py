"""Conversions between human amounts and on-chain integer units."""

import math

LAMPORTS_PER_SOL = 1_000_000_000


def sol_to_lamports(sol: float) -> int:
    return int(math.floor(sol * LAMPORTS_PER_SOL))


def lamports_to_sol(lamports: int) -> float:
    return lamports / LAMPORTS_PER_SOL


def coins_to_subunits(amount: float, decimals: int) -> int:
    """Token amount to base units, rounding down like the token program does."""
    return int(math.floor(amount * 10 ** decimals))


def subunits_to_coins(subunits: int, decimals: int) -> float:
    return subunits / 10 ** decimals


def format_amount(amount: float) -> str:
    """Render an amount for a CLI argument: ``1000`` rather than ``1000.0``."""
    amount = float(amount)
    if amount.is_integer():
        return str(int(amount))
    return repr(amount)
