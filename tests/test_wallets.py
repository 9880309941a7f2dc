import pytest

from solana_localnet.core.config import TransferCase
from solana_localnet.core.units import (
    coins_to_subunits, format_amount, lamports_to_sol, sol_to_lamports, subunits_to_coins,
)
from solana_localnet.core.wallets import WalletManager, parse_balance

from conftest import FakeRunner

RPC = "http://localhost:8899"


@pytest.mark.parametrize("output, expected", [
    ("1000 SOL\n", 1000.0),
    ("0.5 SOL", 0.5),
    ("1000\n", 1000.0),
])
def test_parse_balance(output, expected):
    assert parse_balance(output) == expected


def test_parse_balance_without_number():
    with pytest.raises(ValueError):
        parse_balance("Error: account not found")


def test_unit_conversions_round_down():
    assert sol_to_lamports(1.5) == 1_500_000_000
    assert lamports_to_sol(2_500_000_000) == 2.5
    assert coins_to_subunits(1.2345678, 6) == 1_234_567
    assert subunits_to_coins(1_500_000, 6) == 1.5
    assert format_amount(1000.0) == "1000"
    assert format_amount(0.25) == "0.25"


def test_sol_balances_lists_every_wallet(config, runner, provisioned_workdir):
    _, _, wallets = provisioned_workdir
    lines = WalletManager(config, runner).sol_balances()

    assert [str(line) for line in lines] == [f"{i}. {w.pubkey}: 1000" for i, w in enumerate(wallets)]
    assert runner.calls[0] == ["solana", "-u", RPC, "balance", wallets[0].pubkey]


def test_balance_failure_is_reported_per_wallet(config, provisioned_workdir):
    _, mint, wallets = provisioned_workdir
    runner = FakeRunner(fail_on=lambda argv: wallets[1].pubkey in argv)

    lines = WalletManager(config, runner).token_balances()

    assert lines[0].balance == 1000
    assert lines[1].error is not None
    assert lines[2].balance == 1000
    assert runner.calls[0] == ["spl-token", "-u", RPC, "balance", mint.pubkey, "--owner", wallets[0].pubkey]


def test_airdrop_all_includes_owner_last(config, runner, provisioned_workdir):
    owner, _, wallets = provisioned_workdir
    lines = WalletManager(config, runner).airdrop_all(2)

    assert len(lines) == len(wallets) + 1
    assert lines[-1].startswith(f"token:owner. {owner.pubkey}")
    assert runner.calls[-1] == ["solana", "-u", RPC, "-k", str(owner.path), "airdrop", "2"]


def test_describe_columns(config, runner, provisioned_workdir):
    _, _, wallets = provisioned_workdir
    manager = WalletManager(config, runner)

    assert manager.describe(show_pubkey=True, show_keypair=False)[0] == wallets[0].pubkey
    assert manager.describe(show_pubkey=False, show_keypair=True)[0] == wallets[0].to_base58()
    assert manager.describe(False, False)[0] == f"{wallets[0].pubkey} | {wallets[0].to_base58()}"


def test_transfer_sols_skips_invalid_indexes(config, runner, provisioned_workdir, capsys):
    _, _, wallets = provisioned_workdir
    config.sol_transfers = [TransferCase(0, 1, 0.5), TransferCase(7, 1, 1), TransferCase(0, 9, 1)]

    outcomes = WalletManager(config, runner).transfer_sols()

    assert [o.ok for o in outcomes] == [True, False, False]
    assert runner.calls == [[
        "solana", "-u", RPC, "-k", str(wallets[0].path),
        "transfer", "--allow-unfunded-recipient", wallets[1].pubkey, "0.5",
    ]]
    out = capsys.readouterr().out
    assert "invalid sender wallet index 7" in out
    assert "invalid receiver wallet index 9" in out


def test_transfer_tokens_continues_after_failure(config, provisioned_workdir):
    _, mint, wallets = provisioned_workdir
    config.token_transfers = [TransferCase(0, 1, 10), TransferCase(1, 2, 5)]
    runner = FakeRunner(fail_on=lambda argv: argv[5] == "10")

    outcomes = WalletManager(config, runner).transfer_tokens()

    assert [o.ok for o in outcomes] == [False, True]
    assert runner.calls[1] == [
        "spl-token", "-u", RPC, "transfer", mint.pubkey, "5", wallets[2].pubkey,
        "--owner", str(wallets[1].path), "--fee-payer", str(wallets[1].path), "--fund-recipient",
    ]


def test_transfer_amounts_are_floored_to_smallest_unit(config, runner, provisioned_workdir):
    config.sol_transfers = [TransferCase(0, 1, 0.1234567891234)]
    config.token_transfers = [TransferCase(1, 2, 2.5000009)]
    manager = WalletManager(config, runner)

    manager.transfer_sols()
    manager.transfer_tokens()

    assert runner.calls[0][-1] == "0.123456789"
    assert runner.calls[1][5] == "2.5"


def test_airdrop_amount_is_floored_to_lamports(config, runner, provisioned_workdir):
    lines = WalletManager(config, runner).airdrop_all(1.0000000009)

    assert all(call[-1] == "1" for call in runner.calls)
    assert lines[0].endswith("airdropped 1 SOL")
