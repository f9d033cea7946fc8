from __future__ import annotations

import asyncio
from decimal import Decimal
from types import SimpleNamespace
from typing import Any, List, Optional

import pytest
from solders.keypair import Keypair
from solders.signature import Signature
from solders.transaction_status import TransactionConfirmationStatus

TOKEN_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
_SIG = Signature(bytes([7] * 64))


def _token_account(amount: int, decimals: int) -> Any:
    info = {"tokenAmount": {"amount": str(amount), "decimals": decimals}}
    return SimpleNamespace(account=SimpleNamespace(data=SimpleNamespace(parsed={"info": info})))


def _status(level: Any = TransactionConfirmationStatus.Confirmed, err: Any = None) -> Any:
    return SimpleNamespace(confirmation_status=level, err=err)


class _FakeRpc:
    def __init__(
        self,
        *,
        lamports: int = 0,
        token_accounts: Optional[List[Any]] = None,
        send_errors: Optional[List[Exception]] = None,
        statuses: Optional[List[Any]] = None,
        fail_reads: bool = False,
    ):
        self.lamports = lamports
        self.token_accounts = token_accounts or []
        self.send_errors = list(send_errors or [])
        self.statuses = list(statuses or [])
        self.fail_reads = fail_reads
        self.send_calls = 0
        self.send_opts: List[Any] = []

    async def get_version(self):
        if self.fail_reads:
            raise ConnectionError("connection refused")
        return SimpleNamespace(value=SimpleNamespace(solana_core="1.18.22"))

    async def get_balance(self, pubkey):  # noqa: ARG002
        if self.fail_reads:
            raise ConnectionError("connection refused")
        return SimpleNamespace(value=self.lamports)

    async def get_token_accounts_by_owner_json_parsed(self, owner, opts):  # noqa: ARG002
        if self.fail_reads:
            raise ConnectionError("connection refused")
        return SimpleNamespace(value=self.token_accounts)

    async def get_token_supply(self, mint):  # noqa: ARG002
        return SimpleNamespace(value=SimpleNamespace(decimals=6))

    async def send_transaction(self, tx, opts=None):  # noqa: ARG002
        self.send_calls += 1
        self.send_opts.append(opts)
        if self.send_errors:
            raise self.send_errors.pop(0)
        return SimpleNamespace(value=_SIG)

    async def get_signature_statuses(self, signatures):  # noqa: ARG002
        status = self.statuses.pop(0) if self.statuses else None
        return SimpleNamespace(value=[status])

    async def close(self):
        pass


def _client(rpc: _FakeRpc, **kwargs):
    from volbot.engines.execution.solana_client import SolanaClient

    params = dict(send_backoff_seconds=0.0, poll_interval=0.0, confirm_timeout=0.05)
    params.update(kwargs)
    return SolanaClient("http://rpc.test", Keypair(), client=rpc, **params)


def test_sol_balance_in_sol_units() -> None:
    client = _client(_FakeRpc(lamports=1_234_500_000))
    assert asyncio.run(client.get_sol_balance()) == Decimal("1.2345")


def test_token_balance_sums_accounts() -> None:
    rpc = _FakeRpc(token_accounts=[_token_account(1_500_000, 6), _token_account(250_000, 6)])
    client = _client(rpc)
    assert asyncio.run(client.get_token_balance(TOKEN_MINT)) == Decimal("1.75")


def test_token_balance_without_account_is_zero() -> None:
    client = _client(_FakeRpc())
    assert asyncio.run(client.get_token_balance(TOKEN_MINT)) == 0


def test_balance_read_failure_returns_none() -> None:
    client = _client(_FakeRpc(fail_reads=True))

    async def _run():
        return await client.get_sol_balance(), await client.get_token_balance(TOKEN_MINT)

    assert asyncio.run(_run()) == (None, None)
    assert asyncio.run(client.check_connection()) is None


def test_token_decimals_from_supply() -> None:
    client = _client(_FakeRpc())
    assert asyncio.run(client.get_token_decimals(TOKEN_MINT)) == 6


def test_submit_retries_network_errors() -> None:
    rpc = _FakeRpc(send_errors=[ConnectionError("connection reset")])
    client = _client(rpc, send_attempts=3)

    signature = asyncio.run(client.submit(object()))

    assert signature == str(_SIG)
    assert rpc.send_calls == 2
    assert rpc.send_opts[0].skip_preflight is False


def test_submit_exhaustion_raises_without_signature() -> None:
    from volbot.errors import SubmissionFailure

    rpc = _FakeRpc(send_errors=[ConnectionError("network unreachable")] * 3)
    client = _client(rpc, send_attempts=3)

    with pytest.raises(SubmissionFailure) as exc:
        asyncio.run(client.submit(object()))
    assert exc.value.signature is None
    assert rpc.send_calls == 3


def test_submit_does_not_resend_deterministic_rejection() -> None:
    from volbot.errors import SubmissionFailure

    rpc = _FakeRpc(send_errors=[RuntimeError("Transaction simulation failed: insufficient lamports")])
    client = _client(rpc, send_attempts=3)

    with pytest.raises(SubmissionFailure, match="simulation_failed"):
        asyncio.run(client.submit(object()))
    assert rpc.send_calls == 1


def test_confirmation_waits_through_processed() -> None:
    rpc = _FakeRpc(statuses=[None, _status(TransactionConfirmationStatus.Processed), _status()])
    client = _client(rpc, confirm_timeout=5.0)

    assert asyncio.run(client.wait_for_confirmation(str(_SIG))) is None
    assert rpc.statuses == []


def test_confirmation_rejected_keeps_signature() -> None:
    from volbot.errors import ConfirmationFailure

    rpc = _FakeRpc(statuses=[_status(err="InstructionError(2, Custom(6001))")])
    client = _client(rpc)

    with pytest.raises(ConfirmationFailure) as exc:
        asyncio.run(client.wait_for_confirmation(str(_SIG)))
    assert exc.value.reason == ConfirmationFailure.REJECTED
    assert exc.value.signature == str(_SIG)


def test_confirmation_timeout_keeps_signature() -> None:
    from volbot.errors import ConfirmationFailure

    client = _client(_FakeRpc(), confirm_timeout=0.01)

    with pytest.raises(ConfirmationFailure) as exc:
        asyncio.run(client.wait_for_confirmation(str(_SIG)))
    assert exc.value.reason == ConfirmationFailure.TIMEOUT
    assert exc.value.signature == str(_SIG)


@pytest.mark.parametrize(
    "message, retryable",
    [
        ("Blockhash not found", False),
        ("Transaction simulation failed", False),
        ("slippage tolerance exceeded", False),
        ("connection reset by peer", True),
        ("request timed out", True),
        ("something odd", True),
    ],
)
def test_error_classification(message: str, retryable: bool) -> None:
    from volbot.engines.execution.solana_client import RETRYABLE_REASONS, classify_error

    assert (classify_error(message) in RETRYABLE_REASONS) is retryable
