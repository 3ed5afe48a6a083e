import pytest

from ledger_submit.constants import SubmitState
from ledger_submit.rpc import RpcError
from ledger_submit.submission import (
    PendingAttempt,
    RetryBudgetExhausted,
    SubmissionLoop,
    TransactionRejected,
)

from conftest import ACCOUNT, NODE, FakeNode, decode_blob, engine


def payment() -> dict:
    return {"TransactionType": "Payment", "Account": ACCOUNT, "Fee": "10", "Flags": 0}


@pytest.mark.asyncio
async def test_accepts_first_try_with_fetched_sequence(make_loop, resolver):
    node = FakeNode(sequences=[5], responses=[engine("tesSUCCESS", "HASH1")])
    tx_hash = await make_loop(node, retry=3).submit("s", payment(), NODE)

    assert tx_hash == "HASH1"
    assert node.fetches == [(NODE, ACCOUNT)]
    assert decode_blob(node.submitted[0])["Sequence"] == 5
    # the loop itself never advances; that is the caller's job
    assert resolver.cache.read(ACCOUNT) == 5


@pytest.mark.asyncio
async def test_past_seq_then_success_refetches_and_resigns(make_loop, resolver, signer):
    node = FakeNode(
        sequences=[5, 6],
        responses=[engine("tefPAST_SEQ"), engine("tesSUCCESS", "ABCD")],
    )
    tx_hash = await make_loop(node, retry=2).submit("s", payment(), NODE)

    assert tx_hash == "ABCD"
    assert len(node.fetches) == 2
    assert [s["Sequence"] for s in signer.signed] == [5, 6]
    assert node.submitted[0] != node.submitted[1]
    assert resolver.cache.read(ACCOUNT) == 6


@pytest.mark.asyncio
async def test_pre_seq_is_retried(make_loop):
    node = FakeNode(sequences=[8, 8], responses=[engine("terPRE_SEQ"), engine("tesSUCCESS", "OK")])
    assert await make_loop(node, retry=1).submit("s", payment(), NODE) == "OK"
    assert len(node.submitted) == 2


@pytest.mark.asyncio
async def test_non_sequence_failure_is_fatal_immediately(make_loop, resolver):
    bad_fee = engine("temBAD_FEE")
    node = FakeNode(sequences=[5], responses=[bad_fee])

    with pytest.raises(TransactionRejected) as exc:
        await make_loop(node, retry=5).submit("s", payment(), NODE)

    assert exc.value.response is bad_fee
    assert exc.value.engine_result == "temBAD_FEE"
    assert exc.value.attempts == 1
    assert len(node.submitted) == 1
    # cleanup on fatal belongs to the caller
    assert resolver.cache.read(ACCOUNT) == 5


@pytest.mark.asyncio
async def test_retry_zero_makes_exactly_one_attempt(make_loop):
    node = FakeNode(sequences=[5], responses=[engine("tefPAST_SEQ")])

    with pytest.raises(RetryBudgetExhausted) as exc:
        await make_loop(node, retry=0).submit("s", payment(), NODE)

    assert exc.value.attempts == 1
    assert len(node.submitted) == 1


@pytest.mark.asyncio
async def test_attempts_bounded_by_retry_plus_one(make_loop, resolver):
    node = FakeNode(sequences=[1, 2, 3, 4], responses=[engine("tefPAST_SEQ")] * 4)

    with pytest.raises(RetryBudgetExhausted) as exc:
        await make_loop(node, retry=2).submit("s", payment(), NODE)

    assert exc.value.attempts == 3
    assert exc.value.engine_result == "tefPAST_SEQ"
    assert len(node.submitted) == 3
    assert len(node.fetches) == 3
    assert resolver.cache.read(ACCOUNT) is None


@pytest.mark.asyncio
async def test_callers_transaction_is_not_mutated(make_loop):
    tx = payment()
    node = FakeNode(sequences=[5, 6], responses=[engine("tefPAST_SEQ"), engine("tesSUCCESS")])
    await make_loop(node, retry=1).submit("s", tx, NODE)
    assert tx == payment()


@pytest.mark.asyncio
async def test_cached_sequence_skips_fetch(make_loop, resolver):
    resolver.cache.write(ACCOUNT, 12)
    node = FakeNode(responses=[engine("tesSUCCESS")])
    await make_loop(node).submit("s", payment(), NODE)
    assert node.fetches == []
    assert decode_blob(node.submitted[0])["Sequence"] == 12


@pytest.mark.asyncio
async def test_transport_error_propagates(make_loop):
    node = FakeNode(sequences=[5], responses=[RpcError("submit", {"error": "noNetwork"})])
    with pytest.raises(RpcError):
        await make_loop(node, retry=3).submit("s", payment(), NODE)
    assert len(node.submitted) == 1


@pytest.mark.asyncio
async def test_missing_account_is_rejected_before_any_io(make_loop):
    node = FakeNode()
    with pytest.raises(ValueError):
        await make_loop(node).submit("s", {"TransactionType": "Payment"}, NODE)
    assert node.fetches == [] and node.submitted == []


def test_negative_retry_is_rejected(resolver, signer):
    with pytest.raises(ValueError):
        SubmissionLoop(FakeNode(), signer, resolver, retry=-1)


def test_pending_attempt_str_and_engine_result():
    p = PendingAttempt(account=ACCOUNT, attempt=2, sequence=9)
    assert p.engine_result is None
    p.response = engine("terPRE_SEQ")
    p.state = SubmitState.RETRY
    assert p.engine_result == "terPRE_SEQ"
    assert ACCOUNT in str(p) and "seq=9" in str(p)


def test_submission_error_message_is_json_of_response():
    err = TransactionRejected(engine("temMALFORMED"), 1)
    assert '"engine_result": "temMALFORMED"' in str(err)
