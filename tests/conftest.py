"""Shared fakes: a scripted node and a signer whose blob depends on every field."""
import json
from collections import deque

import pytest

from ledger_submit.sequence import SequenceResolver
from ledger_submit.signer import SignResult
from ledger_submit.submission import SubmissionLoop

ACCOUNT = "rHb9CJAWyB4rj91VRWn96DkukG4bwdtyTh"
OTHER = "rPT1Sjq2YGrBMTttX4GZHjKu9dyfzbpAYe"
NODE = "http://node-a:5005"


def engine(result: str, tx_hash: str = "ABCD") -> dict:
    return {
        "engine_result": result,
        "engine_result_message": result,
        "tx_json": {"hash": tx_hash},
    }


class FakeNode:
    """Scripted node: hands out queued sequences and submit responses in order."""

    def __init__(self, sequences=(), responses=()):
        self.sequences = deque(sequences)
        self.responses = deque(responses)
        self.fetches: list[tuple[str, str]] = []
        self.submitted: list[str] = []
        self.transactions: dict[str, dict] = {}

    async def fetch_sequence(self, node: str, address: str) -> int:
        self.fetches.append((node, address))
        seq = self.sequences.popleft()
        if isinstance(seq, BaseException):
            raise seq
        return seq

    async def fetch_transaction(self, node: str, tx_hash: str) -> dict | None:
        return self.transactions.get(tx_hash)

    async def submit_transaction(self, node: str, blob: str) -> dict:
        self.submitted.append(blob)
        res = self.responses.popleft()
        if isinstance(res, BaseException):
            raise res
        return res


class FakeSigner:
    def __init__(self, chain=None):
        self.chain = chain
        self.signed: list[dict] = []

    def sign(self, tx: dict, secret: str) -> SignResult:
        self.signed.append(dict(tx))
        blob = json.dumps(tx, sort_keys=True).encode().hex().upper()
        return SignResult(hash=f"SIG-{tx.get('Sequence')}", blob=blob)


@pytest.fixture
def resolver():
    return SequenceResolver()


@pytest.fixture
def signer():
    return FakeSigner()


@pytest.fixture
def make_loop(resolver, signer):
    def _make(node: FakeNode, retry: int = 0) -> SubmissionLoop:
        return SubmissionLoop(node, signer, resolver, retry=retry)
    return _make


def decode_blob(blob: str) -> dict:
    return json.loads(bytes.fromhex(blob))
