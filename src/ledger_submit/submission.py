"""Drive one logical transaction to acceptance or a definitive failure.

Each attempt walks RESOLVING -> SIGNING -> SUBMITTING and lands in ACCEPTED,
RETRY or FATAL. Only terPRE_SEQ/tefPAST_SEQ are RETRY: they mean our sequence
belief is wrong, so the cached value is dropped and the next attempt
re-fetches it from the node before re-signing. Every other engine result is
FATAL on first sight.
"""
import json
import logging
from dataclasses import dataclass

from ledger_submit.rpc import NodeClient
from ledger_submit.sequence import SequenceResolver
from ledger_submit.signer import Signer
import ledger_submit.constants as C

log = logging.getLogger("ledger_submit.submission")


class SubmissionError(RuntimeError):
    """Terminal failure of a submit; carries the last node response."""

    def __init__(self, response: dict | None, attempts: int) -> None:
        self.response = response or {}
        self.attempts = attempts
        super().__init__(json.dumps(self.response, default=str))

    @property
    def engine_result(self) -> str | None:
        return self.response.get("engine_result")


class TransactionRejected(SubmissionError):
    """Node returned a non-sequence failure; retrying would not help."""


class RetryBudgetExhausted(SubmissionError):
    """Sequence collisions kept happening after every allowed retry."""


class SubmissionLoopOverrun(SubmissionError):
    """The loop ran past its attempt cap without reaching a terminal state."""


@dataclass(slots=True)
class PendingAttempt:
    account: str
    attempt: int
    state: C.SubmitState = C.SubmitState.RESOLVING
    sequence: int | None = None
    tx_json: dict | None = None
    tx_hash: str | None = None
    blob: str | None = None
    response: dict | None = None

    @property
    def engine_result(self) -> str | None:
        return (self.response or {}).get("engine_result")

    def __str__(self):
        return f"{self.account} seq={self.sequence} attempt={self.attempt} {self.state}"


class SubmissionLoop:
    def __init__(self, rpc: NodeClient, signer: Signer, resolver: SequenceResolver, retry: int = 0) -> None:
        if retry < 0:
            raise ValueError(f"retry must be non-negative, got {retry}")
        self.rpc = rpc
        self.signer = signer
        self.resolver = resolver
        self.retry = retry

    def _transition(self, p: PendingAttempt, state: C.SubmitState) -> None:
        log.debug("%s --> %s", p, state)
        p.state = state

    async def _attempt(self, p: PendingAttempt, secret: str, tx: dict, node: str) -> None:
        p.sequence = await self.resolver.resolve(p.account, self.rpc.fetch_sequence, node)
        # fresh copy every pass: the caller's dict is never stamped or signed
        p.tx_json = dict(tx)
        p.tx_json["Sequence"] = p.sequence

        self._transition(p, C.SubmitState.SIGNING)
        signed = self.signer.sign(p.tx_json, secret)
        p.tx_hash, p.blob = signed.hash, signed.blob

        self._transition(p, C.SubmitState.SUBMITTING)
        p.response = await self.rpc.submit_transaction(node, p.blob)

        er = p.engine_result
        if er == C.EngineResult.TES_SUCCESS:
            self._transition(p, C.SubmitState.ACCEPTED)
        elif er in C.RETRYABLE_RESULTS:
            self._transition(p, C.SubmitState.RETRY)
        else:
            self._transition(p, C.SubmitState.FATAL)

    async def submit(self, secret: str, tx: dict, node: str) -> str:
        """Sign and submit ``tx`` until accepted; return the accepted hash.

        Makes at most ``retry + 1`` submissions. Raises TransactionRejected on a
        non-sequence failure and RetryBudgetExhausted once sequence collisions
        outlast the budget. Errors from the collaborators propagate unchanged.
        """
        account = tx.get("Account")
        if not account:
            raise ValueError("transaction has no Account")

        remaining = self.retry
        max_attempts = self.retry + 1
        p: PendingAttempt | None = None

        for attempt in range(1, max_attempts + 1):
            p = PendingAttempt(account=account, attempt=attempt)
            await self._attempt(p, secret, tx, node)

            if p.state is C.SubmitState.ACCEPTED:
                tx_hash = p.response["tx_json"]["hash"]
                log.debug("%s accepted %s", p, tx_hash)
                return tx_hash

            if p.state is C.SubmitState.FATAL:
                log.warning("REJECTED: %s - %s %s", p.engine_result, tx.get("TransactionType"), p)
                raise TransactionRejected(p.response, attempt)

            # RETRY: our belief is provably wrong, make the next pass re-fetch
            self.resolver.invalidate(account)
            remaining -= 1
            if remaining < 0:
                self._transition(p, C.SubmitState.FATAL)
                log.error("%s: giving up on %s after %d attempts", p.engine_result, p, attempt)
                raise RetryBudgetExhausted(p.response, attempt)
            log.warning("%s: %s - retrying (%d left)", p.engine_result, p, remaining)

        raise SubmissionLoopOverrun(p.response if p else None, max_attempts)
