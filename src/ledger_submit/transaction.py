import asyncio
import contextlib
import logging
import random
from collections.abc import Callable, Sequence
from typing import Any

from ledger_submit.config import ChainOption, cfg, resolve_chain
from ledger_submit.rpc import NodeClient, NodeRpc
from ledger_submit.sequence import AccountLocks, SequenceResolver
from ledger_submit.signer import ChainWallet, Signer, load_signer
from ledger_submit.submission import SubmissionLoop, TransactionRejected
from ledger_submit import txn_factory as tf
import ledger_submit.constants as C

log = logging.getLogger("ledger_submit.transaction")


class Transaction:
    """Per-operation entry points over one shared sequence cache.

    Every operation builds its transaction, runs it through the submission
    loop and then either advances the acting account's cached sequence (on
    success) or drops it (on any failure).
    """

    def __init__(
        self,
        chain: "str | ChainOption",
        nodes: Sequence[str],
        retry: int = 0,
        *,
        rpc: NodeClient | None = None,
        signer: Signer | None = None,
        resolver: SequenceResolver | None = None,
        serialize_accounts: bool = False,
        validation: dict | None = None,
    ) -> None:
        if not nodes:
            raise ValueError("at least one node url is required")
        self.wallet = ChainWallet(chain)
        self.nodes = list(nodes)
        self.retry = retry
        self.rpc: NodeClient = rpc or NodeRpc()
        self.signer: Signer = signer or self.wallet
        self.resolver = resolver or SequenceResolver()
        self.loop = SubmissionLoop(self.rpc, self.signer, self.resolver, retry=retry)
        # optional queuing of same-account submits; the node's sequence check is the real guard
        self._locks = AccountLocks() if serialize_accounts else None
        validation = validation or {}
        self.validation_timeout = float(validation.get("overall", C.VALIDATION_TIMEOUT))
        self.validation_poll = float(validation.get("poll_interval", C.VALIDATION_POLL_INTERVAL))

    @classmethod
    def from_config(cls, config: dict | None = None, **kwargs: Any) -> "Transaction":
        config = config or cfg
        sub = config.get("submission", {})
        chain = resolve_chain(config["chain"]["name"], config)
        if chain.signer:
            kwargs.setdefault("signer", load_signer(chain.signer)(chain))
        kwargs.setdefault("rpc", NodeRpc(timeout=float(config["node"].get("timeout", C.RPC_TIMEOUT))))
        kwargs.setdefault("serialize_accounts", bool(sub.get("serialize_accounts", False)))
        kwargs.setdefault("validation", config.get("validation"))
        return cls(chain, config["node"]["urls"], int(sub.get("retry", 0)), **kwargs)

    # =========================================================================
    # Node access
    # =========================================================================

    def get_node(self) -> str:
        return random.choice(self.nodes)

    async def fetch_sequence(self, node: str, address: str) -> int:
        return await self.rpc.fetch_sequence(node, address)

    async def fetch_transaction(self, node: str, tx_hash: str) -> dict | None:
        return await self.rpc.fetch_transaction(node, tx_hash)

    async def send_raw_transaction(self, blob: str, url: str | None = None) -> str:
        """Submit an already signed blob once; no sequence bookkeeping."""
        res = await self.rpc.submit_transaction(url or self.get_node(), blob)
        if not self.is_success(res):
            raise TransactionRejected(res, 1)
        return res["tx_json"]["hash"]

    @staticmethod
    def is_validated(result: dict | None) -> bool:
        return bool(result) and result.get("status", "success") == "success" and bool(result.get("validated"))

    @staticmethod
    def is_success(result: dict | None) -> bool:
        return bool(result) and result.get("engine_result") == C.EngineResult.TES_SUCCESS

    async def wait_for_validation(
        self,
        tx_hash: str,
        *,
        node: str | None = None,
        overall: float | None = None,
        poll_interval: float | None = None,
    ) -> dict:
        """Poll the node until ``tx_hash`` is in a validated ledger or ``overall`` runs out."""
        node = node or self.get_node()
        overall = self.validation_timeout if overall is None else overall
        poll_interval = self.validation_poll if poll_interval is None else poll_interval
        try:
            async with asyncio.timeout(overall):
                while True:
                    result = await self.fetch_transaction(node, tx_hash)
                    if self.is_validated(result):
                        log.debug("tx %s validated in ledger %s", tx_hash, result.get("ledger_index"))
                        return result
                    await asyncio.sleep(poll_interval)
        except TimeoutError:
            log.warning("Validation timeout tx=%s after %.1fs", tx_hash, overall)
            return {"validated": False, "timeout": True}

    # =========================================================================
    # Sequence bookkeeping shared by every operation
    # =========================================================================

    async def _with_sequence_bookkeeping(self, account: str, secret: str, build: Callable[[], dict]) -> str:
        lock = self._locks.get_lock(account) if self._locks else contextlib.nullcontext()
        async with lock:
            try:
                tx = build()
                tx_hash = await self.loop.submit(secret, tx, self.get_node())
            except BaseException:
                self.resolver.invalidate(account)
                raise
            self.resolver.advance(account)
            log.info("%s from %s accepted: %s", tx.get("TransactionType"), account, tx_hash)
            return tx_hash

    @property
    def _fee(self) -> int:
        return self.wallet.get_fee()

    def _issuer(self, issuer: str | None) -> str:
        return issuer or self.wallet.get_issuer()

    # =========================================================================
    # Operations
    # =========================================================================

    async def create_order(
        self,
        address: str,
        secret: str,
        amount: str,
        base: str,
        counter: str,
        sum_: str,
        exchange_type: C.ExchangeType | str,
        platform: str | None = None,
        issuer: str | None = None,
    ) -> str:
        """Place an offer on the ``base``/``counter`` pair.

        ``amount`` is in base units, ``sum_`` is amount times price in counter
        units; ``exchange_type`` is "buy" or "sell" from the base side. ``platform``
        only applies to chains whose offers carry a Platform field.
        """
        return await self._with_sequence_bookkeeping(
            address,
            secret,
            lambda: tf.build_create_order(
                address, amount, base, counter, sum_, exchange_type, platform,
                self.wallet.get_currency(), self._fee, self._issuer(issuer),
            ),
        )

    async def cancel_order(self, address: str, secret: str, offer_sequence: int) -> str:
        return await self._with_sequence_bookkeeping(
            address, secret, lambda: tf.build_cancel_order(address, offer_sequence, self._fee)
        )

    async def transfer(
        self,
        address: str,
        secret: str,
        amount: str,
        memo: tf.Memo,
        to: str,
        token: str,
        issuer: str | None = None,
    ) -> str:
        return await self._with_sequence_bookkeeping(
            address,
            secret,
            lambda: tf.build_payment(
                address, amount, to, token, memo, self._fee, self.wallet.get_currency(), self._issuer(issuer)
            ),
        )

    async def set_brokerage(
        self,
        platform_account: str,
        platform_secret: str,
        fee_account: str,
        rate_num: int,
        rate_den: int,
        token: str,
        issuer: str | None = None,
    ) -> str:
        # the platform account pays for and signs the brokerage setting
        return await self._with_sequence_bookkeeping(
            platform_account,
            platform_secret,
            lambda: tf.build_brokerage(
                platform_account, fee_account, rate_num, rate_den, token, self._issuer(issuer), self._fee
            ),
        )

    async def add_black_list(self, address: str, secret: str, account: str, memo: tf.Memo) -> str:
        return await self._with_sequence_bookkeeping(
            address, secret, lambda: tf.build_set_blacklist(address, account, memo, self._fee)
        )

    async def remove_black_list(self, address: str, secret: str, account: str, memo: tf.Memo) -> str:
        return await self._with_sequence_bookkeeping(
            address, secret, lambda: tf.build_remove_blacklist(address, account, memo, self._fee)
        )

    async def set_manage_issuer(self, address: str, secret: str, account: str, memo: tf.Memo) -> str:
        return await self._with_sequence_bookkeeping(
            address, secret, lambda: tf.build_manage_issuer(address, account, memo, self._fee)
        )

    async def issue_set(
        self, address: str, secret: str, amount: str, memo: tf.Memo, token: str, issuer: str
    ) -> str:
        """Pre-issue up to ``amount`` of a new token."""
        return await self._with_sequence_bookkeeping(
            address, secret, lambda: tf.build_issue_set(address, amount, token, memo, issuer, self._fee)
        )

    async def set_signer_list(
        self,
        address: str,
        secret: str,
        signer_quorum: int,
        signer_entries: Sequence[tf.SignerEntryInput] | None = None,
    ) -> str:
        """Enable multi-signing for ``address``; a quorum of zero disables it."""
        return await self._with_sequence_bookkeeping(
            address, secret, lambda: tf.build_signer_list(address, signer_quorum, self._fee, signer_entries)
        )

    async def set_account(self, address: str, secret: str, disable: bool) -> str:
        return await self._with_sequence_bookkeeping(
            address, secret, lambda: tf.build_set_account(address, disable, self._fee)
        )

    async def transfer721(
        self, account: str, secret: str, receiver: str, token_id: str, memo: tf.Memo = None
    ) -> str:
        return await self._with_sequence_bookkeeping(
            account, secret, lambda: tf.build_transfer_721(account, receiver, token_id, self._fee, memo)
        )

    async def delete721(self, account: str, secret: str, token_id: str) -> str:
        return await self._with_sequence_bookkeeping(
            account, secret, lambda: tf.build_delete_721(account, token_id, self._fee)
        )

    async def set_token_issue(
        self,
        account: str,
        secret: str,
        publisher: str,
        amount: int,
        token: str,
        flag: C.TokenFlag | int,
    ) -> str:
        """Grant ``publisher`` the right to publish ``amount`` tokens of ``token``."""
        return await self._with_sequence_bookkeeping(
            account, secret, lambda: tf.build_token_issue(account, publisher, amount, token, flag, self._fee)
        )

    async def publish721(
        self,
        account: str,
        secret: str,
        receiver: str,
        token: str,
        token_id: str,
        token_infos: Sequence[tf.TokenInfoInput] | None = None,
    ) -> str:
        return await self._with_sequence_bookkeeping(
            account,
            secret,
            lambda: tf.build_publish_721(account, receiver, token, token_id, self._fee, token_infos),
        )
