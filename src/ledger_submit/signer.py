"""Local signing of transaction JSON into a submittable blob.

The submission loop only needs ``sign(tx, secret) -> SignResult``; anything
implementing :class:`Signer` can stand in for :class:`ChainWallet` (e.g. a
signer for a chain whose transaction types the XRPL binary codec doesn't know).
"""
import hashlib
import importlib
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from xrpl import XRPLException
from xrpl.core.addresscodec import is_valid_classic_address
from xrpl.core.binarycodec import encode, encode_for_signing
from xrpl.core.keypairs import sign
from xrpl.wallet import Wallet

from ledger_submit.config import ChainOption, resolve_chain

log = logging.getLogger("ledger_submit.signer")


@dataclass(frozen=True, slots=True)
class SignResult:
    hash: str  # signing hash, SHA512Half("STX\0" || fields)
    blob: str  # signed wire form, hex


class Signer(Protocol):
    def sign(self, tx: dict, secret: str) -> SignResult: ...


class SigningError(ValueError):
    """The transaction or secret could not be turned into a signed blob."""


def load_signer(path: str) -> Callable[[ChainOption], Signer]:
    """Resolve a ``"package.module:Name"`` signer factory; it is called with the ChainOption."""
    module_name, sep, attr = path.partition(":")
    if not sep or not attr:
        raise ValueError(f"signer must look like 'module:attr', got {path!r}")
    return getattr(importlib.import_module(module_name), attr)


def _sha512half(b: bytes) -> bytes:
    return hashlib.sha512(b).digest()[:32]


def signing_hash(signing_blob_hex: str) -> str:
    # encode_for_signing already carries the 0x53545800 prefix
    return _sha512half(bytes.fromhex(signing_blob_hex)).hex().upper()


class ChainWallet:
    def __init__(self, chain: "str | ChainOption") -> None:
        self.chain = resolve_chain(chain)

    def _wallet(self, secret: str) -> Wallet:
        return Wallet.from_seed(secret, algorithm=self.chain.algorithm)

    def get_address(self, secret: str) -> str:
        return self._wallet(secret).address

    def is_valid_address(self, address: str) -> bool:
        return is_valid_classic_address(address)

    def is_valid_secret(self, secret: str) -> bool:
        try:
            self._wallet(secret)
        except (XRPLException, ValueError):
            return False
        return True

    def create_wallet(self) -> dict[str, str]:
        w = Wallet.create(algorithm=self.chain.algorithm)
        return {"address": w.address, "secret": w.seed}

    def get_fee(self) -> int:
        return self.chain.fee

    def get_currency(self) -> str:
        return self.chain.currency

    def get_issuer(self) -> str:
        return self.chain.issuer

    def sign(self, tx: dict, secret: str) -> SignResult:
        # signing adds SigningPubKey/TxnSignature; keep the caller's dict untouched
        tx = dict(tx)
        try:
            wallet = self._wallet(secret)
            tx["SigningPubKey"] = wallet.public_key
            signing_blob = encode_for_signing(tx)
            tx_hash = signing_hash(signing_blob)
            tx["TxnSignature"] = sign(bytes.fromhex(signing_blob), wallet.private_key)
            blob = encode(tx)
        except (XRPLException, KeyError, ValueError) as e:
            # KeyError: field or TransactionType the binary codec has no definition for
            raise SigningError(f"cannot sign {tx.get('TransactionType')} on {self.chain.name}: {e!r}") from e
        log.debug("signed %s seq=%s for %s", tx.get("TransactionType"), tx.get("Sequence"), tx.get("Account"))
        return SignResult(hash=tx_hash, blob=blob)
