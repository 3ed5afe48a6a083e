import pytest
from xrpl.core.binarycodec import decode, encode_for_signing
from xrpl.core.keypairs import is_valid_message
from xrpl.wallet import Wallet

from ledger_submit.config import ChainOption
from ledger_submit.signer import ChainWallet, SigningError, load_signer, signing_hash

from conftest import OTHER


@pytest.fixture
def chain_wallet():
    return ChainWallet("xrpl")


@pytest.fixture
def seed(chain_wallet):
    return chain_wallet.create_wallet()["secret"]


def test_chain_presets(chain_wallet):
    assert chain_wallet.get_currency() == "XRP"
    assert chain_wallet.get_fee() == 12
    assert ChainWallet(ChainOption("custom", "ABC", 10, issuer=OTHER)).get_issuer() == OTHER


def test_unknown_chain_is_rejected():
    with pytest.raises(ValueError):
        ChainWallet("nope")


def test_address_and_secret_checks(chain_wallet, seed):
    address = chain_wallet.get_address(seed)
    assert chain_wallet.is_valid_address(address)
    assert not chain_wallet.is_valid_address("not-an-address")
    assert chain_wallet.is_valid_secret(seed)
    assert not chain_wallet.is_valid_secret("garbage")


def test_sign_produces_verifiable_blob(chain_wallet, seed):
    wallet = Wallet.from_seed(seed, algorithm=chain_wallet.chain.algorithm)
    tx = {
        "TransactionType": "Payment",
        "Account": wallet.address,
        "Destination": OTHER,
        "Amount": "1000000",
        "Fee": "12",
        "Flags": 0,
        "Sequence": 5,
    }
    before = dict(tx)

    signed = chain_wallet.sign(tx, seed)

    assert tx == before
    decoded = decode(signed.blob)
    assert decoded["Sequence"] == 5
    assert decoded["SigningPubKey"] == wallet.public_key
    sig = decoded.pop("TxnSignature")
    signing_blob = encode_for_signing(decoded)
    assert signed.hash == signing_hash(signing_blob)
    assert is_valid_message(bytes.fromhex(signing_blob), bytes.fromhex(sig), wallet.public_key)


def test_signing_hash_is_uppercase_sha512half():
    h = signing_hash("53545800")
    assert len(h) == 64
    assert h == h.upper()


def test_bad_secret_is_signing_error(chain_wallet):
    with pytest.raises(SigningError):
        chain_wallet.sign({"TransactionType": "Payment", "Account": OTHER}, "garbage")


def test_unknown_fields_and_types_are_signing_errors(chain_wallet, seed):
    address = chain_wallet.get_address(seed)
    base = {"Account": address, "Fee": "12", "Flags": 0, "Sequence": 1}
    with pytest.raises(SigningError):
        chain_wallet.sign({**base, "TransactionType": "SetBlackList", "BlackListAccountID": OTHER}, seed)
    with pytest.raises(SigningError):
        chain_wallet.sign({**base, "TransactionType": "OfferCancel", "OfferSequence": 1, "Platform": OTHER}, seed)


def test_load_signer():
    assert load_signer("ledger_submit.signer:ChainWallet") is ChainWallet
    for path in ("ledger_submit.signer", "ledger_submit.signer:"):
        with pytest.raises(ValueError):
            load_signer(path)
