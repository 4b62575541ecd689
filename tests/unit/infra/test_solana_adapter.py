"""Tests for SolanaAdapter: account derivation, transaction building and confirmation."""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import Message
from solders.transaction import Transaction
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import get_associated_token_address

from withdrawdesk.domain.models.transfer import TransferItem
from withdrawdesk.exceptions import (
    AccountDerivationError,
    DeterministicTransferError,
    SignerRejectedError,
    TransactionFailedError,
)
from withdrawdesk.infra.blockchain.solana.adapter import SolanaAdapter
from withdrawdesk.infra.blockchain.solana.signer import KeypairSigner

MINT = Keypair().pubkey()
OWNER = Keypair().pubkey()
# An associated token account is a program-derived address, so it is off the curve
PDA_OWNER = get_associated_token_address(OWNER, MINT)


@pytest.fixture()
def rpc():
    rpc = AsyncMock()
    rpc.get_latest_blockhash.return_value = (str(Hash.new_unique()), 1000)
    rpc.get_block_height.return_value = 990
    rpc.send_transaction.return_value = "sig-abc"
    rpc.get_signature_statuses.return_value = [{"confirmationStatus": "confirmed", "err": None}]
    return rpc


@pytest.fixture()
def adapter(rpc):
    return SolanaAdapter(rpc, sleep=AsyncMock())


@pytest.fixture()
def signer():
    return KeypairSigner(Keypair())


def _item(owner=OWNER) -> TransferItem:
    receiver = Keypair().pubkey()
    return TransferItem(
        source_account=str(get_associated_token_address(owner, MINT)),
        destination_account=str(get_associated_token_address(receiver, MINT)),
        token_address=str(MINT),
        amount_base_units=1_500_000,
        wallet_address=str(owner),
    )


class TestAddresses:
    def test_validate(self, adapter):
        assert adapter.validate_address(str(OWNER))
        assert not adapter.validate_address("not-a-key")
        assert not adapter.validate_address("")

    def test_on_curve_owner_compatible(self, adapter):
        assert adapter.can_derive_account(str(OWNER), str(MINT))

    def test_pda_owner_incompatible(self, adapter):
        assert not adapter.can_derive_account(str(PDA_OWNER), str(MINT))

    async def test_derive_associated_account(self, adapter):
        ata = await adapter.derive_account(str(OWNER), str(MINT))
        assert ata == str(get_associated_token_address(OWNER, MINT))

    async def test_derive_for_pda_raises(self, adapter):
        with pytest.raises(AccountDerivationError):
            await adapter.derive_account(str(PDA_OWNER), str(MINT))


class TestBuildInstruction:
    def test_spl_transfer_by_delegate(self, adapter, signer):
        item = _item()
        ix = adapter.build_transfer_instruction(item, signer.address)

        assert ix.program_id == TOKEN_PROGRAM_ID
        keys = [str(meta.pubkey) for meta in ix.accounts]
        assert keys[0] == item.source_account
        assert keys[1] == item.destination_account
        assert keys[2] == signer.address


class TestSubmitAndConfirm:
    async def test_one_transaction_for_batch(self, adapter, rpc, signer):
        items = [_item(), _item(Keypair().pubkey())]

        sig = await adapter.submit_and_confirm(items, signer)

        assert sig == "sig-abc"
        raw = rpc.send_transaction.await_args.args[0]
        tx = Transaction.from_bytes(raw)
        assert len(tx.message.instructions) == 2
        assert str(tx.message.account_keys[0]) == signer.address

    async def test_polls_until_confirmed(self, adapter, rpc, signer):
        rpc.get_signature_statuses.side_effect = [
            [None],
            [{"confirmationStatus": "processed", "err": None}],
            [{"confirmationStatus": "finalized", "err": None}],
        ]
        await adapter.submit_and_confirm([_item()], signer)
        assert rpc.get_signature_statuses.await_count == 3

    async def test_onchain_error(self, adapter, rpc, signer):
        rpc.get_signature_statuses.return_value = [
            {"confirmationStatus": "confirmed", "err": {"InstructionError": [0, {"Custom": 1}]}}
        ]
        with pytest.raises(DeterministicTransferError):
            await adapter.submit_and_confirm([_item()], signer)

    async def test_blockhash_expiry(self, adapter, rpc, signer):
        rpc.get_signature_statuses.return_value = [None]
        rpc.get_block_height.return_value = 1001

        with pytest.raises(TransactionFailedError, match="blockhash expired"):
            await adapter.submit_and_confirm([_item()], signer)

    async def test_signer_must_be_fee_payer(self, signer):
        message = Message.new_with_blockhash([], Keypair().pubkey(), Hash.new_unique())
        tx = Transaction.new_unsigned(message)
        with pytest.raises(SignerRejectedError):
            await signer.sign_transaction(tx)


class TestDelegation:
    def _account(self, info: dict) -> dict:
        return {"data": {"parsed": {"info": info, "type": "account"}, "program": "spl-token"}}

    async def test_delegate_must_match_spender(self, adapter, rpc):
        rpc.get_parsed_account.return_value = self._account({
            "delegate": "Spender1",
            "delegatedAmount": {"amount": "5500000", "decimals": 6, "uiAmountString": "5.5"},
            "tokenAmount": {"amount": "9000000", "decimals": 6, "uiAmountString": "9"},
        })

        state = await adapter.check_delegation(str(OWNER), str(MINT), str(Keypair().pubkey()))
        assert state.is_delegated is False

        spender = str(Keypair().pubkey())
        rpc.get_parsed_account.return_value = self._account({
            "delegate": spender,
            "delegatedAmount": {"amount": "5500000", "decimals": 6, "uiAmountString": "5.5"},
        })
        state = await adapter.check_delegation(str(OWNER), str(MINT), spender)
        assert state.is_delegated is True
        assert state.delegated_amount == Decimal("5.5")

    async def test_missing_account_not_delegated(self, adapter, rpc):
        rpc.get_parsed_account.return_value = None
        state = await adapter.check_delegation(str(OWNER), str(MINT), str(Keypair().pubkey()))
        assert state.is_delegated is False

    async def test_invalid_address_unknown(self, adapter):
        assert await adapter.check_delegation("nope", str(MINT), str(OWNER)) is None

    async def test_balance_from_associated_account(self, adapter, rpc):
        rpc.get_parsed_account.return_value = self._account({
            "tokenAmount": {"amount": "9000000", "decimals": 6, "uiAmountString": "9"},
        })
        balance = await adapter.get_balance(str(OWNER), str(MINT))
        assert balance.balance == Decimal("9")
        assert balance.decimals == 6

    async def test_balance_falls_back_to_owner_lookup(self, adapter, rpc):
        rpc.get_parsed_account.side_effect = [None]
        rpc.get_token_accounts_by_owner.return_value = [{
            "pubkey": "Other",
            "account": self._account({"tokenAmount": {"amount": "250", "decimals": 2, "uiAmountString": "2.5"}}),
        }]
        balance = await adapter.get_balance(str(OWNER), str(MINT))
        assert balance.balance == Decimal("2.5")
        assert balance.decimals == 2
