"""Tests for the treasury client against a mocked RPC."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from solana.rpc.core import RPCException, UnconfirmedTxError
from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature
from spl.token.constants import ASSOCIATED_TOKEN_PROGRAM_ID, TOKEN_PROGRAM_ID

from soltap.chain.client import TransactionFailedError, TreasuryClient, TreasuryKeyError


def _rpc(account_exists: bool = True, confirm_err: object = None) -> MagicMock:
    rpc = MagicMock()
    rpc.get_balance = AsyncMock(return_value=MagicMock(value=5_000_000))
    rpc.get_account_info = AsyncMock(return_value=MagicMock(value=object() if account_exists else None))
    rpc.get_latest_blockhash = AsyncMock(return_value=MagicMock(value=MagicMock(blockhash=Hash.default())))
    rpc.send_transaction = AsyncMock(return_value=MagicMock(value=Signature.default()))
    rpc.confirm_transaction = AsyncMock(return_value=MagicMock(value=[MagicMock(err=confirm_err)]))
    rpc.close = AsyncMock()
    return rpc


class TestLoadTreasury:
    def test_loads_base58_secret(self):
        kp = Keypair()
        client = TreasuryClient(_rpc(), {"TREASURY_TAP": str(kp)})
        assert client.load_treasury("TREASURY_TAP").pubkey() == kp.pubkey()

    def test_missing_secret(self):
        client = TreasuryClient(_rpc(), {})
        with pytest.raises(TreasuryKeyError, match="Missing treasury secret"):
            client.load_treasury("TREASURY_TAP")


class TestTransferInstructions:
    @pytest.mark.asyncio
    async def test_existing_account_single_transfer(self):
        client = TreasuryClient(_rpc(account_exists=True), {})
        ixs = await client.build_transfer_instructions(
            Keypair().pubkey(), Keypair().pubkey(), Keypair().pubkey(), 1_000
        )
        assert len(ixs) == 1
        assert ixs[0].program_id == TOKEN_PROGRAM_ID

    @pytest.mark.asyncio
    async def test_missing_account_created_first(self):
        client = TreasuryClient(_rpc(account_exists=False), {})
        ixs = await client.build_transfer_instructions(
            Keypair().pubkey(), Keypair().pubkey(), Keypair().pubkey(), 1_000
        )
        assert [ix.program_id for ix in ixs] == [ASSOCIATED_TOKEN_PROGRAM_ID, TOKEN_PROGRAM_ID]

    @pytest.mark.asyncio
    async def test_balance(self):
        client = TreasuryClient(_rpc(), {})
        assert await client.get_balance(Pubkey.default()) == 5_000_000


class TestSendAndConfirm:
    @pytest.mark.asyncio
    async def test_returns_signature(self):
        signer = Keypair()
        rpc = _rpc()
        client = TreasuryClient(rpc, {})
        ixs = await client.build_transfer_instructions(
            signer.pubkey(), Keypair().pubkey(), Keypair().pubkey(), 10
        )

        signature = await client.send_and_confirm(ixs, signer)

        assert signature == str(Signature.default())
        rpc.send_transaction.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_confirmation(self):
        signer = Keypair()
        client = TreasuryClient(_rpc(confirm_err="InstructionError"), {})
        ixs = await client.build_transfer_instructions(
            signer.pubkey(), Keypair().pubkey(), Keypair().pubkey(), 10
        )
        with pytest.raises(TransactionFailedError, match="InstructionError"):
            await client.send_and_confirm(ixs, signer)

    @pytest.mark.asyncio
    async def test_preflight_rejection(self):
        signer = Keypair()
        rpc = _rpc()
        rpc.send_transaction = AsyncMock(side_effect=RPCException("Transaction simulation failed"))
        client = TreasuryClient(rpc, {})
        ixs = await client.build_transfer_instructions(
            signer.pubkey(), Keypair().pubkey(), Keypair().pubkey(), 10
        )
        with pytest.raises(TransactionFailedError, match="rejected"):
            await client.send_and_confirm(ixs, signer)
        rpc.confirm_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_confirmation_timeout(self):
        signer = Keypair()
        rpc = _rpc()
        rpc.confirm_transaction = AsyncMock(side_effect=UnconfirmedTxError("Unable to confirm transaction"))
        client = TreasuryClient(rpc, {})
        ixs = await client.build_transfer_instructions(
            signer.pubkey(), Keypair().pubkey(), Keypair().pubkey(), 10
        )
        with pytest.raises(TransactionFailedError, match="not confirmed"):
            await client.send_and_confirm(ixs, signer)
