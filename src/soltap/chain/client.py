"""
Treasury-side Solana operations used by reward claims.

Wraps the solana-py async RPC client and the SPL token instruction builders.
A ``TreasuryClient`` is built per request by :func:`get_treasury_client` and
closed when the request ends.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Sequence

import structlog
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Processed
from solana.rpc.core import RPCException, UnconfirmedTxError
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.transaction import Transaction
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import (
    create_associated_token_account,
    get_associated_token_address,
    transfer,
)
from spl.token.models import TransferParams

from soltap.config import get_settings

logger = structlog.get_logger()

LAMPORTS_PER_SOL = 1_000_000_000


class ChainError(RuntimeError):
    """Base class for treasury/RPC failures."""


class TreasuryKeyError(ChainError):
    """The treasury secret for a reward token is missing or unreadable."""


class TransactionFailedError(ChainError):
    """The cluster accepted the transaction but it failed to confirm cleanly."""


class TreasuryClient:
    """Signs and submits token transfers from a custodial treasury wallet."""

    def __init__(self, rpc: AsyncClient, treasury_keys: dict[str, str]) -> None:
        self._rpc = rpc
        self._treasury_keys = treasury_keys

    def load_treasury(self, secret_id: str) -> Keypair:
        """Load the treasury keypair stored under ``secret_id`` (base58 secret key)."""
        secret = self._treasury_keys.get(secret_id)
        if not secret:
            msg = f"Missing treasury secret for {secret_id}"
            raise TreasuryKeyError(msg)
        try:
            return Keypair.from_base58_string(secret)
        except ValueError as e:
            msg = f"Unreadable treasury secret for {secret_id}"
            raise TreasuryKeyError(msg) from e

    async def get_balance(self, owner: Pubkey) -> int:
        """SOL balance of ``owner`` in lamports."""
        resp = await self._rpc.get_balance(owner)
        return resp.value

    async def token_account_exists(self, account: Pubkey) -> bool:
        resp = await self._rpc.get_account_info(account)
        return resp.value is not None

    async def build_transfer_instructions(
        self,
        treasury: Pubkey,
        mint: Pubkey,
        recipient: Pubkey,
        amount: int,
    ) -> list[Instruction]:
        """
        Instructions moving ``amount`` base units of ``mint`` from the treasury to ``recipient``.

        The recipient's associated token account is created first (paid by
        the treasury) when it does not exist yet.
        """
        source = get_associated_token_address(treasury, mint)
        dest = get_associated_token_address(recipient, mint)

        instructions: list[Instruction] = []
        if not await self.token_account_exists(dest):
            instructions.append(create_associated_token_account(payer=treasury, owner=recipient, mint=mint))
        instructions.append(
            transfer(
                TransferParams(
                    program_id=TOKEN_PROGRAM_ID,
                    source=source,
                    dest=dest,
                    owner=treasury,
                    amount=amount,
                )
            )
        )
        return instructions

    async def send_and_confirm(self, instructions: Sequence[Instruction], signer: Keypair) -> str:
        """
        Sign with ``signer`` (also the fee payer), submit and wait for ``processed``.

        Returns:
            The transaction signature (base58).

        Raises:
            TransactionFailedError: If the node rejects the transaction, it does
                not confirm, or confirmation reports an error.
        """
        blockhash_resp = await self._rpc.get_latest_blockhash()
        tx = Transaction.new_signed_with_payer(
            list(instructions),
            signer.pubkey(),
            [signer],
            blockhash_resp.value.blockhash,
        )
        try:
            send_resp = await self._rpc.send_transaction(tx)
        except RPCException as e:
            logger.error("transaction_rejected", error=str(e))
            msg = f"Transaction rejected: {e}"
            raise TransactionFailedError(msg) from e
        signature = send_resp.value
        logger.info("transaction_sent", signature=str(signature))

        try:
            confirmation = await self._rpc.confirm_transaction(signature, commitment=Processed)
        except (RPCException, UnconfirmedTxError) as e:
            logger.error("transaction_unconfirmed", signature=str(signature), error=str(e))
            msg = f"Transaction not confirmed: {e}"
            raise TransactionFailedError(msg) from e
        status = confirmation.value[0] if confirmation.value else None
        if status is not None and status.err is not None:
            logger.error("transaction_failed", signature=str(signature), err=str(status.err))
            msg = f"Transaction failed: {status.err}"
            raise TransactionFailedError(msg)
        return str(signature)

    async def close(self) -> None:
        await self._rpc.close()


async def get_treasury_client() -> AsyncGenerator[TreasuryClient, None]:
    """Request-scoped treasury client (FastAPI dependency)."""
    settings = get_settings()
    client = TreasuryClient(AsyncClient(settings.rpc_url), settings.treasury_keys)
    try:
        yield client
    finally:
        await client.close()
