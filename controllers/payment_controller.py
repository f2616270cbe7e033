"""Payment cost preview and on-chain verification."""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import HTTPException, Request

from services.payments.errors import PaymentError
from services.payments.revenue import calculate_cost, calculate_distribution
from services.payments.transaction_verifier import TransactionVerifier

LOGGER = logging.getLogger(__name__)


async def initiate_payment(request: Request, writer_coin_id: str, action: str) -> Dict[str, Any]:
    """Return the cost and revenue split for an action; amounts are decimal strings."""
    try:
        cost = calculate_cost(writer_coin_id, action)
        distribution = calculate_distribution(writer_coin_id, action)
    except PaymentError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc

    settings = request.app.state.settings
    return {
        "action": cost.action,
        "writerCoinId": cost.writer_coin_id,
        "writerCoinSymbol": cost.writer_coin_symbol,
        "decimals": cost.decimals,
        "amount": str(cost.amount),
        "amountFormatted": cost.amount_formatted,
        "distribution": distribution.as_strings(),
        "contractAddress": settings.payment_contract_address,
    }


async def verify_payment(request: Request, transaction_hash: str, action: str) -> Dict[str, Any]:
    """Verify a submitted transaction succeeded and targeted the payment contract."""
    verifier: TransactionVerifier = request.app.state.payment_verifier
    try:
        payment = await verifier.verify(transaction_hash)
    except PaymentError as exc:
        LOGGER.info("Payment %s not verified: %s", transaction_hash, exc)
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc

    return {
        "success": True,
        "transactionHash": payment.transaction_hash,
        "message": f"Payment for {action} verified",
        "blockNumber": str(payment.block_number),
        "gasUsed": str(payment.gas_used),
        "timestamp": str(payment.timestamp),
        "blockHash": payment.block_hash,
    }
