import asyncio
import json

import httpx
import pytest

from services.payments.errors import RpcError, TransactionNotFoundError, TransactionRejectedError
from services.payments.transaction_verifier import TransactionVerifier, VerifiedPayment

RPC_URL = "https://rpc.example.test"
CONTRACT = "0xAbC0000000000000000000000000000000000001"
TX_HASH = "0x" + "ab" * 32


def receipt(**overrides):
    body = {
        "status": "0x1",
        "to": CONTRACT.lower(),
        "blockNumber": "0x10",
        "blockHash": "0xblock",
        "gasUsed": "0x5208",
    }
    body.update(overrides)
    return body


def make_transport(receipt_result, block_result=None, status_code=200, rpc_error=None):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        calls.append(payload["method"])
        if rpc_error is not None:
            return httpx.Response(status_code, json={"jsonrpc": "2.0", "id": 1, "error": rpc_error})
        if payload["method"] == "eth_getTransactionReceipt":
            result = receipt_result
        else:
            result = block_result if block_result is not None else {"timestamp": "0x65a0bc00"}
        return httpx.Response(status_code, json={"jsonrpc": "2.0", "id": 1, "result": result})

    return httpx.MockTransport(handler), calls


def verify(transport, tx_hash=TX_HASH, contract=CONTRACT):
    async def run():
        async with httpx.AsyncClient(transport=transport) as client:
            return await TransactionVerifier(RPC_URL, contract_address=contract, client=client).verify(tx_hash)

    return asyncio.run(run())


class TestTransactionVerifier:
    def test_successful_payment(self):
        transport, calls = make_transport(receipt())
        payment = verify(transport)
        assert payment == VerifiedPayment(
            transaction_hash=TX_HASH, block_number=16, block_hash="0xblock", gas_used=21000, timestamp=0x65A0BC00
        )
        assert calls == ["eth_getTransactionReceipt", "eth_getBlockByNumber"]

    def test_malformed_hash_is_rejected_without_rpc(self):
        transport, calls = make_transport(receipt())
        with pytest.raises(TransactionRejectedError):
            verify(transport, tx_hash="0x1234")
        assert calls == []

    def test_missing_receipt(self):
        transport, _ = make_transport(None)
        with pytest.raises(TransactionNotFoundError):
            verify(transport)

    def test_failed_transaction(self):
        transport, _ = make_transport(receipt(status="0x0"))
        with pytest.raises(TransactionRejectedError, match="failed on-chain"):
            verify(transport)

    def test_wrong_contract(self):
        transport, calls = make_transport(receipt(to="0x" + "9" * 40))
        with pytest.raises(TransactionRejectedError, match="wrong contract"):
            verify(transport)
        assert calls == ["eth_getTransactionReceipt"]

    def test_destination_unchecked_without_contract(self):
        transport, _ = make_transport(receipt(to="0x" + "9" * 40))
        assert verify(transport, contract=None).block_number == 16

    def test_rpc_error_body(self):
        transport, _ = make_transport(None, rpc_error={"code": -32000, "message": "header not found"})
        with pytest.raises(RpcError):
            verify(transport)

    def test_http_failure(self):
        transport, _ = make_transport(None, status_code=503)
        with pytest.raises(RpcError):
            verify(transport)
