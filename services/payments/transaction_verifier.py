"""Verify submitted payment transactions against a JSON-RPC node."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from services.payments.errors import RpcError, TransactionNotFoundError, TransactionRejectedError

LOGGER = logging.getLogger(__name__)

TX_HASH_PATTERN = re.compile(r"^0x[a-fA-F0-9]{64}$")


@dataclass(frozen=True)
class VerifiedPayment:
	transaction_hash: str
	block_number: int
	block_hash: str
	gas_used: int
	timestamp: int


def _hex_to_int(value: Optional[str]) -> int:
	return int(value, 16) if value else 0


class TransactionVerifier:
	"""Check that a transaction succeeded and was sent to the payment contract.

	Args:
		rpc_url: JSON-RPC endpoint of the chain.
		contract_address: Expected `to` address; when None the destination is not checked.
		client: Optional shared `httpx.AsyncClient` (injected in tests).
		timeout: Per-request timeout in seconds when the verifier owns its client.
	"""

	def __init__(
		self,
		rpc_url: str,
		contract_address: Optional[str] = None,
		client: Optional[httpx.AsyncClient] = None,
		timeout: float = 15.0,
	) -> None:
		self.rpc_url = rpc_url
		self.contract_address = contract_address.lower() if contract_address else None
		self._client = client
		self._timeout = timeout

	async def _call(self, client: httpx.AsyncClient, method: str, params: list) -> Any:
		payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
		try:
			response = await client.post(self.rpc_url, json=payload)
			response.raise_for_status()
			body: Dict[str, Any] = response.json()
		except (httpx.HTTPError, ValueError) as exc:
			raise RpcError(f"RPC call {method} failed: {exc}") from exc
		if body.get("error"):
			raise RpcError(f"RPC call {method} returned an error: {body['error']}")
		return body.get("result")

	async def verify(self, transaction_hash: str) -> VerifiedPayment:
		"""Return block details for a successful payment transaction.

		Raises:
			TransactionRejectedError: Malformed hash, failed status, or wrong destination.
			TransactionNotFoundError: The node has no receipt for the hash.
			RpcError: The node could not be reached or answered with an error.
		"""
		if not TX_HASH_PATTERN.match(transaction_hash or ""):
			raise TransactionRejectedError("Invalid transaction hash format")

		if self._client is not None:
			return await self._verify(self._client, transaction_hash)
		async with httpx.AsyncClient(timeout=self._timeout) as client:
			return await self._verify(client, transaction_hash)

	async def _verify(self, client: httpx.AsyncClient, transaction_hash: str) -> VerifiedPayment:
		receipt = await self._call(client, "eth_getTransactionReceipt", [transaction_hash])
		if not receipt:
			raise TransactionNotFoundError("Transaction not found on Base network")

		if receipt.get("status") != "0x1":
			raise TransactionRejectedError("Transaction failed on-chain")

		actual_to = (receipt.get("to") or "").lower()
		if self.contract_address and actual_to != self.contract_address:
			LOGGER.warning(
				"Transaction called wrong contract. Expected: %s, Got: %s", self.contract_address, actual_to
			)
			raise TransactionRejectedError("Transaction called wrong contract")

		block = await self._call(client, "eth_getBlockByNumber", [receipt.get("blockNumber"), False]) or {}
		return VerifiedPayment(
			transaction_hash=transaction_hash,
			block_number=_hex_to_int(receipt.get("blockNumber")),
			block_hash=receipt.get("blockHash") or "",
			gas_used=_hex_to_int(receipt.get("gasUsed")),
			timestamp=_hex_to_int(block.get("timestamp")),
		)
