"""Integer-only cost and revenue split calculations.

Amounts are token base units held in Python ints. Every share is
`amount * percent // 100`; floats never touch a monetary value.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Sequence

from services.payments.errors import PaymentError, UnknownWriterCoinError
from services.payments.writer_coins import WriterCoin, get_writer_coin

GENERATE_GAME = "generate-game"
MINT_NFT = "mint-nft"

# Mint payments: creator, writer, platform; the remainder goes to the minting user.
MINT_SPLIT = (30, 15, 5)


def split_revenue(amount: int, percentages: Sequence[int]) -> List[int]:
	"""Return `amount * p // 100` for each percentage, in order.

	Raises:
		PaymentError: For a negative or non-integer amount, or percentages outside 0..100 in total.
	"""
	if isinstance(amount, bool) or not isinstance(amount, int):
		raise PaymentError("Amount must be an integer number of base units.")
	if amount < 0:
		raise PaymentError("Amount must be non-negative.")
	if any(isinstance(p, bool) or not isinstance(p, int) or p < 0 for p in percentages):
		raise PaymentError("Percentages must be non-negative integers.")
	if sum(percentages) > 100:
		raise PaymentError("Percentages must not exceed 100 in total.")
	return [amount * percent // 100 for percent in percentages]


def format_token_amount(amount: int, decimals: int, places: int = 2) -> str:
	"""Render base units as a decimal string, truncated to `places` digits."""
	whole, fraction = divmod(amount, 10**decimals)
	if places <= 0:
		return str(whole)
	fraction_digits = str(fraction).rjust(decimals, "0")[:places].ljust(places, "0")
	return f"{whole}.{fraction_digits}"


@dataclass(frozen=True)
class PaymentCost:
	action: str
	amount: int
	amount_formatted: str
	writer_coin_id: str
	writer_coin_symbol: str
	decimals: int


@dataclass(frozen=True)
class Distribution:
	"""Named shares; `remainder` is whatever integer division and unallocated percent leave over."""

	amount: int
	shares: Dict[str, int]

	@property
	def remainder(self) -> int:
		return self.amount - sum(self.shares.values())

	def as_strings(self) -> Dict[str, str]:
		"""Shares as decimal strings, safe for JSON consumers without big integers."""
		return {name: str(value) for name, value in self.shares.items()}


def _coin(coin_id: str) -> WriterCoin:
	coin = get_writer_coin(coin_id)
	if coin is None:
		raise UnknownWriterCoinError(f'Writer coin "{coin_id}" not found')
	return coin


def _action_amount(coin: WriterCoin, action: str) -> int:
	if action == GENERATE_GAME:
		return coin.game_generation_cost
	if action == MINT_NFT:
		return coin.mint_cost
	raise PaymentError(f"Unsupported payment action: {action}")


def calculate_cost(coin_id: str, action: str) -> PaymentCost:
	coin = _coin(coin_id)
	amount = _action_amount(coin, action)
	return PaymentCost(
		action=action,
		amount=amount,
		amount_formatted=format_token_amount(amount, coin.decimals),
		writer_coin_id=coin.id,
		writer_coin_symbol=coin.symbol,
		decimals=coin.decimals,
	)


def calculate_distribution(coin_id: str, action: str) -> Distribution:
	"""Split the action's cost between writer, creator, platform and burn (or user for mints)."""
	coin = _coin(coin_id)
	amount = _action_amount(coin, action)
	if action == GENERATE_GAME:
		dist = coin.revenue_distribution
		writer, creator, platform, burn = split_revenue(amount, dist.as_tuple())
		return Distribution(
			amount=amount,
			shares={"writerShare": writer, "creatorShare": creator, "platformShare": platform, "burnShare": burn},
		)
	creator, writer, platform = split_revenue(amount, MINT_SPLIT)
	return Distribution(
		amount=amount,
		shares={
			"creatorShare": creator,
			"writerShare": writer,
			"platformShare": platform,
			"userShare": amount - creator - writer - platform,
		},
	)
