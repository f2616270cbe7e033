"""Whitelisted writer coins that can pay for game generation and minting."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Tuple


@dataclass(frozen=True)
class RevenueDistribution:
	"""Whole-number percentages for a game-generation payment; they sum to 100."""

	writer: int
	creator: int
	platform: int
	burn: int

	def as_tuple(self) -> Tuple[int, int, int, int]:
		return (self.writer, self.creator, self.platform, self.burn)


@dataclass(frozen=True)
class WriterCoin:
	"""ERC-20 writer coin with its costs expressed in base units."""

	id: str
	name: str
	symbol: str
	address: str
	writer: str
	game_generation_cost: int
	mint_cost: int
	decimals: int
	revenue_distribution: RevenueDistribution


WRITER_COINS: Dict[str, WriterCoin] = {
	"avc": WriterCoin(
		id="avc",
		name="AVC",
		symbol="$AVC",
		address="0x06FC3D5D2369561e28F261148576520F5e49D6ea",
		writer="Fred Wilson",
		game_generation_cost=100 * 10**18,
		mint_cost=50 * 10**18,
		decimals=18,
		revenue_distribution=RevenueDistribution(writer=35, creator=35, platform=10, burn=20),
	),
}


def get_writer_coin(coin_id: str) -> Optional[WriterCoin]:
	return WRITER_COINS.get(coin_id)
