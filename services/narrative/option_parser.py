"""Extract the numbered choices that close a story panel."""

from __future__ import annotations

import re
from typing import List

from models.stream_events import StoryOption

_PRIMARY = re.compile(r"^[*\-]?\s*(\d+)[.)]\s+(.+)$")
_LENIENT = re.compile(r"^(\d+)[.):\-\s]+(.+)$")

MAX_OPTION_ID = 4


def parse_options(content: str) -> List[StoryOption]:
	"""Return options 1-4 found in `content`, sorted by id.

	Lines shaped like "1. text", "2) text" or "* 3. text" are accepted first.
	When fewer than two turn up, a lenient pass also accepts "1: text" and
	"1 - text", keeping the first occurrence of each id.
	"""
	lines = [line.strip() for line in content.splitlines()]
	options: List[StoryOption] = []
	for line in lines:
		match = _PRIMARY.match(line)
		if not match:
			continue
		option_id, text = int(match.group(1)), match.group(2).strip()
		if 1 <= option_id <= MAX_OPTION_ID and text:
			options.append(StoryOption(id=option_id, text=text))

	if len(options) < 2:
		options = []
		seen = set()
		for line in lines:
			match = _LENIENT.match(line)
			if not match:
				continue
			option_id, text = int(match.group(1)), match.group(2).strip()
			if 1 <= option_id <= MAX_OPTION_ID and text and option_id not in seen:
				seen.add(option_id)
				options.append(StoryOption(id=option_id, text=text))

	return sorted(options, key=lambda option: option.id)
