"""Human-like pauses between browser actions."""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class Pacing:
	"""Delay ranges in seconds. Zeroed ranges disable pausing."""

	after_open: Tuple[float, float] = (1.2, 2.0)
	between_tasks: Tuple[float, float] = (1.0, 3.0)
	typing_delay_ms: float = 50

	@classmethod
	def none(cls) -> "Pacing":
		return cls(after_open=(0.0, 0.0), between_tasks=(0.0, 0.0), typing_delay_ms=0)

	async def pause_after_open(self) -> None:
		await _pause(self.after_open)

	async def pause_between_tasks(self) -> None:
		await _pause(self.between_tasks)


async def _pause(bounds: Tuple[float, float]) -> None:
	low, high = bounds
	if high <= 0:
		return
	await asyncio.sleep(random.uniform(low, high))
