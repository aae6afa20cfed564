"""
Fair rotation of promotional listings: every eligible id is drawn exactly
once per cycle before any id repeats.
"""
import logging
import random
from typing import Iterable, List, Optional, Sequence, Set, TypeVar

from core.entities import RotationState
from services.database import Database

logger = logging.getLogger(__name__)

T = TypeVar("T")


def fisher_yates(values: Iterable[T], rng: Optional[random.Random] = None) -> List[T]:
    """Uniformly shuffled copy of values."""
    rng = rng or random.Random()
    order = list(values)
    for i in range(len(order) - 1, 0, -1):
        j = rng.randint(0, i)
        order[i], order[j] = order[j], order[i]
    return order


class RotationSelector:
    """
    Draws ids per category from a persisted shuffle order and cursor.
    """

    def __init__(self, db: Database, rng: Optional[random.Random] = None):
        self.db = db
        self.rng = rng or random.Random()

    async def draw(
        self,
        category: str,
        eligible: Sequence[int],
        exclude: Iterable[int] = (),
    ) -> Optional[int]:
        """
        Draw the next id of the category. Ids that are no longer eligible are
        passed over; an exhausted or missing order is replaced by a fresh
        permutation of the eligible ids.

        An excluded id is never consumed: the next available id of the same
        cycle takes its place, and a fresh permutation puts excluded ids last.
        """
        pool: Set[int] = set(eligible)
        excluded: Set[int] = set(exclude) & pool
        available = pool - excluded
        if not available:
            return None

        state = await self.db.get_rotation_state(category) or RotationState(category=category)

        while True:
            if state.exhausted:
                state = RotationState(
                    category=category,
                    current_index=0,
                    shuffle_order=(
                        fisher_yates(sorted(available), self.rng)
                        + fisher_yates(sorted(excluded), self.rng)
                    ),
                )
                logger.info(f"Reshuffled rotation '{category}' ({len(state.shuffle_order)} ids)")

            order = state.shuffle_order
            candidate = order[state.current_index]
            if candidate not in pool:
                state.current_index += 1
                continue
            if candidate in available:
                break

            later = next(
                (j for j in range(state.current_index + 1, len(order)) if order[j] in available),
                None,
            )
            if later is None:
                logger.debug(f"Rotation '{category}' cycle holds only excluded ids, starting a new one")
                state.current_index = len(order)
                continue
            order[state.current_index], order[later] = order[later], order[state.current_index]
            candidate = order[state.current_index]
            break

        state.current_index += 1
        await self.db.save_rotation_state(state)
        return candidate

    async def draw_many(self, category: str, eligible: Sequence[int], count: int) -> List[int]:
        """Draw up to ``count`` distinct ids."""
        drawn: List[int] = []
        for _ in range(min(count, len(set(eligible)))):
            picked = await self.draw(category, eligible, exclude=drawn)
            if picked is None:
                break
            drawn.append(picked)
        return drawn
