"""
Doorprize draws over the checked-in guests of one account
"""

import logging
import random
from typing import Iterable, List, Optional

from app.core.config import settings
from app.core.errors import EmptyPoolError, PrizeCompletedError, ValidationError
from app.models.prize import PRIZE_ACTIVE, PRIZE_COMPLETED
from app.schemas.guest import GuestFilter, GuestRead
from app.schemas.prize import PrizeRead, PrizeStats
from app.services.notifications import ChangeNotifier, GuestChange, change_notifier
from app.services.repositories import Repositories
from app.utils.codes import validate_id

logger = logging.getLogger(__name__)

_system_random = random.SystemRandom()


class DoorprizeService:
    """Random winner selection and prize bookkeeping"""

    def __init__(self, repos: Repositories, notifier: Optional[ChangeNotifier] = None):
        self.repos = repos
        self.notifier = notifier or change_notifier

    def list_checked_in(self, account_id: str, search: Optional[str] = None) -> List[GuestRead]:
        flt = GuestFilter(checked_in=True, search=search or None, limit=settings.DOORPRIZE_POOL_LIMIT)
        return self.repos.guests.find(account_id, flt)

    def draw_winner(
        self,
        account_id: str,
        exclude_ids: Iterable[str] = (),
        prize_id: Optional[str] = None,
        rng: Optional[random.Random] = None,
    ) -> GuestRead:
        """Pick one checked-in guest uniformly at random.

        The pool is read fresh on every call. ``exclude_ids`` carries the winners
        already drawn in the current spin session so consecutive draws never repeat.
        """
        if prize_id is not None:
            validate_id(prize_id, "Prize")
            prize = self.repos.prizes.find_by_id(account_id, prize_id)
            if prize.status == PRIZE_COMPLETED:
                raise PrizeCompletedError(prize_id)

        excluded = set(exclude_ids or ())
        pool = [g for g in self.repos.guests.find(account_id, GuestFilter(checked_in=True)) if g.id not in excluded]
        if not pool:
            raise EmptyPoolError()

        rng = rng or _system_random
        winner = pool[int(rng.random() * len(pool))]
        logger.info(f"Drew guest {winner.id} from a pool of {len(pool)} in account {account_id}")
        return winner

    def record_prize_winner(self, account_id: str, prize_id: str, guest_id: str) -> PrizeRead:
        validate_id(prize_id, "Prize")
        validate_id(guest_id)
        prize = self.repos.prizes.find_by_id(account_id, prize_id)
        if prize.status == PRIZE_COMPLETED:
            raise PrizeCompletedError(prize_id)
        guest = self.repos.guests.find_by_id(account_id, guest_id)
        if not guest.checked_in:
            raise ValidationError("Winner must be a checked-in guest", details={"guest_id": guest_id})

        prize = self.repos.prizes.complete(account_id, prize_id, guest.id, guest.name)
        logger.info(f"Recorded guest {guest.id} as winner of prize {prize_id} in account {account_id}")
        self.notifier.emit(GuestChange(
            account_id=account_id,
            type="prize_won",
            guest_id=guest.id,
            data={"prize": prize.model_dump(mode="json")},
        ))
        return prize

    def create_prize(self, account_id: str, name: str, description: str = "") -> PrizeRead:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Prize name is required")
        prize = self.repos.prizes.create(account_id, name, (description or "").strip())
        logger.info(f"Created prize {prize.id} in account {account_id}")
        return prize

    def list_prizes(self, account_id: str, status: Optional[str] = None) -> List[PrizeRead]:
        if status is not None and status not in (PRIZE_ACTIVE, PRIZE_COMPLETED):
            raise ValidationError(f"Unknown prize status '{status}'")
        return self.repos.prizes.list_prizes(account_id, status)

    def prize_stats(self, account_id: str) -> PrizeStats:
        return self.repos.prizes.stats(account_id)
