"""Data-access helpers for users and couples."""

from __future__ import annotations

from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from qc_realtime.core.exceptions import NotFoundException

from .models import Couple, User


class UserRepository:
    """Encapsulate user/couple lookups used by the realtime engine."""

    def __init__(self, db: Session):
        self.db = db

    def get_user(self, user_id: int) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def get_user_or_404(self, user_id: int) -> User:
        user = self.get_user(user_id)
        if user is None:
            raise NotFoundException("User", user_id)
        return user

    def get_users(self, user_ids: Sequence[int]) -> List[User]:
        if not user_ids:
            return []
        users = self.db.query(User).filter(User.id.in_(list(user_ids))).all()
        by_id = {user.id: user for user in users}
        return [by_id[user_id] for user_id in user_ids if user_id in by_id]

    def get_couple(self, couple_id: int) -> Optional[Couple]:
        return self.db.query(Couple).filter(Couple.id == couple_id).first()

    def get_couple_or_404(self, couple_id: int) -> Couple:
        couple = self.get_couple(couple_id)
        if couple is None:
            raise NotFoundException("Couple", couple_id)
        return couple
