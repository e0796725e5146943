"""Users domain: the minimal user/couple collaborators of the realtime engine."""

from .models import Couple, User
from .repository import UserRepository

__all__ = ["Couple", "User", "UserRepository"]
