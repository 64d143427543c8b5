"""Database models."""
from gamerun.models.base import Base, init_db
from gamerun.models.user import User
from gamerun.models.profile import Profile
from gamerun.models.game import Game
from gamerun.models.quest import Quest, QuestAssignment
from gamerun.models.team import Membership, Team
from gamerun.models.charge import Charge, ChargeAssignment, Installment
from gamerun.models.options import GameType, MemberRole, MemberStatus, PaymentMethod

__all__ = [
    "Base",
    "User",
    "Profile",
    "Game",
    "Quest",
    "QuestAssignment",
    "Team",
    "Membership",
    "Charge",
    "ChargeAssignment",
    "Installment",
    "MemberStatus",
    "MemberRole",
    "PaymentMethod",
    "GameType",
    "init_db",
]
