"""
Domain records for cards, policies, transactions and the people acting on them.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional


class MemberRole(str, Enum):
    ADMIN = "admin"
    ASSISTANT = "assistant"
    MEMBER = "member"


class Team(str, Enum):
    ENGINEERING = "Engineering"
    MARKETING = "Marketing"
    SALES = "Sales"
    EXECUTIVE = "Executive"


class CardType(str, Enum):
    VISA = "visa"
    MASTERCARD = "mastercard"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"


@dataclass
class User:
    id: str
    name: str
    email: str
    role: MemberRole
    team: Team

    def __post_init__(self):
        self.role = MemberRole(self.role)
        self.team = Team(self.team)


@dataclass
class Policy:
    id: str
    type: str
    limit: float = 0.0


@dataclass
class Card:
    id: str
    type: CardType
    color: str
    pin: str
    number: str
    team: Team
    expense_policy_id: Optional[str] = None

    @property
    def last4(self) -> str:
        return self.number[-4:]

    def to_dict(self, reveal_pin: bool = False) -> Dict:
        data = asdict(self)
        data['type'] = self.type.value
        data['team'] = self.team.value
        if not reveal_pin:
            data.pop('pin')
        return data


@dataclass
class NewCardRequest:
    type: CardType
    color: str
    pin: str
    team: Team


@dataclass
class TransactionNote:
    content: str
    created_at: datetime


@dataclass
class Transaction:
    id: str
    card_id: str
    policy_id: str
    title: str
    amount: float
    status: TransactionStatus = TransactionStatus.PENDING
    date: Optional[datetime] = None
    notes: List[TransactionNote] = field(default_factory=list)

    def to_dict(self) -> Dict:
        """Convert to a JSON friendly dictionary."""
        return {
            'id': self.id,
            'card_id': self.card_id,
            'policy_id': self.policy_id,
            'title': self.title,
            'amount': self.amount,
            'status': self.status.value,
            'date': self.date.isoformat() if self.date else None,
            'notes': [
                {'content': n.content, 'created_at': n.created_at.isoformat()}
                for n in self.notes
            ],
        }
