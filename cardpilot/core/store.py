"""
Card store interface and the in-memory implementation used by the API and tests.

The store is the single writer of record for cards, policies and transactions.
Action handlers only ever reach data through these methods.
"""

import random
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional

from util.logging import logger

from .errors import InvalidStatusTransition, ValidationFailure
from .schema import (
    Card,
    CardType,
    NewCardRequest,
    Policy,
    Team,
    Transaction,
    TransactionNote,
    TransactionStatus,
)

# Allowed status changes; anything else is refused by the store
STATUS_TRANSITIONS = {
    TransactionStatus.PENDING: {TransactionStatus.APPROVED, TransactionStatus.DENIED},
    TransactionStatus.APPROVED: set(),
    TransactionStatus.DENIED: set(),
}


def random_digits(count: int) -> str:
    return "".join(str(random.randint(0, 9)) for _ in range(count))


class ICardStore(ABC):
    """Abstract interface for card, policy and transaction storage."""

    @abstractmethod
    def create_card(self, request: NewCardRequest) -> Card:
        pass

    @abstractmethod
    def set_pin(self, card_id: str, pin: str) -> Card:
        pass

    @abstractmethod
    def assign_policy(self, card_id: str, policy_id: str) -> Card:
        pass

    @abstractmethod
    def add_note(self, transaction_id: str, content: str) -> Transaction:
        pass

    @abstractmethod
    def set_transaction_status(self, transaction_id: str, status: TransactionStatus) -> Transaction:
        pass

    @abstractmethod
    def list_cards(self, team: Optional[Team] = None) -> List[Card]:
        pass

    @abstractmethod
    def list_policies(self) -> List[Policy]:
        pass

    @abstractmethod
    def list_transactions(self) -> List[Transaction]:
        pass

    def get_card(self, card_id: str) -> Optional[Card]:
        for card in self.list_cards():
            if card.id == card_id:
                return card
        return None

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        for transaction in self.list_transactions():
            if transaction.id == transaction_id:
                return transaction
        return None


class InMemoryCardStore(ICardStore):
    """Thread-safe in-memory store. Every write goes through one lock."""

    def __init__(self, cards: List[Card] = None, policies: List[Policy] = None,
                 transactions: List[Transaction] = None):
        self._lock = threading.Lock()
        self._cards: Dict[str, Card] = {c.id: c for c in (cards or [])}
        self._policies: Dict[str, Policy] = {p.id: p for p in (policies or [])}
        self._transactions: Dict[str, Transaction] = {t.id: t for t in (transactions or [])}
        self.mutation_count = 0

    def create_card(self, request: NewCardRequest) -> Card:
        card_type = CardType(request.type)
        with self._lock:
            card = Card(
                id=str(uuid.uuid4()),
                type=card_type,
                color=request.color,
                pin=request.pin,
                number=random_digits(16),
                team=Team(request.team),
            )
            self._cards[card.id] = card
            self.mutation_count += 1

        logger.log_store_mutation("create_card", card.id, {"type": card.type.value, "team": card.team.value})
        return card

    def set_pin(self, card_id: str, pin: str) -> Card:
        with self._lock:
            card = self._require_card(card_id)
            card.pin = pin
            self.mutation_count += 1

        logger.log_store_mutation("set_pin", card_id, {"pin": pin})
        return card

    def assign_policy(self, card_id: str, policy_id: str) -> Card:
        with self._lock:
            card = self._require_card(card_id)
            if policy_id not in self._policies:
                raise ValidationFailure(f"Policy {policy_id} does not exist")
            card.expense_policy_id = policy_id
            self.mutation_count += 1

        logger.log_store_mutation("assign_policy", card_id, {"policy_id": policy_id})
        return card

    def add_note(self, transaction_id: str, content: str) -> Transaction:
        with self._lock:
            transaction = self._require_transaction(transaction_id)
            transaction.notes.append(TransactionNote(content=content, created_at=datetime.now()))
            self.mutation_count += 1

        logger.log_store_mutation("add_note", transaction_id, {"length": len(content)})
        return transaction

    def set_transaction_status(self, transaction_id: str, status: TransactionStatus) -> Transaction:
        status = TransactionStatus(status)
        with self._lock:
            transaction = self._require_transaction(transaction_id)
            if status not in STATUS_TRANSITIONS[transaction.status]:
                raise InvalidStatusTransition(
                    f"Transaction {transaction_id} is already {transaction.status.value}"
                )
            transaction.status = status
            self.mutation_count += 1

        logger.log_store_mutation("set_transaction_status", transaction_id, {"status": status.value})
        return transaction

    def list_cards(self, team: Optional[Team] = None) -> List[Card]:
        with self._lock:
            cards = list(self._cards.values())
        if team is None or team == Team.EXECUTIVE:
            return cards
        return [c for c in cards if c.team == team]

    def list_policies(self) -> List[Policy]:
        with self._lock:
            return list(self._policies.values())

    def list_transactions(self) -> List[Transaction]:
        with self._lock:
            return list(self._transactions.values())

    def _require_card(self, card_id: str) -> Card:
        card = self._cards.get(card_id)
        if card is None:
            raise ValidationFailure(f"Card {card_id} was not found")
        return card

    def _require_transaction(self, transaction_id: str) -> Transaction:
        transaction = self._transactions.get(transaction_id)
        if transaction is None:
            raise ValidationFailure(f"Transaction {transaction_id} was not found")
        return transaction


def team_transactions(store: ICardStore, team: Team) -> List[Transaction]:
    """Transactions made with cards the given team can see."""
    transactions = store.list_transactions()
    if team == Team.EXECUTIVE:
        return transactions
    card_ids = {c.id for c in store.list_cards(team=team)}
    return [t for t in transactions if t.card_id in card_ids]


def seed_store() -> InMemoryCardStore:
    """Build a store holding the demo cards, policies and transactions."""
    policies = [
        Policy(id="pol-1", type="Travel", limit=5000.0),
        Policy(id="pol-2", type="Software", limit=2000.0),
        Policy(id="pol-3", type="Marketing Events", limit=10000.0),
    ]
    cards = [
        Card(id="card-1", type=CardType.VISA, color="bg-blue-500", pin="1111",
             number="4532015112831234", team=Team.ENGINEERING, expense_policy_id="pol-2"),
        Card(id="card-2", type=CardType.MASTERCARD, color="bg-red-500", pin="2222",
             number="5425233430109903", team=Team.MARKETING, expense_policy_id="pol-3"),
        Card(id="card-3", type=CardType.VISA, color="bg-blue-500", pin="3333",
             number="4916338506085678", team=Team.EXECUTIVE, expense_policy_id="pol-1"),
    ]
    transactions = [
        Transaction(id="tx-101", card_id="card-1", policy_id="pol-2", title="GitHub Copilot seats",
                    amount=190.0, date=datetime(2024, 5, 2)),
        Transaction(id="tx-102", card_id="card-1", policy_id="pol-2", title="Cloud hosting",
                    amount=740.5, status=TransactionStatus.APPROVED, date=datetime(2024, 5, 3)),
        Transaction(id="tx-103", card_id="card-2", policy_id="pol-3", title="Conference booth",
                    amount=4200.0, date=datetime(2024, 5, 6)),
        Transaction(id="tx-104", card_id="card-2", policy_id="pol-3", title="Promo swag",
                    amount=860.0, status=TransactionStatus.DENIED, date=datetime(2024, 5, 8)),
        Transaction(id="tx-105", card_id="card-3", policy_id="pol-1", title="Flight to Berlin",
                    amount=1250.0, date=datetime(2024, 5, 9)),
    ]
    return InMemoryCardStore(cards=cards, policies=policies, transactions=transactions)
