"""
Transaction filtering used by showTransactions and the approval flow.
"""

from dataclasses import dataclass
from typing import List, Optional

from .schema import Card, Transaction, TransactionStatus


@dataclass
class TransactionCriteria:
    card_4_digits: Optional[str] = None
    policy_id: Optional[str] = None
    transaction_title: Optional[str] = None

    @classmethod
    def from_arguments(cls, arguments: dict) -> 'TransactionCriteria':
        """Build criteria from showTransactions arguments."""
        return cls(
            card_4_digits=arguments.get("card4Digits") or None,
            policy_id=arguments.get("policyId") or None,
            transaction_title=arguments.get("transactionTitle") or None,
        )


def filter_transactions_by_card_last4(transactions: List[Transaction], cards: List[Card],
                                      last4: str) -> List[Transaction]:
    card_ids = {card.id for card in cards if card.number.endswith(last4)}
    return [t for t in transactions if t.card_id in card_ids]


def filter_transactions_by_policy_id(transactions: List[Transaction], policy_id: str) -> List[Transaction]:
    return [t for t in transactions if t.policy_id == policy_id]


def filter_transaction_by_title(transactions: List[Transaction], title: str) -> List[Transaction]:
    needle = title.lower()
    return [t for t in transactions if needle in t.title.lower()]


def filter_transactions(transactions: List[Transaction], cards: List[Card],
                        criteria: TransactionCriteria) -> List[Transaction]:
    """
    Apply at most one criterion, in a fixed order.

    Card suffix wins over policy id, which wins over title. With no criterion
    the input list is returned unchanged.
    """
    if criteria.card_4_digits:
        return filter_transactions_by_card_last4(transactions, cards, criteria.card_4_digits)
    elif criteria.policy_id:
        return filter_transactions_by_policy_id(transactions, criteria.policy_id)
    elif criteria.transaction_title:
        return filter_transaction_by_title(transactions, criteria.transaction_title)
    return transactions


def match_transactions_by_id(transactions: List[Transaction], transaction_id: str,
                             pending_only: bool = True) -> List[Transaction]:
    """Transactions whose id is contained in ``transaction_id``."""
    if not transaction_id:
        return []
    matched = [t for t in transactions if t.id in transaction_id]
    if pending_only:
        matched = [t for t in matched if t.status == TransactionStatus.PENDING]
    return matched
