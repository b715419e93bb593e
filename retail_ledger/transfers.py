"""
Funds Transfer Module

Moves money between two accounts as a single atomic unit and keeps the
append-only transfer log. Every transfer gets a TXN reference and carries
both account numbers for read convenience.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any, List, Optional

from .accounts import AccountManager
from .audit import AuditTrail, AuditEventType
from .exceptions import ForbiddenError, InvalidArgumentError, NotFoundError, UnauthorizedError
from .logging_config import get_logger, log_action
from .money import to_money
from .references import TRANSFER_PREFIX, ReferenceGenerator
from .storage import StorageInterface, StorageRecord, newest_first


@dataclass
class Transaction(StorageRecord):
    """
    Immutable funds transfer ledger entry, keyed by its reference
    """
    reference: str
    from_account_id: str
    to_account_id: str
    from_account_number: str
    to_account_number: str
    amount: Decimal
    description: str

    decimal_fields = ('amount',)

    @property
    def timestamp(self) -> datetime:
        return self.created_at

    def involves(self, account_id: str) -> bool:
        return account_id in (self.from_account_id, self.to_account_id)


class TransferEngine:
    """
    Executes transfers between accounts and serves the transfer history
    """

    def __init__(
        self,
        storage: StorageInterface,
        account_manager: AccountManager,
        reference_generator: ReferenceGenerator,
        audit_trail: AuditTrail
    ):
        self.storage = storage
        self.account_manager = account_manager
        self.references = reference_generator
        self.audit_trail = audit_trail
        self.table_name = "transactions"
        self.logger = get_logger("retail_ledger.transfers")

    def transfer(
        self,
        from_account_id: str,
        to_account_id: str,
        amount: Any,
        description: str,
        requesting_identity: str
    ) -> Transaction:
        """
        Transfer funds from one account to another

        Checks run in order and the first failure wins; nothing is written
        unless every check passes.

        Args:
            from_account_id: Source account (must be owned by the requester)
            to_account_id: Destination account
            amount: Positive amount, rounded to cents
            description: Non-blank description
            requesting_identity: Authenticated owner identity

        Returns:
            The persisted Transaction

        Raises:
            InvalidArgumentError: Bad ids, amount or description, or insufficient funds
            NotFoundError: Unknown account
            UnauthorizedError: Requester does not own the source account
            ForbiddenError: Source or destination account is frozen
        """
        if not from_account_id or not to_account_id:
            raise InvalidArgumentError("Both source and destination accounts are required")
        if from_account_id == to_account_id:
            raise InvalidArgumentError("Cannot transfer to the same account")

        amount = to_money(amount)
        if amount <= 0:
            raise InvalidArgumentError("Transfer amount must be greater than zero")

        if not isinstance(description, str) or not description.strip():
            raise InvalidArgumentError("Description is required and cannot be blank")
        description = description.strip()

        with self.storage.atomic():
            source = self.account_manager.get_account(from_account_id)
            destination = self.account_manager.get_account(to_account_id)

            if not self.account_manager.is_owned_by(source, requesting_identity):
                raise UnauthorizedError("You do not have permission to transfer from this account")

            if not source.can_transact():
                raise ForbiddenError("Source account is frozen. Please contact support.")
            if not destination.can_transact():
                raise ForbiddenError("Destination account is frozen. Transfer cannot be completed.")

            if source.balance < amount:
                raise InvalidArgumentError("Insufficient funds in source account")

            self.account_manager.debit(source, amount)
            self.account_manager.credit(destination, amount)

            def build(reference: str) -> Transaction:
                now = datetime.now(timezone.utc)
                return Transaction(
                    id=reference,
                    created_at=now,
                    updated_at=now,
                    reference=reference,
                    from_account_id=source.id,
                    to_account_id=destination.id,
                    from_account_number=source.account_number,
                    to_account_number=destination.account_number,
                    amount=amount,
                    description=description
                )

            transaction = self.references.append(self.table_name, TRANSFER_PREFIX, build)

            self.audit_trail.log_event(
                event_type=AuditEventType.TRANSFER_POSTED,
                entity_type="transaction",
                entity_id=transaction.reference,
                metadata={
                    "from_account": source.account_number,
                    "to_account": destination.account_number,
                    "amount": amount
                },
                user_id=requesting_identity
            )

        log_action(
            self.logger, "info", f"Transfer posted: {transaction.reference}",
            user_id=requesting_identity, action="transfer",
            resource=f"transaction:{transaction.reference}",
            extra={
                "from_account": source.account_number,
                "to_account": destination.account_number,
                "amount": str(amount)
            }
        )
        return transaction

    def get_transactions(self, account_id: str) -> List[Transaction]:
        """All transfers where the account is source or destination"""
        return [t for t in self._load_all() if t.involves(account_id)]

    def get_recent_transactions_for_owner(self, owner_identity: str, limit: int = 20) -> List[Transaction]:
        """Newest transfers touching any of the owner's accounts"""
        account_ids = {a.id for a in self.account_manager.list_accounts_for_owner(owner_identity)}
        if not account_ids:
            return []
        transactions = [
            t for t in self._load_all()
            if t.from_account_id in account_ids or t.to_account_id in account_ids
        ]
        return newest_first(transactions)[:limit]

    def get_transaction_by_reference(self, reference: str, owner_identity: str) -> Transaction:
        """
        Look up a transfer by reference

        Raises:
            NotFoundError: Unknown reference
            UnauthorizedError: Requester owns neither side of the transfer
        """
        data = self.storage.load(self.table_name, reference) if reference else None
        if not data:
            raise NotFoundError(f"Transaction not found with reference: {reference}")
        transaction = Transaction.from_dict(data)

        owned = set(self.account_manager.owned_account_ids(owner_identity))
        if transaction.from_account_id not in owned and transaction.to_account_id not in owned:
            raise UnauthorizedError("You do not have permission to view this transaction")
        return transaction

    def list_all_transactions(self, limit: Optional[int] = None) -> List[Transaction]:
        """Administrative listing, newest first"""
        transactions = newest_first(self._load_all())
        return transactions[:limit] if limit is not None else transactions

    def _load_all(self) -> List[Transaction]:
        return [Transaction.from_dict(data) for data in self.storage.load_all(self.table_name)]