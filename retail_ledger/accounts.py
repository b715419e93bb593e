"""
Account Management Module

Manages account lifecycle, the frozen flag and the balance mutation
primitives used by the transfer, trading and wealth engines. Ownership
checks for every higher engine go through this module.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any, List, Optional
from enum import Enum
import random
import uuid

from .audit import AuditTrail, AuditEventType
from .exceptions import (
    ForbiddenError, InvalidArgumentError, LedgerError, NotFoundError, UnauthorizedError
)
from .logging_config import get_logger, log_action
from .money import ZERO, require_positive, round_money, to_money
from .owners import OwnerDirectory
from .storage import StorageInterface, StorageRecord


class AccountType(Enum):
    """Deposit account types"""
    CHECKING = "CHECKING"
    SAVINGS = "SAVINGS"


@dataclass
class Account(StorageRecord):
    """
    Customer deposit account

    The balance is never negative after a committed operation.
    """
    account_number: str
    owner_id: str
    account_type: AccountType
    balance: Decimal = ZERO
    frozen: bool = False

    decimal_fields = ('balance',)
    enum_fields = {'account_type': AccountType}

    @property
    def status(self) -> str:
        return "FROZEN" if self.frozen else "ACTIVE"

    def can_transact(self) -> bool:
        """Check if account may take part in balance-mutating flows"""
        return not self.frozen


class AccountManager:
    """
    Manages account lifecycle and balance primitives
    """

    ACCOUNT_NUMBER_ATTEMPTS = 10

    def __init__(
        self,
        storage: StorageInterface,
        owners: OwnerDirectory,
        audit_trail: AuditTrail,
        rng: Optional[random.Random] = None
    ):
        self.storage = storage
        self.owners = owners
        self.audit_trail = audit_trail
        self.accounts_table = "accounts"
        self.logger = get_logger("retail_ledger.accounts")
        self._rng = rng or random.Random()

    def open_account(
        self,
        owner_id: str,
        account_type: AccountType,
        initial_deposit: Optional[Any] = None
    ) -> Account:
        """
        Open a new account

        Args:
            owner_id: ID of the owning user
            account_type: CHECKING or SAVINGS
            initial_deposit: Opening balance, zero when omitted

        Returns:
            Created Account object

        Raises:
            NotFoundError: If the owner does not exist
            InvalidArgumentError: If the initial deposit is negative
        """
        if not isinstance(account_type, AccountType):
            try:
                account_type = AccountType(str(account_type).upper())
            except ValueError:
                raise InvalidArgumentError(f"Unknown account type: {account_type}")

        balance = round_money(ZERO)
        if initial_deposit is not None:
            balance = to_money(initial_deposit, "initial deposit")
            if balance < ZERO:
                raise InvalidArgumentError("Initial deposit cannot be negative")

        with self.storage.atomic():
            if not self.owners.owner_exists(owner_id):
                raise NotFoundError(f"Owner not found: {owner_id}")

            now = datetime.now(timezone.utc)
            account = Account(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                account_number=self._generate_account_number(),
                owner_id=owner_id,
                account_type=account_type,
                balance=balance
            )
            self.storage.insert(self.accounts_table, account.id, account.to_dict())

            self.audit_trail.log_event(
                event_type=AuditEventType.ACCOUNT_OPENED,
                entity_type="account",
                entity_id=account.id,
                metadata={
                    "account_number": account.account_number,
                    "owner_id": owner_id,
                    "account_type": account_type.value,
                    "initial_deposit": balance
                }
            )

        log_action(
            self.logger, "info", f"Account opened: {account.account_number}",
            action="open_account", resource=f"account:{account.id}",
            extra={"owner_id": owner_id, "account_type": account_type.value,
                   "initial_deposit": str(balance)}
        )
        return account

    def get_account(self, account_id: str) -> Account:
        """Get account by ID"""
        account_dict = self.storage.load(self.accounts_table, account_id) if account_id else None
        if not account_dict:
            raise NotFoundError(f"Account not found: {account_id}")
        return Account.from_dict(account_dict)

    def get_account_by_number(self, account_number: str) -> Account:
        """Get account by account number"""
        accounts = self.storage.find(self.accounts_table, {"account_number": account_number})
        if not accounts:
            raise NotFoundError(f"Account not found: {account_number}")
        return Account.from_dict(accounts[0])

    def list_accounts_for_owner(self, owner_identity: str) -> List[Account]:
        """
        Get all accounts belonging to an owner identity

        Raises:
            NotFoundError: If the identity is unknown
        """
        owner = self.owners.get_by_identity(owner_identity)
        accounts_data = self.storage.find(self.accounts_table, {"owner_id": owner.id})
        return [Account.from_dict(data) for data in accounts_data]

    def list_all_accounts(self) -> List[Account]:
        """Administrative listing of every account"""
        return [Account.from_dict(data) for data in self.storage.load_all(self.accounts_table)]

    def owned_account_ids(self, owner_identity: str) -> List[str]:
        """IDs of the owner's accounts; empty for an unknown identity"""
        try:
            return [account.id for account in self.list_accounts_for_owner(owner_identity)]
        except NotFoundError:
            return []

    def is_owned_by(self, account: Account, owner_identity: str) -> bool:
        """Authorization primitive used by all higher engines"""
        return account.id in self.owned_account_ids(owner_identity)

    def require_owned_account(self, account_id: str, owner_identity: str,
                              message: str = "You do not have permission to use this account") -> Account:
        """
        Resolve an account and verify the caller owns it

        Raises:
            NotFoundError: If the account does not exist
            UnauthorizedError: If the caller does not own it
        """
        account = self.get_account(account_id)
        if not self.is_owned_by(account, owner_identity):
            raise UnauthorizedError(message)
        return account

    def credit(self, account: Account, amount: Decimal) -> Account:
        """Add to the balance. No authorization: callers enforce invariants."""
        amount = require_positive(to_money(amount))
        account.balance = round_money(account.balance + amount)
        account.touch()
        self._save_account(account)
        return account

    def debit(self, account: Account, amount: Decimal) -> Account:
        """
        Subtract from the balance. No authorization: callers enforce invariants.

        Raises:
            InvalidArgumentError: If the balance would go negative; the
                account is left untouched
        """
        amount = require_positive(to_money(amount))
        new_balance = round_money(account.balance - amount)
        if new_balance < ZERO:
            raise InvalidArgumentError(
                f"Insufficient funds: balance {account.balance}, debit {amount}"
            )
        account.balance = new_balance
        account.touch()
        self._save_account(account)
        return account

    def deposit(self, account_id: str, amount: Any, owner_identity: str) -> Account:
        """
        Add money to an owned savings account

        Raises:
            InvalidArgumentError: Non-positive amount or non-savings account
            NotFoundError: Unknown account
            UnauthorizedError: Caller does not own the account
            ForbiddenError: Account is frozen
        """
        amount = require_positive(to_money(amount))

        with self.storage.atomic():
            account = self.require_owned_account(
                account_id, owner_identity,
                "You don't have permission to access this account"
            )
            if account.account_type != AccountType.SAVINGS:
                raise InvalidArgumentError(
                    f"Only savings accounts can receive deposits. Account type: {account.account_type.value}"
                )
            if not account.can_transact():
                raise ForbiddenError("Cannot add money to a frozen account")

            self.credit(account, amount)
            self.audit_trail.log_event(
                event_type=AuditEventType.ACCOUNT_DEPOSIT,
                entity_type="account",
                entity_id=account.id,
                metadata={"amount": amount, "balance": account.balance},
                user_id=owner_identity
            )

        log_action(
            self.logger, "info", f"Deposit to {account.account_number}",
            user_id=owner_identity, action="deposit", resource=f"account:{account.id}",
            extra={"amount": str(amount)}
        )
        return account

    def freeze_account(self, account_id: str, reason: str) -> Account:
        """Administratively freeze an account"""
        return self._set_frozen(account_id, True, reason)

    def unfreeze_account(self, account_id: str, reason: str) -> Account:
        """Administratively unfreeze an account"""
        return self._set_frozen(account_id, False, reason)

    def _set_frozen(self, account_id: str, frozen: bool, reason: str) -> Account:
        with self.storage.atomic():
            account = self.get_account(account_id)
            account.frozen = frozen
            account.touch()
            self._save_account(account)

            self.audit_trail.log_event(
                event_type=AuditEventType.ACCOUNT_FROZEN if frozen else AuditEventType.ACCOUNT_UNFROZEN,
                entity_type="account",
                entity_id=account.id,
                metadata={"reason": reason}
            )

        log_action(
            self.logger, "info", f"Account {account.account_number} is now {account.status}",
            action="freeze_account" if frozen else "unfreeze_account",
            resource=f"account:{account.id}", extra={"reason": reason}
        )
        return account

    def _generate_account_number(self) -> str:
        """Generate a unique random 10-digit account number"""
        for _ in range(self.ACCOUNT_NUMBER_ATTEMPTS):
            candidate = f"{self._rng.randrange(10 ** 10):010d}"
            if not self.storage.find(self.accounts_table, {"account_number": candidate}):
                return candidate
        raise LedgerError("Could not allocate a unique account number")

    def _save_account(self, account: Account) -> None:
        """Save account to storage"""
        self.storage.save(self.accounts_table, account.id, account.to_dict())
