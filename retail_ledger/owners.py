"""
Owner Directory Module

Read side of the (external) user registry. Accounts reference owners by id;
callers authenticate with an owner identity such as an e-mail address.
"""

from datetime import datetime, timezone
from dataclasses import dataclass
from typing import List, Optional
import uuid

from .exceptions import InvalidArgumentError, NotFoundError
from .storage import StorageInterface, StorageRecord


@dataclass
class Owner(StorageRecord):
    """Account owner as known to the ledger"""
    identity: str
    display_name: Optional[str] = None


class OwnerDirectory:
    """
    Looks up account owners by id or identity

    Registration and profile management belong to an outer layer;
    register_owner exists so that layer (and tests) can seed the directory.
    """

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.table_name = "owners"

    def register_owner(self, identity: str, display_name: Optional[str] = None) -> Owner:
        """Register a new owner identity"""
        if not identity or not identity.strip():
            raise InvalidArgumentError("Owner identity is required")

        identity = identity.strip()
        with self.storage.atomic():
            if self.find_by_identity(identity):
                raise InvalidArgumentError(f"Owner {identity} already exists")

            now = datetime.now(timezone.utc)
            owner = Owner(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                identity=identity,
                display_name=display_name
            )
            self.storage.insert(self.table_name, owner.id, owner.to_dict())
        return owner

    def get_owner(self, owner_id: str) -> Owner:
        data = self.storage.load(self.table_name, owner_id)
        if not data:
            raise NotFoundError(f"Owner not found: {owner_id}")
        return Owner.from_dict(data)

    def owner_exists(self, owner_id: str) -> bool:
        return self.storage.exists(self.table_name, owner_id)

    def find_by_identity(self, identity: str) -> Optional[Owner]:
        """Find an owner by identity, or None"""
        matches = self.storage.find(self.table_name, {"identity": identity})
        if matches:
            return Owner.from_dict(matches[0])
        return None

    def get_by_identity(self, identity: str) -> Owner:
        owner = self.find_by_identity(identity)
        if not owner:
            raise NotFoundError(f"Owner not found: {identity}")
        return owner

    def list_owners(self) -> List[Owner]:
        return [Owner.from_dict(data) for data in self.storage.load_all(self.table_name)]
