"""
Reference Generator Module

Issues human-readable transaction references of the form
PREFIX-YYYYMMDD-XXXXXX, e.g. TXN-20251202-A3F9B2. The random suffix only
makes collisions unlikely; uniqueness is enforced by inserting under the
reference key and regenerating on a duplicate.
"""

import random
import string
from datetime import datetime, timezone
from typing import Callable, Optional

from .exceptions import ConfigurationError, DuplicateKeyError, ReferenceCollisionError
from .logging_config import get_logger
from .storage import StorageInterface, StorageRecord

TRANSFER_PREFIX = "TXN"
TRADE_PREFIX = "STK"

SUFFIX_ALPHABET = string.ascii_uppercase + string.digits
SUFFIX_LENGTH = 6


class ReferenceGenerator:
    """Generates references and appends log rows under them"""

    def __init__(
        self,
        storage: StorageInterface,
        max_attempts: int = 5,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        if max_attempts < 1:
            raise ConfigurationError("max_attempts must be at least 1")
        self.storage = storage
        self.max_attempts = max_attempts
        self._rng = rng or random.Random()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.logger = get_logger("retail_ledger.references")

    def generate(self, prefix: str) -> str:
        """Generate a candidate reference (not checked for uniqueness)"""
        date_part = self._clock().strftime("%Y%m%d")
        suffix = "".join(self._rng.choice(SUFFIX_ALPHABET) for _ in range(SUFFIX_LENGTH))
        return f"{prefix}-{date_part}-{suffix}"

    def append(
        self,
        table: str,
        prefix: str,
        build: Callable[[str], StorageRecord]
    ) -> StorageRecord:
        """
        Append an immutable log row under a freshly generated reference

        Args:
            table: Log table the row is inserted into, keyed by reference
            prefix: Reference prefix (TXN for transfers, STK for trades)
            build: Builds the record for a candidate reference

        Returns:
            The persisted record

        Raises:
            ReferenceCollisionError: If every attempt hit an existing reference
        """
        for attempt in range(1, self.max_attempts + 1):
            reference = self.generate(prefix)
            record = build(reference)
            try:
                self.storage.insert(table, reference, record.to_dict())
            except DuplicateKeyError:
                self.logger.warning(
                    f"Reference collision on {reference} (attempt {attempt}/{self.max_attempts})"
                )
                continue
            return record

        raise ReferenceCollisionError(
            f"Could not issue a unique {prefix} reference after {self.max_attempts} attempts"
        )
