"""
Value Comparer for Audit Forensics

Provides structural value comparison for snapshot and metadata diffing.
Values are compared by their canonical JSON serialization, so nested
mappings and lists compare by content rather than identity and missing
values compare equal to null.
"""

import json
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

logger = logging.getLogger(__name__)


class ValueComparer:
    """
    Compares snapshot values for audit diffing.

    Handles normalization of values that JSON cannot encode directly
    (UUIDs, decimals, datetimes) before comparison.
    """

    def __init__(self, ignore_fields: Optional[Iterable[str]] = None):
        """
        Initialize the value comparer.

        Args:
            ignore_fields: Field names that never count as changed
        """
        self.ignore_fields = frozenset(ignore_fields or ())
        logger.debug(f"Initialized ValueComparer ignoring {sorted(self.ignore_fields)}")

    def to_comparable(self, value: Any) -> str:
        """
        Serialize a value into its comparable form.

        Args:
            value: Value to serialize

        Returns:
            Canonical JSON string ("null" for None)
        """
        return json.dumps(
            self._normalize_value(value),
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
            default=str
        )

    def values_equal(self, value1: Any, value2: Any) -> bool:
        """
        Compare two values for structural equality.

        Args:
            value1: First value
            value2: Second value

        Returns:
            True if values serialize identically
        """
        return self.to_comparable(value1) == self.to_comparable(value2)

    def changed_fields(
        self,
        before: Dict[str, Any],
        after: Dict[str, Any]
    ) -> List[str]:
        """
        List the fields whose values differ between two snapshots.

        Args:
            before: Snapshot before the change
            after: Snapshot after the change

        Returns:
            Sorted list of changed field names, excluding ignored fields
        """
        keys = set(before.keys()) | set(after.keys())

        differing = [
            key for key in keys
            if key not in self.ignore_fields
            and not self.values_equal(before.get(key), after.get(key))
        ]

        return sorted(differing)

    def _normalize_value(self, value: Any) -> Any:
        """
        Normalize a single value for serialization.

        Args:
            value: Value to normalize

        Returns:
            JSON-encodable value
        """
        if value is None:
            return None

        if isinstance(value, UUID):
            return str(value)

        if isinstance(value, Decimal):
            return str(value.normalize())

        if isinstance(value, (datetime, date)):
            return value.isoformat()

        if isinstance(value, (list, tuple)):
            return [self._normalize_value(item) for item in value]

        if isinstance(value, dict):
            return {str(k): self._normalize_value(v) for k, v in value.items()}

        return value
