"""Typed error values raised by the ledger engine.

Every error carries a stable ``code`` and the identifiers involved as
attributes. Display text is produced by the upward surfaces (see
``main.ERROR_MESSAGES``), never here.
"""

from typing import Hashable, Optional


class LedgerError(ValueError):
    code = "ledger_error"

    def details(self) -> dict[str, object]:
        return {}


class CurrencyMismatch(LedgerError):
    code = "currency_mismatch"

    def __init__(self, expected: str, actual: str) -> None:
        super().__init__(expected, actual)
        self.expected = expected
        self.actual = actual

    def details(self) -> dict[str, object]:
        return {"expected": self.expected, "actual": self.actual}


class CycleDetected(LedgerError):
    code = "cycle_detected"

    def __init__(self, category_id: Hashable, parent_id: Hashable) -> None:
        super().__init__(category_id, parent_id)
        self.category_id = category_id
        self.parent_id = parent_id

    def details(self) -> dict[str, object]:
        return {"category_id": self.category_id, "parent_id": self.parent_id}


class CategoryHasChildren(LedgerError):
    code = "category_has_children"

    def __init__(self, category_id: Hashable, child_ids: tuple) -> None:
        super().__init__(category_id, child_ids)
        self.category_id = category_id
        self.child_ids = child_ids

    def details(self) -> dict[str, object]:
        return {"category_id": self.category_id, "child_ids": list(self.child_ids)}


class CategoryArchived(LedgerError):
    code = "category_archived"

    def __init__(self, category_id: Hashable) -> None:
        super().__init__(category_id)
        self.category_id = category_id

    def details(self) -> dict[str, object]:
        return {"category_id": self.category_id}


class UnknownReference(LedgerError):
    code = "unknown_reference"

    def __init__(self, kind: str, ref: Hashable) -> None:
        super().__init__(kind, ref)
        self.kind = kind
        self.ref = ref

    def details(self) -> dict[str, object]:
        return {"kind": self.kind, "ref": self.ref}


class InvalidRecurrenceRule(LedgerError):
    code = "invalid_recurrence_rule"

    def __init__(self, field: str, value: object = None) -> None:
        super().__init__(field, value)
        self.field = field
        self.value = value

    def details(self) -> dict[str, object]:
        return {"field": self.field, "value": self.value}


class AmendTargetVoided(LedgerError):
    code = "amend_target_voided"

    def __init__(self, transaction_id: Hashable, superseded_by: Optional[Hashable]) -> None:
        super().__init__(transaction_id, superseded_by)
        self.transaction_id = transaction_id
        self.superseded_by = superseded_by

    def details(self) -> dict[str, object]:
        return {
            "transaction_id": self.transaction_id,
            "superseded_by": self.superseded_by,
        }
