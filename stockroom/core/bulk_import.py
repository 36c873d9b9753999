"""Bulk Import Result - tallies per-item outcomes of a batch intake.

Invariants:
    - imported + skipped_duplicates + failed == number of items processed
    - Exactly one error message per failed item, naming its zero-based index
    - A batch above BULK_IMPORT_MAX_ITEMS is rejected before any item is processed
"""

from dataclasses import dataclass, field

from stockroom.core.domain_types import BULK_IMPORT_MAX_ITEMS


@dataclass
class BulkImportResult:
    imported: int = 0
    skipped_duplicates: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    def record_imported(self) -> None:
        self.imported += 1

    def record_skipped(self) -> None:
        self.skipped_duplicates += 1

    def record_failure(self, index: int, message: str) -> None:
        self.failed += 1
        self.errors.append(f"Item {index}: {message}")

    @property
    def processed(self) -> int:
        return self.imported + self.skipped_duplicates + self.failed

    def to_dict(self) -> dict:
        return {
            "imported": self.imported,
            "skipped_duplicates": self.skipped_duplicates,
            "failed": self.failed,
            "errors": list(self.errors),
        }


def check_batch_size(count: int, max_items: int = BULK_IMPORT_MAX_ITEMS) -> str | None:
    """Error message when a batch is empty or above the cap. Pure."""
    if count < 1:
        return "Bulk import requires at least one item"
    if count > max_items:
        return f"Bulk import accepts at most {max_items} items, got {count}"
    return None
