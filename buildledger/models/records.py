"""
Record boundary for store rows.

Rows come back from the store as loosely typed dicts (every value a string
for Google Sheets, native values for the in-memory store). Every model that
crosses the storage edge narrows those rows through `from_record` so that
application code only ever sees validated, typed objects.
"""

from datetime import datetime, timezone
from typing import Any, ClassVar, Optional, Sequence

from pydantic import BaseModel, ConfigDict


def utc_now() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)


class RecordModel(BaseModel):
    """Base for models persisted as flat records."""

    model_config = ConfigDict(str_strip_whitespace=True)

    # Columns written to the store, in order. Subclasses override.
    RECORD_FIELDS: ClassVar[tuple[str, ...]] = ()

    @classmethod
    def from_record(cls, record: dict[str, Any]):
        """
        Validate a raw store row into this model.

        Empty strings are treated as missing values, which is how the
        spreadsheet backend represents NULL.

        Raises:
            pydantic.ValidationError: If the row does not fit the schema
        """
        cleaned = {
            key: (None if value == "" else value)
            for key, value in record.items()
            if key in cls.RECORD_FIELDS
        }
        return cls.model_validate(cleaned)

    def to_record(self) -> dict[str, Any]:
        """Flatten to a JSON-safe dict holding only persisted columns."""
        data = self.model_dump(mode="json", include=set(self.RECORD_FIELDS))
        return {key: data.get(key) for key in self.RECORD_FIELDS}

    def to_row(self, columns: Optional[Sequence[str]] = None) -> list:
        """
        Cell values for the spreadsheet backend, in `columns` order
        (RECORD_FIELDS by default). Unknown columns get an empty cell.
        """
        record = self.to_record()
        return [
            "" if record.get(key) is None else str(record[key])
            for key in (columns or self.RECORD_FIELDS)
        ]
