"""Make database rows JSON friendly before they reach a response model"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable, Optional
from uuid import UUID


def _convert(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, dict):
        return {k: _convert(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_convert(v) for v in value]
    return value


def prepare_response(data: Any, id_fields: Optional[Iterable[str]] = None) -> Any:
    """
    Convert datetimes, Decimals and UUIDs; stringify the given id fields.
    Works on a single row or a list of rows.
    """
    id_fields = list(id_fields or [])

    def prepare_row(row):
        if not isinstance(row, dict):
            return _convert(row)
        out = _convert(row)
        for name in id_fields:
            if out.get(name) is not None:
                out[name] = str(out[name])
        return out

    if isinstance(data, list):
        return [prepare_row(row) for row in data]
    return prepare_row(data)
