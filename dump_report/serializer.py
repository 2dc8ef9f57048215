"""JSON output for report documents.

Field names are written in PascalCase ("OSThreadId", "AnalysisStartTime"),
enums by their symbolic name and timestamps in ISO 8601.
"""
from __future__ import annotations

import dataclasses
import json
from datetime import datetime
from enum import Enum
from typing import Any, Dict

from .components import ReportComponent
from .report import ReportDocument

# Name parts written in upper case
_ACRONYMS = {"os": "OS"}


def json_field_name(name: str) -> str:
    """snake_case attribute name to the report's PascalCase field name."""
    return "".join(
        _ACRONYMS.get(part, part[:1].upper() + part[1:])
        for part in name.split("_") if part
    )


def _dataclass_to_dict(obj) -> Dict[str, Any]:
    return {
        json_field_name(f.name): to_json_value(getattr(obj, f.name))
        for f in dataclasses.fields(obj)
        if not f.name.startswith("_")
    }


def to_json_value(value: Any) -> Any:
    """Convert report objects to JSON-compatible values."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, ReportComponent):
        data: Dict[str, Any] = {"Title": value.title}
        if dataclasses.is_dataclass(value):
            data.update(_dataclass_to_dict(value))
        return data
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return _dataclass_to_dict(value)
    if isinstance(value, (list, tuple)):
        return [to_json_value(v) for v in value]
    if isinstance(value, dict):
        return {str(k): to_json_value(v) for k, v in value.items()}
    return value


def report_to_dict(document: ReportDocument) -> Dict[str, Any]:
    return to_json_value(document)


def report_to_json(document: ReportDocument, indent: int = 2) -> str:
    return json.dumps(report_to_dict(document), indent=indent)


def write_report(document: ReportDocument, file_name: str) -> None:
    """Serialize document and write it to file_name."""
    with open(file_name, 'w', encoding='utf-8') as f:
        f.write(report_to_json(document))
