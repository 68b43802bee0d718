"""Convert engine-native result values into JSON-safe values."""
import base64
import math
import re
import uuid
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional

from bson import Binary, DBRef, Decimal128, ObjectId, Regex, Timestamp

from querygate.agents.utils.errors import SerializationFailedError


# Largest integer a IEEE-754 double (and so any JSON consumer) holds exactly
MAX_SAFE_INTEGER = 2 ** 53 - 1

_REGEX_FLAGS = (
    (re.IGNORECASE, "i"),
    (re.MULTILINE, "m"),
    (re.DOTALL, "s"),
    (re.VERBOSE, "x"),
)


def format_datetime(value: datetime) -> str:
    """Canonical timestamp form: UTC, microseconds, trailing Z. Naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    # Fixed width: four-digit year, six-digit fraction
    utc = value.astimezone(timezone.utc).replace(tzinfo=None)
    return utc.isoformat(timespec="microseconds") + "Z"


class ResultNormalizer:
    """
    Recursively walks result rows and returns transport-safe copies.

    Every returned value is one of: None, bool, int (within the safe range),
    finite float, str, list or dict with string keys.
    """

    def __init__(self, engine_type: Optional[str] = None):
        self.engine_type = engine_type

    def normalize_rows(self, rows: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
        normalized = []
        for index, row in enumerate(rows):
            if not isinstance(row, Mapping):
                raise SerializationFailedError(
                    message=f"Row {index} is a {type(row).__name__}, expected a mapping",
                    engine_type=self.engine_type,
                )
            normalized.append(self._normalize_mapping(row, f"[{index}]"))
        return normalized

    def normalize_value(self, value: Any, path: str = "$") -> Any:
        # bool before int: bool is an int subclass
        if value is None or isinstance(value, (bool, str)):
            return value
        if isinstance(value, int):
            value = int(value)
            if -MAX_SAFE_INTEGER <= value <= MAX_SAFE_INTEGER:
                return value
            return str(value)
        if isinstance(value, float):
            if math.isnan(value):
                return "NaN"
            if math.isinf(value):
                return "Infinity" if value > 0 else "-Infinity"
            return value
        if isinstance(value, Decimal):
            return self._format_decimal(value)
        if isinstance(value, Decimal128):
            return self._format_decimal(value.to_decimal())
        if isinstance(value, datetime):
            return self._format_datetime(value, path)
        if isinstance(value, date):
            return value.isoformat()
        if isinstance(value, time):
            return value.isoformat()
        if isinstance(value, timedelta):
            return value.total_seconds()
        if isinstance(value, (ObjectId, uuid.UUID)):
            return str(value)
        if isinstance(value, Timestamp):
            return self._format_datetime(value.as_datetime(), path)
        if isinstance(value, (Binary, bytes, bytearray, memoryview)):
            return base64.b64encode(bytes(value)).decode("ascii")
        if isinstance(value, Regex):
            return f"/{value.pattern}/{self._bson_regex_flags(value.flags)}"
        if isinstance(value, re.Pattern):
            flags = "".join(letter for flag, letter in _REGEX_FLAGS if value.flags & flag)
            return f"/{value.pattern}/{flags}"
        if isinstance(value, DBRef):
            ref = {"$ref": value.collection, "$id": self.normalize_value(value.id, f"{path}.$id")}
            if value.database:
                ref["$db"] = value.database
            return ref
        if isinstance(value, Enum):
            return self.normalize_value(value.value, path)
        if isinstance(value, Mapping):
            return self._normalize_mapping(value, path)
        if isinstance(value, (list, tuple)):
            return [self.normalize_value(item, f"{path}[{i}]") for i, item in enumerate(value)]
        if isinstance(value, (set, frozenset)):
            items = sorted(value, key=str)
            return [self.normalize_value(item, f"{path}[{i}]") for i, item in enumerate(items)]

        raise SerializationFailedError(
            message=f"Cannot serialize value of type {type(value).__module__}.{type(value).__name__} at {path}",
            engine_type=self.engine_type,
        )

    def _normalize_mapping(self, value: Mapping[Any, Any], path: str) -> Dict[str, Any]:
        return {
            str(key): self.normalize_value(item, f"{path}.{key}")
            for key, item in value.items()
        }

    def _format_datetime(self, value: datetime, path: str) -> str:
        try:
            return format_datetime(value)
        except OverflowError as e:
            raise SerializationFailedError(
                message=f"Timestamp {value!r} at {path} is outside the UTC range: {e}",
                engine_type=self.engine_type,
            )

    @staticmethod
    def _format_decimal(value: Decimal) -> str:
        if value.is_nan():
            return "NaN"
        if value.is_infinite():
            return "Infinity" if value > 0 else "-Infinity"
        return str(value)

    @staticmethod
    def _bson_regex_flags(flags: Any) -> str:
        if isinstance(flags, str):
            return flags
        return "".join(letter for flag, letter in _REGEX_FLAGS if flags & flag)


def normalize_rows(rows: Iterable[Mapping[str, Any]], engine_type: Optional[str] = None) -> List[Dict[str, Any]]:
    return ResultNormalizer(engine_type).normalize_rows(rows)
