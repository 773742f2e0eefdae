"""
OData EDM (Entity Data Model) Type System for Azure Table Storage payloads.

This module implements the conversions between native Python values and
their JSON wire representations, type inference for untyped wire values,
and the rules deciding which properties need an explicit ``@odata.type``
annotation.

References:
    - OData v3 Primitive Data Types
    - Azure Table Storage Entity Properties
    - Payload Format for Table Service Operations (JSON)
"""

from __future__ import annotations

import base64
import binascii
import math
import re
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional, Union

from .exceptions import UnsupportedEdmTypeError, ValueConversionError


INT32_MIN = -2147483648
INT32_MAX = 2147483647

# Azure emits seven fractional digits; Python keeps six.
_DATETIME_PATTERN = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})"
    r"(?:\.(\d{1,7}))?"
    r"(Z|[+-]\d{2}:\d{2})?$"
)

_SPECIAL_DOUBLES = {
    "NaN": math.nan,
    "Infinity": math.inf,
    "-Infinity": -math.inf,
}


class EdmType(Enum):
    """
    Entity Data Model primitive types.

    Represents the set of property types supported by Azure Table Storage.
    The enum value is the name used in ``@odata.type`` annotations.
    """
    STRING = "Edm.String"
    BINARY = "Edm.Binary"
    BOOLEAN = "Edm.Boolean"
    INT32 = "Edm.Int32"
    INT64 = "Edm.Int64"
    DOUBLE = "Edm.Double"
    DATETIME = "Edm.DateTime"
    GUID = "Edm.Guid"

    @classmethod
    def parse(cls, edm_type: Union[EdmType, str]) -> EdmType:
        """
        Resolve a type annotation to an EdmType.

        Args:
            edm_type: EdmType member or its wire name (e.g. "Edm.Int64")

        Returns:
            Matching EdmType

        Raises:
            UnsupportedEdmTypeError: If the name is not a known EDM type
        """
        if isinstance(edm_type, cls):
            return edm_type
        try:
            return cls(edm_type)
        except ValueError:
            raise UnsupportedEdmTypeError(edm_type) from None


EdmTypeLike = Union[EdmType, str]


class TypeCodec(ABC):
    """
    Conversion primitives consumed by the entity codec.

    Implementations must be stateless so a single instance can be shared
    by any number of codecs and threads.
    """

    @abstractmethod
    def serialize(self, edm_type: EdmTypeLike, value: Any) -> Any:
        """Convert a native value to its JSON wire form."""

    @abstractmethod
    def deserialize(self, edm_type: EdmTypeLike, value: Any) -> Any:
        """Convert a JSON wire value to its native form."""

    @abstractmethod
    def infer_type(self, value: Any) -> EdmType:
        """Guess the EDM type of a value that carries no annotation."""

    @abstractmethod
    def requires_type_hint(self, edm_type: EdmTypeLike, wire_value: Any) -> bool:
        """Tell whether a serialized value needs an @odata.type sibling."""


class EdmTypeCodec(TypeCodec):
    """
    Default conversions between Python values and Azure Table JSON values.

    Native representations:
        Edm.String   -> str
        Edm.Binary   -> bytes (base64 on the wire)
        Edm.Boolean  -> bool
        Edm.Int32    -> int (JSON number)
        Edm.Int64    -> int (decimal string on the wire)
        Edm.Double   -> float (JSON number, or "NaN"/"Infinity"/"-Infinity")
        Edm.DateTime -> timezone-aware datetime in UTC (ISO 8601 string)
        Edm.Guid     -> uuid.UUID (canonical string)

    ``None`` is a valid value for every type and passes through unchanged.
    """

    def serialize(self, edm_type: EdmTypeLike, value: Any) -> Any:
        """
        Convert a native value to its JSON wire form.

        Args:
            edm_type: Target EDM type
            value: Native Python value

        Returns:
            JSON-compatible value (str, int, float, bool or None)

        Raises:
            UnsupportedEdmTypeError: If edm_type is unknown
            ValueConversionError: If value does not fit edm_type
        """
        edm_type = EdmType.parse(edm_type)
        if value is None:
            return None

        if edm_type == EdmType.STRING:
            if isinstance(value, (bytes, bytearray)):
                raise ValueConversionError(edm_type, value, "use Edm.Binary for bytes")
            return str(value)

        if edm_type == EdmType.BOOLEAN:
            if not isinstance(value, bool):
                raise ValueConversionError(edm_type, value, "expected bool")
            return value

        if edm_type == EdmType.INT32:
            return self._to_int(edm_type, value, INT32_MIN, INT32_MAX)

        if edm_type == EdmType.INT64:
            return str(self._to_int(edm_type, value, -(2 ** 63), 2 ** 63 - 1))

        if edm_type == EdmType.DOUBLE:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueConversionError(edm_type, value, "expected a number")
            number = float(value)
            if math.isnan(number):
                return "NaN"
            if math.isinf(number):
                return "Infinity" if number > 0 else "-Infinity"
            return number

        if edm_type == EdmType.DATETIME:
            if not isinstance(value, datetime):
                raise ValueConversionError(edm_type, value, "expected datetime")
            return format_datetime(value)

        if edm_type == EdmType.GUID:
            return str(self._to_uuid(edm_type, value))

        # Edm.Binary
        if not isinstance(value, (bytes, bytearray)):
            raise ValueConversionError(edm_type, value, "expected bytes")
        return base64.b64encode(bytes(value)).decode("ascii")

    def deserialize(self, edm_type: EdmTypeLike, value: Any) -> Any:
        """
        Convert a JSON wire value to its native form.

        Args:
            edm_type: Declared or inferred EDM type
            value: Raw value from the parsed JSON document

        Returns:
            Native Python value

        Raises:
            UnsupportedEdmTypeError: If edm_type is unknown
            ValueConversionError: If value cannot be read as edm_type
        """
        edm_type = EdmType.parse(edm_type)
        if value is None:
            return None

        if edm_type == EdmType.STRING:
            if not isinstance(value, str):
                raise ValueConversionError(edm_type, value, "expected a JSON string")
            return value

        if edm_type == EdmType.BOOLEAN:
            if isinstance(value, bool):
                return value
            if isinstance(value, str) and value.lower() in ("true", "false"):
                return value.lower() == "true"
            raise ValueConversionError(edm_type, value, "expected true or false")

        if edm_type == EdmType.INT32:
            return self._to_int(edm_type, value, INT32_MIN, INT32_MAX)

        if edm_type == EdmType.INT64:
            return self._to_int(edm_type, value, -(2 ** 63), 2 ** 63 - 1)

        if edm_type == EdmType.DOUBLE:
            if isinstance(value, bool):
                raise ValueConversionError(edm_type, value, "expected a number")
            if isinstance(value, (int, float)):
                return float(value)
            if isinstance(value, str):
                if value in _SPECIAL_DOUBLES:
                    return _SPECIAL_DOUBLES[value]
                try:
                    return float(value)
                except ValueError:
                    pass
            raise ValueConversionError(edm_type, value, "expected a number")

        if edm_type == EdmType.DATETIME:
            if not isinstance(value, str):
                raise ValueConversionError(edm_type, value, "expected an ISO 8601 string")
            return parse_datetime(value)

        if edm_type == EdmType.GUID:
            if not isinstance(value, str):
                raise ValueConversionError(edm_type, value, "expected a GUID string")
            return self._to_uuid(edm_type, value)

        # Edm.Binary
        if not isinstance(value, str):
            raise ValueConversionError(edm_type, value, "expected a base64 string")
        try:
            return base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueConversionError(edm_type, value, str(e)) from e

    def infer_type(self, value: Any) -> EdmType:
        """
        Infer EDM type from a Python or JSON value.

        Args:
            value: Python value

        Returns:
            Inferred EDM type
        """
        if value is None:
            # Null carries no type information on the wire
            return EdmType.STRING
        elif isinstance(value, bool):
            # Must check bool before int (bool is subclass of int)
            return EdmType.BOOLEAN
        elif isinstance(value, int):
            if INT32_MIN <= value <= INT32_MAX:
                return EdmType.INT32
            else:
                return EdmType.INT64
        elif isinstance(value, float):
            return EdmType.DOUBLE
        elif isinstance(value, str):
            return EdmType.STRING
        elif isinstance(value, datetime):
            return EdmType.DATETIME
        elif isinstance(value, uuid.UUID):
            return EdmType.GUID
        elif isinstance(value, (bytes, bytearray)):
            return EdmType.BINARY
        else:
            # Default to string for unknown types
            return EdmType.STRING

    def requires_type_hint(self, edm_type: EdmTypeLike, wire_value: Any) -> bool:
        """
        Check whether a serialized value needs an ``@odata.type`` annotation.

        Strings, booleans and Int32 numbers are what the service infers for
        unannotated JSON values. Doubles only need the annotation when they
        were written as strings (NaN and infinities).

        Args:
            edm_type: Resolved EDM type
            wire_value: Value produced by serialize()

        Returns:
            True if the annotation must be emitted
        """
        edm_type = EdmType.parse(edm_type)
        if edm_type in (EdmType.STRING, EdmType.BOOLEAN, EdmType.INT32):
            return False
        if edm_type == EdmType.DOUBLE:
            return isinstance(wire_value, str)
        return True

    def validate(self, edm_type: EdmTypeLike, value: Any) -> tuple[bool, Optional[str]]:
        """
        Validate a native value against an EDM type.

        Args:
            edm_type: EDM type the value is declared as
            value: Native Python value

        Returns:
            Tuple of (is_valid, error_message)
        """
        try:
            self.serialize(edm_type, value)
        except (UnsupportedEdmTypeError, ValueConversionError) as e:
            return False, e.message
        return True, None

    @staticmethod
    def _to_int(edm_type: EdmType, value: Any, low: int, high: int) -> int:
        if isinstance(value, bool) or not isinstance(value, (int, str)):
            raise ValueConversionError(edm_type, value, "expected an integer")
        try:
            number = int(value)
        except ValueError as e:
            raise ValueConversionError(edm_type, value, "not an integer") from e
        if not low <= number <= high:
            raise ValueConversionError(edm_type, value, "out of range")
        return number

    @staticmethod
    def _to_uuid(edm_type: EdmType, value: Any) -> uuid.UUID:
        if isinstance(value, uuid.UUID):
            return value
        try:
            return uuid.UUID(str(value))
        except ValueError as e:
            raise ValueConversionError(edm_type, value, "malformed GUID") from e


def format_datetime(value: datetime) -> str:
    """
    Format a datetime the way the table service does.

    Naive datetimes are taken to be UTC.

    Example:
        2020-01-01T00:00:00.0000000Z
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return f"{value.year:04d}-{value:%m-%dT%H:%M:%S.%f}0Z"


def parse_datetime(text: str) -> datetime:
    """
    Parse an ISO 8601 timestamp into an aware UTC datetime.

    Accepts 0 to 7 fractional digits (the seventh is dropped) and either
    ``Z``, a numeric offset, or no zone designator (read as UTC).

    Raises:
        ValueConversionError: If text is not a valid timestamp
    """
    match = _DATETIME_PATTERN.match(text)
    if match is None:
        raise ValueConversionError(EdmType.DATETIME, text, "expected an ISO 8601 string")

    year, month, day, hour, minute, second, fraction, zone = match.groups()
    microsecond = int((fraction or "0")[:6].ljust(6, "0"))

    try:
        tz = timezone.utc
        if zone and zone != "Z":
            sign = -1 if zone[0] == "-" else 1
            offset = timedelta(hours=int(zone[1:3]), minutes=int(zone[4:6]))
            tz = timezone(sign * offset)
        parsed = datetime(
            int(year), int(month), int(day),
            int(hour), int(minute), int(second),
            microsecond, tzinfo=tz,
        )
    except ValueError as e:
        raise ValueConversionError(EdmType.DATETIME, text, str(e)) from e
    return parsed.astimezone(timezone.utc)
