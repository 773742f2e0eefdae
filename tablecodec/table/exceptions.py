"""
Table Codec Exceptions.

Custom exception classes raised while encoding or decoding Azure Table
Storage payloads.
"""

from typing import Any, Optional


class TableCodecError(Exception):
    """Base exception for table codec errors.

    Attributes:
        message: Error message
        error_code: Short machine-readable error code
    """

    def __init__(self, message: str, error_code: str = "TableCodecError"):
        """Initialize table codec error.

        Args:
            message: Error message
            error_code: Error code
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class MalformedPayloadError(TableCodecError):
    """Payload is not a JSON object or lacks an expected field."""

    def __init__(self, message: str, field: Optional[str] = None):
        """Initialize malformed payload error.

        Args:
            message: Error message
            field: Name of the missing or invalid field
        """
        super().__init__(message, "MalformedPayload")
        self.field = field


class UnsupportedEdmTypeError(TableCodecError):
    """An @odata.type hint names an EDM type the codec does not know."""

    def __init__(self, edm_type: Any, property_name: Optional[str] = None):
        """Initialize unsupported type error.

        Args:
            edm_type: The offending type name
            property_name: Property carrying the type, when known
        """
        super().__init__(f"Unsupported EDM type: {edm_type!r}", "UnsupportedKind")
        self.edm_type = edm_type
        self.property_name = property_name

    def __str__(self) -> str:
        if self.property_name is None:
            return self.message
        return f"{self.message} (property {self.property_name!r})"


class ValueConversionError(TableCodecError):
    """A value cannot be converted to or from its EDM type."""

    def __init__(
        self,
        edm_type: Any,
        value: Any,
        reason: str = "",
        property_name: Optional[str] = None,
    ):
        """Initialize value conversion error.

        Args:
            edm_type: Declared or inferred EDM type
            value: The value that failed to convert
            reason: Short explanation
            property_name: Property holding the value, when known
        """
        type_name = getattr(edm_type, "value", edm_type)
        message = f"Cannot convert {value!r} to {type_name}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, "ValueConversionError")
        self.edm_type = edm_type
        self.value = value
        self.reason = reason
        self.property_name = property_name

    def __str__(self) -> str:
        if self.property_name is None:
            return self.message
        return f"{self.message} (property {self.property_name!r})"
