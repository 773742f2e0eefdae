"""
Azure Table Storage payload codec.

This module converts table names and typed entities to and from the JSON
bodies used by the table service.
"""

from tablecodec.table.codec import (
    EntityCodec,
    JsonODataReaderWriter,
    ODataReaderWriter,
    TableCodec,
)
from tablecodec.table.exceptions import (
    MalformedPayloadError,
    TableCodecError,
    UnsupportedEdmTypeError,
    ValueConversionError,
)
from tablecodec.table.models import Entity, Property
from tablecodec.table.types import EdmType, EdmTypeCodec, TypeCodec

__all__ = [
    "EntityCodec",
    "JsonODataReaderWriter",
    "ODataReaderWriter",
    "TableCodec",
    "MalformedPayloadError",
    "TableCodecError",
    "UnsupportedEdmTypeError",
    "ValueConversionError",
    "Entity",
    "Property",
    "EdmType",
    "EdmTypeCodec",
    "TypeCodec",
]
