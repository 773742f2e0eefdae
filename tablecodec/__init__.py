"""
tablecodec: Azure Table Storage payload codec

Encodes and decodes table names and typed entities in the JSON (OData
minimal metadata) format used by the table service.
"""

__version__ = "0.1.0"

from .table import EntityCodec, JsonODataReaderWriter, TableCodec, Entity, EdmType

__all__ = [
    "EntityCodec",
    "JsonODataReaderWriter",
    "TableCodec",
    "Entity",
    "EdmType",
    "__version__",
]
