"""
JSON (OData minimal metadata) serializer for Azure Table Storage payloads.

Converts table names and entities to the request bodies the table service
expects, and turns response bodies back into table names and typed
entities.

Wire format:
    Table:       {"TableName": "mytable"}
    Table list:  {"value": [{"TableName": "a"}, ...]}
    Entity:      {"Age": 42, "Id": "12345678901", "Id@odata.type": "Edm.Int64", ...}
    Entity list: {"value": [<entity>, ...]}
"""

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Union

from tablecodec.core.logging_config import get_logger, log_with_context
from tablecodec.table.exceptions import (
    MalformedPayloadError,
    UnsupportedEdmTypeError,
    ValueConversionError,
)
from tablecodec.table.models import TIMESTAMP, Entity
from tablecodec.table.types import EdmType, EdmTypeCodec, TypeCodec

logger = get_logger(__name__)

Body = Union[bytes, bytearray, str]

TABLE_NAME = "TableName"
ETAG_KEY = "odata.etag"
METADATA_PREFIX = "odata."
TYPE_SUFFIX = "@odata.type"
DEFAULT_COLLECTION_FIELD = "value"


def _load_object(body: Body, what: str) -> Dict[str, Any]:
    """Parse a response body that must hold a JSON object."""
    try:
        data = json.loads(body)
    except (TypeError, ValueError) as e:
        raise MalformedPayloadError(f"{what} payload is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise MalformedPayloadError(
            f"{what} payload must be a JSON object, got {type(data).__name__}"
        )
    return data


def _get_list(data: Mapping[str, Any], field: str, what: str) -> List[Any]:
    if field not in data:
        raise MalformedPayloadError(f"{what} payload has no '{field}' field", field=field)
    items = data[field]
    if not isinstance(items, list):
        raise MalformedPayloadError(f"'{field}' field of {what} payload is not a list", field=field)
    return items


def _table_name(value: Any) -> str:
    if not isinstance(value, str):
        raise MalformedPayloadError(
            f"'TableName' must be a string, got {type(value).__name__}", field=TABLE_NAME
        )
    return value


def _dump(data: Dict[str, Any]) -> bytes:
    return json.dumps(data, allow_nan=False, ensure_ascii=False).encode("utf-8")


def is_metadata_key(key: str) -> bool:
    """Check whether a wire key is service metadata rather than a property."""
    return key == TIMESTAMP or key.endswith(TYPE_SUFFIX) or key.startswith(METADATA_PREFIX)


def etag_from_timestamp(timestamp: datetime) -> str:
    """
    Build the weak ETag the service derives from an entity timestamp.

    Example:
        2020-01-01T00:00:00Z -> W/"datetime'5e0be100'"
    """
    return f"W/\"datetime'{int(timestamp.timestamp()) & 0xFFFFFFFFFFFFFFFF:x}'\""


class ODataReaderWriter(ABC):
    """
    Reads and writes table service request and response bodies.

    All operations are pure: they never touch a network connection or file.
    """

    @abstractmethod
    def encode_table(self, name: str) -> bytes:
        """Build the body of a create-table request."""

    @abstractmethod
    def decode_table(self, body: Body) -> str:
        """Read a table name from a single-table response."""

    @abstractmethod
    def decode_table_list(self, body: Body) -> List[str]:
        """Read table names from a query-tables response."""

    @abstractmethod
    def encode_entity(self, entity: Entity) -> bytes:
        """Build the body of an insert/update entity request."""

    @abstractmethod
    def decode_entity(self, body: Body) -> Entity:
        """Read a typed entity from a single-entity response."""

    @abstractmethod
    def decode_entity_list(self, body: Body) -> List[Entity]:
        """Read typed entities from a query-entities response."""


class TableCodec:
    """
    Table name payloads.

    Name validation is left to the caller; any string, including the empty
    string, is written as is.
    """

    def __init__(self, collection_field: str = DEFAULT_COLLECTION_FIELD):
        self.collection_field = collection_field

    def encode_table(self, name: str) -> bytes:
        """
        Build the body of a create-table request.

        Args:
            name: Table name

        Returns:
            UTF-8 JSON body

        Raises:
            ValueError: If name is None
        """
        if name is None:
            raise ValueError("Table name cannot be None")
        return _dump({TABLE_NAME: name})

    def decode_table(self, body: Body) -> str:
        """
        Read a table name from a single-table response.

        Raises:
            MalformedPayloadError: If body is not an object with a TableName
        """
        data = _load_object(body, "Table")
        if TABLE_NAME not in data:
            raise MalformedPayloadError("Table payload has no 'TableName' field", field=TABLE_NAME)
        return _table_name(data[TABLE_NAME])

    def decode_table_list(self, body: Body) -> List[str]:
        """
        Read table names from a query-tables response, in wire order.

        Raises:
            MalformedPayloadError: If the list field or a TableName is missing
        """
        data = _load_object(body, "Table list")
        names = []
        for entry in _get_list(data, self.collection_field, "Table list"):
            if not isinstance(entry, dict) or TABLE_NAME not in entry:
                raise MalformedPayloadError(
                    "Table list entry has no 'TableName' field", field=TABLE_NAME
                )
            names.append(_table_name(entry[TABLE_NAME]))
        logger.debug(f"Decoded {len(names)} table names")
        return names


class EntityCodec:
    """
    Typed entity payloads.

    Property types travel as ``<name>@odata.type`` siblings. Properties the
    service can type on its own (strings, booleans, Int32 and finite Double
    numbers) and null values are written without an annotation; on decode,
    unannotated values get their type from the JSON value itself.
    """

    def __init__(
        self,
        type_codec: Optional[TypeCodec] = None,
        collection_field: str = DEFAULT_COLLECTION_FIELD,
    ):
        """
        Initialize entity codec.

        Args:
            type_codec: Value conversion primitives (EdmTypeCodec by default)
            collection_field: Name of the list field in entity-list responses
        """
        self.type_codec = type_codec or EdmTypeCodec()
        self.collection_field = collection_field

    def encode_entity(self, entity: Entity) -> bytes:
        """
        Build the body of an insert/update entity request.

        Args:
            entity: Entity to encode

        Returns:
            UTF-8 JSON body, annotations placed right after their property
        """
        wire: Dict[str, Any] = {}

        for name, prop in entity:
            if prop.value is None:
                # Nulls are never annotated
                wire[name] = None
                continue

            edm_type = prop.edm_type
            if edm_type is None:
                edm_type = self.type_codec.infer_type(prop.value)

            value = self.type_codec.serialize(edm_type, prop.value)
            wire[name] = value

            if self.type_codec.requires_type_hint(edm_type, value):
                wire[name + TYPE_SUFFIX] = EdmType.parse(edm_type).value

        return _dump(wire)

    def decode_entity(self, body: Body) -> Entity:
        """
        Read a typed entity from a single-entity response.

        Raises:
            MalformedPayloadError: If body is not a JSON object
            UnsupportedEdmTypeError: If a type annotation is unknown
            ValueConversionError: If a value does not match its type
        """
        return self.entity_from_dict(_load_object(body, "Entity"))

    def decode_entity_list(self, body: Body) -> List[Entity]:
        """
        Read typed entities from a query-entities response, in wire order.

        Continuation tokens travel in response headers and are not handled
        here.

        Raises:
            MalformedPayloadError: If the list field is missing or not a list
        """
        data = _load_object(body, "Entity list")
        entities = []
        for raw in _get_list(data, self.collection_field, "Entity list"):
            if not isinstance(raw, dict):
                raise MalformedPayloadError(
                    f"Entity list entry must be a JSON object, got {type(raw).__name__}"
                )
            entities.append(self.entity_from_dict(raw))
        logger.debug(f"Decoded {len(entities)} entities")
        return entities

    def entity_from_dict(self, raw: Mapping[str, Any]) -> Entity:
        """
        Build a typed entity from a parsed wire entity.

        Args:
            raw: Parsed JSON object

        Returns:
            Entity with Timestamp, ETag and all user properties
        """
        entity = Entity()
        timestamp = None

        if TIMESTAMP in raw:
            timestamp = self._deserialize(TIMESTAMP, EdmType.DATETIME, raw[TIMESTAMP])
            entity.add_property(TIMESTAMP, EdmType.DATETIME, timestamp)

        etag = None
        if ETAG_KEY in raw:
            etag = raw[ETAG_KEY]
        elif timestamp is not None:
            etag = etag_from_timestamp(timestamp)
        entity.etag = "" if etag is None else str(etag)

        for key, value in raw.items():
            if is_metadata_key(key):
                continue

            if key + TYPE_SUFFIX in raw:
                edm_type = raw[key + TYPE_SUFFIX]
            else:
                edm_type = self.type_codec.infer_type(value)

            entity.add_property(key, edm_type, self._deserialize(key, edm_type, value))

        return entity

    def _deserialize(self, key: str, edm_type: Any, value: Any) -> Any:
        try:
            return self.type_codec.deserialize(edm_type, value)
        except (UnsupportedEdmTypeError, ValueConversionError) as e:
            e.property_name = key
            log_with_context(
                logger,
                logging.WARNING,
                f"Cannot decode property {key!r}",
                property=key,
                edm_type=str(getattr(edm_type, "value", edm_type)),
                error_code=e.error_code,
            )
            raise


class JsonODataReaderWriter(TableCodec, EntityCodec, ODataReaderWriter):
    """Table and entity payloads behind a single reader/writer."""

    def __init__(
        self,
        type_codec: Optional[TypeCodec] = None,
        collection_field: str = DEFAULT_COLLECTION_FIELD,
    ):
        EntityCodec.__init__(self, type_codec, collection_field)
