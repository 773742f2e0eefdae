"""
Models for Azure Table Storage entities.

Defines the typed property value and the ordered property bag that the
entity codec encodes and decodes.
"""

from datetime import datetime
from typing import Any, Dict, Iterator, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, field_validator

from tablecodec.table.exceptions import TableCodecError
from tablecodec.table.types import EdmType, EdmTypeCodec, TypeCodec


PARTITION_KEY = "PartitionKey"
ROW_KEY = "RowKey"
TIMESTAMP = "Timestamp"


class Property(BaseModel):
    """
    A single typed entity property.

    ``edm_type`` may be left unset, in which case the codec infers it from
    the value when encoding.
    """
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    edm_type: Optional[EdmType] = None
    value: Any = None

    @field_validator('edm_type', mode='before')
    @classmethod
    def parse_edm_type(cls, v: Union[EdmType, str, None]) -> Optional[EdmType]:
        """Accept wire type names as well as EdmType members."""
        if v is None:
            return None
        return EdmType.parse(v)


class Entity:
    """
    Azure Table Storage entity.

    An ordered mapping of property name to Property plus the entity ETag.
    PartitionKey, RowKey and Timestamp are ordinary properties; the
    accessors below are shortcuts for them.
    """

    def __init__(self, etag: str = ""):
        self._properties: Dict[str, Property] = {}
        self.etag = etag

    @property
    def properties(self) -> Dict[str, Property]:
        """Snapshot of the properties in insertion order."""
        return dict(self._properties)

    def add_property(
        self,
        name: str,
        edm_type: Union[EdmType, str, None] = None,
        value: Any = None,
    ) -> Property:
        """
        Add a property, replacing any existing property of the same name.

        Args:
            name: Property name
            edm_type: EDM type, or None to infer on encode
            value: Native value

        Returns:
            The stored Property
        """
        prop = Property(edm_type=edm_type, value=value)
        self.set_property(name, prop)
        return prop

    def set_property(self, name: str, prop: Property) -> None:
        if not isinstance(name, str):
            raise TypeError(f"Property name must be a string, got {type(name).__name__}")
        self._properties[name] = prop

    def get_property(self, name: str) -> Optional[Property]:
        return self._properties.get(name)

    def get_property_value(self, name: str) -> Any:
        """Value of a property, or None if the entity does not have it."""
        prop = self._properties.get(name)
        return None if prop is None else prop.value

    def set_property_value(self, name: str, value: Any) -> None:
        """Replace a property's value while keeping its declared type."""
        prop = self._properties.get(name)
        edm_type = None if prop is None else prop.edm_type
        self.add_property(name, edm_type, value)

    def remove_property(self, name: str) -> Optional[Property]:
        return self._properties.pop(name, None)

    @property
    def partition_key(self) -> Optional[str]:
        return self.get_property_value(PARTITION_KEY)

    @partition_key.setter
    def partition_key(self, value: str) -> None:
        self.add_property(PARTITION_KEY, EdmType.STRING, value)

    @property
    def row_key(self) -> Optional[str]:
        return self.get_property_value(ROW_KEY)

    @row_key.setter
    def row_key(self, value: str) -> None:
        self.add_property(ROW_KEY, EdmType.STRING, value)

    @property
    def timestamp(self) -> Optional[datetime]:
        return self.get_property_value(TIMESTAMP)

    def is_valid(self, type_codec: Optional[TypeCodec] = None) -> Tuple[bool, Optional[str]]:
        """
        Validate the entity before it is sent to the service.

        Rules:
        - PartitionKey and RowKey must be present
        - Every property value must fit its declared (or inferred) type

        Args:
            type_codec: Codec used to check values (EdmTypeCodec by default)

        Returns:
            Tuple of (is_valid, error_message)
        """
        codec = type_codec or EdmTypeCodec()

        for key in (PARTITION_KEY, ROW_KEY):
            if key not in self._properties:
                return False, f"Entity is missing required property {key}"

        for name, prop in self._properties.items():
            if prop.value is None:
                continue
            edm_type = prop.edm_type or codec.infer_type(prop.value)
            try:
                codec.serialize(edm_type, prop.value)
            except TableCodecError as e:
                return False, f"Property {name!r} is not a valid {edm_type.value}: {e}"

        return True, None

    def __iter__(self) -> Iterator[Tuple[str, Property]]:
        return iter(list(self._properties.items()))

    def __len__(self) -> int:
        return len(self._properties)

    def __contains__(self, name: object) -> bool:
        return name in self._properties

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Entity):
            return NotImplemented
        return self.etag == other.etag and self._properties == other._properties

    def __repr__(self) -> str:
        return f"Entity(etag={self.etag!r}, properties={self._properties!r})"
