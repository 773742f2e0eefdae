"""
Tests for the table and entity payload codecs.

Covers table name payloads, entity encoding with type annotations, entity
decoding with metadata filtering, type inference and ETag derivation.
"""

import json
import logging
import math
import uuid
from datetime import datetime, timezone

import pytest

from tablecodec.table.codec import (
    EntityCodec,
    JsonODataReaderWriter,
    ODataReaderWriter,
    TableCodec,
    etag_from_timestamp,
    is_metadata_key,
)
from tablecodec.table.exceptions import (
    MalformedPayloadError,
    UnsupportedEdmTypeError,
    ValueConversionError,
)
from tablecodec.table.models import Entity, Property
from tablecodec.table.types import EdmType, EdmTypeCodec


class RejectBinaryCodec(EdmTypeCodec):
    """Type codec that refuses to handle Edm.Binary."""

    def deserialize(self, edm_type, value):
        if EdmType.parse(edm_type) == EdmType.BINARY:
            raise UnsupportedEdmTypeError(edm_type)
        return super().deserialize(edm_type, value)


@pytest.fixture
def table_codec():
    return TableCodec()


@pytest.fixture
def entity_codec():
    return EntityCodec()


def _entity(**properties):
    entity = Entity()
    for name, (edm_type, value) in properties.items():
        entity.add_property(name, edm_type, value)
    return entity


class TestTableCodec:
    """Tests for table name payloads."""

    def test_encode_table(self, table_codec):
        assert json.loads(table_codec.encode_table("mytable")) == {"TableName": "mytable"}

    def test_encode_empty_name(self, table_codec):
        """Test that the empty name is not rejected."""
        assert json.loads(table_codec.encode_table("")) == {"TableName": ""}

    def test_encode_none(self, table_codec):
        with pytest.raises(ValueError):
            table_codec.encode_table(None)

    def test_table_round_trip(self, table_codec):
        assert table_codec.decode_table(table_codec.encode_table("mytable")) == "mytable"

    def test_decode_table_from_str(self, table_codec):
        body = '{"odata.metadata": "https://x/$metadata#Tables/@Element", "TableName": "t1"}'
        assert table_codec.decode_table(body) == "t1"

    def test_decode_table_missing_name(self, table_codec):
        with pytest.raises(MalformedPayloadError) as exc_info:
            table_codec.decode_table(b'{"Name": "t1"}')
        assert exc_info.value.field == "TableName"
        assert exc_info.value.error_code == "MalformedPayload"

    def test_decode_table_list(self, table_codec):
        body = '{"value":[{"TableName":"a"},{"TableName":"b"}]}'
        assert table_codec.decode_table_list(body) == ["a", "b"]

    def test_decode_empty_table_list(self, table_codec):
        assert table_codec.decode_table_list('{"value":[]}') == []

    def test_decode_table_list_missing_field(self, table_codec):
        with pytest.raises(MalformedPayloadError) as exc_info:
            table_codec.decode_table_list('{"tables": []}')
        assert exc_info.value.field == "value"

    @pytest.mark.parametrize("name", ["null", "5", "[\"a\"]"])
    def test_decode_table_name_not_a_string(self, table_codec, name):
        with pytest.raises(MalformedPayloadError) as exc_info:
            table_codec.decode_table('{"TableName": ' + name + "}")
        assert exc_info.value.field == "TableName"

    def test_decode_table_list_bad_entry(self, table_codec):
        with pytest.raises(MalformedPayloadError):
            table_codec.decode_table_list('{"value": [{"TableName": "a"}, {}]}')

    def test_decode_table_list_name_not_a_string(self, table_codec):
        with pytest.raises(MalformedPayloadError) as exc_info:
            table_codec.decode_table_list('{"value": [{"TableName": "a"}, {"TableName": null}]}')
        assert exc_info.value.field == "TableName"

    def test_custom_collection_field(self):
        codec = TableCodec(collection_field="tables")
        assert codec.decode_table_list('{"tables": [{"TableName": "a"}]}') == ["a"]

    @pytest.mark.parametrize("body", [b"", b"not json", b"[1, 2]", b'"TableName"', b"\xff\xfe"])
    def test_decode_not_an_object(self, table_codec, body):
        with pytest.raises(MalformedPayloadError):
            table_codec.decode_table(body)


class TestEncodeEntity:
    """Tests for entity encoding."""

    def test_empty_entity(self, entity_codec):
        assert entity_codec.encode_entity(Entity()) == b"{}"

    def test_native_types_have_no_annotation(self, entity_codec):
        """Test that strings, booleans and plain numbers are unannotated."""
        entity = _entity(
            Name=(EdmType.STRING, "Ann"),
            Active=(EdmType.BOOLEAN, True),
            Age=(EdmType.INT32, 30),
            Score=(EdmType.DOUBLE, 1.5),
        )
        wire = json.loads(entity_codec.encode_entity(entity))
        assert wire == {"Name": "Ann", "Active": True, "Age": 30, "Score": 1.5}

    def test_annotated_types(self, entity_codec):
        """Test that Binary, Int64, DateTime and Guid always carry a type."""
        entity = _entity(
            Data=(EdmType.BINARY, b"\x00\x01\xff"),
            Big=(EdmType.INT64, 1),
            When=(EdmType.DATETIME, datetime(2020, 1, 1, tzinfo=timezone.utc)),
            Id=(EdmType.GUID, uuid.UUID("c9da6455-213d-42c9-9a79-3e9149a57833")),
        )
        wire = json.loads(entity_codec.encode_entity(entity))
        assert wire == {
            "Data": "AAH/",
            "Data@odata.type": "Edm.Binary",
            "Big": "1",
            "Big@odata.type": "Edm.Int64",
            "When": "2020-01-01T00:00:00.0000000Z",
            "When@odata.type": "Edm.DateTime",
            "Id": "c9da6455-213d-42c9-9a79-3e9149a57833",
            "Id@odata.type": "Edm.Guid",
        }

    def test_annotation_follows_its_property(self, entity_codec):
        """Test key order: each annotation comes right after its value."""
        entity = _entity(
            A=(EdmType.STRING, "a"),
            B=(EdmType.INT64, 2),
            C=(EdmType.INT32, 3),
        )
        wire = json.loads(entity_codec.encode_entity(entity))
        assert list(wire) == ["A", "B", "B@odata.type", "C"]

    def test_null_values_have_no_annotation(self, entity_codec):
        """Test that nulls are never annotated, whatever their type."""
        entity = _entity(
            Big=(EdmType.INT64, None),
            When=(EdmType.DATETIME, None),
            Untyped=(None, None),
        )
        wire = json.loads(entity_codec.encode_entity(entity))
        assert wire == {"Big": None, "When": None, "Untyped": None}

    def test_untyped_values_are_inferred(self, entity_codec):
        entity = _entity(
            Name=(None, "Ann"),
            Age=(None, 30),
            Big=(None, 2 ** 40),
            Id=(None, uuid.UUID("c9da6455-213d-42c9-9a79-3e9149a57833")),
        )
        wire = json.loads(entity_codec.encode_entity(entity))
        assert wire == {
            "Name": "Ann",
            "Age": 30,
            "Big": str(2 ** 40),
            "Big@odata.type": "Edm.Int64",
            "Id": "c9da6455-213d-42c9-9a79-3e9149a57833",
            "Id@odata.type": "Edm.Guid",
        }

    def test_non_finite_double(self, entity_codec):
        wire = json.loads(entity_codec.encode_entity(_entity(X=(EdmType.DOUBLE, math.inf))))
        assert wire == {"X": "Infinity", "X@odata.type": "Edm.Double"}

    def test_unicode_is_utf8(self, entity_codec):
        body = entity_codec.encode_entity(_entity(Name=(EdmType.STRING, "Zoë")))
        assert body == '{"Name": "Zoë"}'.encode("utf-8")

    def test_invalid_value_propagates(self, entity_codec):
        with pytest.raises(ValueConversionError):
            entity_codec.encode_entity(_entity(Age=(EdmType.INT32, "thirty")))


class TestDecodeEntity:
    """Tests for single entity decoding."""

    def test_typed_properties(self, entity_codec):
        body = json.dumps({
            "PartitionKey": "pk",
            "RowKey": "rk",
            "Big": "9223372036854775807",
            "Big@odata.type": "Edm.Int64",
            "Data": "AAH/",
            "Data@odata.type": "Edm.Binary",
        })
        entity = entity_codec.decode_entity(body)

        assert entity.partition_key == "pk"
        assert entity.row_key == "rk"
        assert entity.get_property("Big") == Property(edm_type=EdmType.INT64, value=2 ** 63 - 1)
        assert entity.get_property("Data") == Property(edm_type=EdmType.BINARY, value=b"\x00\x01\xff")
        assert [name for name, _ in entity] == ["PartitionKey", "RowKey", "Big", "Data"]

    def test_annotation_wins_over_inference(self, entity_codec):
        """Test that an annotated number is not inferred as Int32."""
        entity = entity_codec.decode_entity('{"X": 5, "X@odata.type": "Edm.Double"}')
        assert entity.get_property("X") == Property(edm_type=EdmType.DOUBLE, value=5.0)

    def test_annotation_before_its_property(self, entity_codec):
        entity = entity_codec.decode_entity('{"X@odata.type": "Edm.Int64", "X": "7"}')
        assert entity.get_property("X") == Property(edm_type=EdmType.INT64, value=7)
        assert len(entity) == 1

    def test_metadata_filtering(self, entity_codec):
        """Test that metadata keys never become properties."""
        body = json.dumps({
            "odata.etag": 'W/"1"',
            "odata.foo": "bar",
            "X@odata.type": "Edm.Int64",
            "X": "12",
        })
        entity = entity_codec.decode_entity(body)
        assert entity.properties == {"X": Property(edm_type=EdmType.INT64, value=12)}
        assert entity.etag == 'W/"1"'

    def test_hint_without_property(self, entity_codec):
        """Test that a type annotation with no matching property is skipped."""
        entity = entity_codec.decode_entity('{"Y@odata.type": "Edm.Int64", "X": "a"}')
        assert entity.properties == {"X": Property(edm_type=EdmType.STRING, value="a")}

    def test_number_is_inferred_numeric(self, entity_codec):
        entity = entity_codec.decode_entity('{"X": 42}')
        assert entity.get_property("X") == Property(edm_type=EdmType.INT32, value=42)

    def test_string_is_inferred_string(self, entity_codec):
        entity = entity_codec.decode_entity('{"X": "hello"}')
        assert entity.get_property("X") == Property(edm_type=EdmType.STRING, value="hello")

    def test_other_inference(self, entity_codec):
        entity = entity_codec.decode_entity('{"F": 1.5, "B": false, "L": 4294967296}')
        assert entity.get_property("F").edm_type == EdmType.DOUBLE
        assert entity.get_property("B") == Property(edm_type=EdmType.BOOLEAN, value=False)
        assert entity.get_property("L") == Property(edm_type=EdmType.INT64, value=4294967296)

    def test_null_is_inferred_string(self, entity_codec):
        entity = entity_codec.decode_entity('{"X": null}')
        assert entity.get_property("X") == Property(edm_type=EdmType.STRING, value=None)

    def test_timestamp(self, entity_codec):
        entity = entity_codec.decode_entity('{"Timestamp": "2020-01-01T00:00:00Z", "A": 1}')

        ts = datetime(2020, 1, 1, tzinfo=timezone.utc)
        assert entity.get_property("Timestamp") == Property(edm_type=EdmType.DATETIME, value=ts)
        assert entity.timestamp == ts
        assert [name for name, _ in entity] == ["Timestamp", "A"]

    def test_etag_derived_from_timestamp(self, entity_codec):
        entity = entity_codec.decode_entity('{"Timestamp": "2020-01-01T00:00:00Z"}')
        assert entity.etag == "W/\"datetime'5e0be100'\""

    def test_etag_prefers_odata_etag(self, entity_codec):
        body = json.dumps({
            "odata.etag": "W/\"datetime'2020-01-01T00%3A00%3A00.0000000Z'\"",
            "Timestamp": "2020-01-01T00:00:00.0000000Z",
        })
        entity = entity_codec.decode_entity(body)
        assert entity.etag == "W/\"datetime'2020-01-01T00%3A00%3A00.0000000Z'\""

    def test_etag_fallback_is_empty_string(self, entity_codec):
        entity = entity_codec.decode_entity('{"A": "x"}')
        assert entity.etag == ""

    def test_etag_is_always_string(self, entity_codec):
        assert entity_codec.decode_entity('{"odata.etag": null}').etag == ""
        assert entity_codec.decode_entity('{"odata.etag": 12}').etag == "12"

    def test_unknown_annotation(self, entity_codec):
        """Test that unknown types surface with the property name."""
        with pytest.raises(UnsupportedEdmTypeError) as exc_info:
            entity_codec.decode_entity('{"X": "1", "X@odata.type": "Edm.Decimal"}')
        assert exc_info.value.edm_type == "Edm.Decimal"
        assert exc_info.value.property_name == "X"
        assert "'X'" in str(exc_info.value)

    def test_conversion_error(self, entity_codec):
        with pytest.raises(ValueConversionError) as exc_info:
            entity_codec.decode_entity('{"Age": "abc", "Age@odata.type": "Edm.Int32"}')
        assert exc_info.value.property_name == "Age"
        assert exc_info.value.value == "abc"

    def test_bad_timestamp(self, entity_codec):
        with pytest.raises(ValueConversionError) as exc_info:
            entity_codec.decode_entity('{"Timestamp": "soon"}')
        assert exc_info.value.property_name == "Timestamp"

    def test_conversion_error_is_logged(self, entity_codec, caplog):
        with caplog.at_level(logging.WARNING, logger="tablecodec.table.codec"):
            with pytest.raises(ValueConversionError):
                entity_codec.decode_entity('{"Age": "abc", "Age@odata.type": "Edm.Int32"}')
        record = caplog.records[-1]
        assert "Age" in record.getMessage()
        assert record.context["error_code"] == "ValueConversionError"

    @pytest.mark.parametrize("body", ["[]", "null", "42", "{broken"])
    def test_not_an_object(self, entity_codec, body):
        with pytest.raises(MalformedPayloadError):
            entity_codec.decode_entity(body)

    def test_injected_type_codec_errors_propagate(self):
        codec = EntityCodec(type_codec=RejectBinaryCodec())
        with pytest.raises(UnsupportedEdmTypeError) as exc_info:
            codec.decode_entity('{"Data": "AAH/", "Data@odata.type": "Edm.Binary"}')
        assert exc_info.value.property_name == "Data"

    def test_entity_from_dict(self, entity_codec):
        entity = entity_codec.entity_from_dict({"PartitionKey": "pk", "odata.etag": "e"})
        assert entity.partition_key == "pk"
        assert entity.etag == "e"


class TestRoundTrip:
    """Tests for encode followed by decode."""

    @pytest.mark.parametrize(
        "edm_type,value",
        [
            (EdmType.STRING, "hello"),
            (EdmType.STRING, ""),
            (EdmType.BOOLEAN, True),
            (EdmType.INT32, -2147483648),
            (EdmType.INT64, 2 ** 62),
            (EdmType.INT64, 5),
            (EdmType.DOUBLE, 2.0),
            (EdmType.DOUBLE, -0.25),
            (EdmType.DATETIME, datetime(2021, 6, 30, 23, 59, 59, 999999, tzinfo=timezone.utc)),
            (EdmType.DATETIME, datetime(999, 1, 1, tzinfo=timezone.utc)),
            (EdmType.GUID, uuid.UUID("c9da6455-213d-42c9-9a79-3e9149a57833")),
            (EdmType.BINARY, b"\x00binary\xff"),
            (EdmType.BINARY, b""),
        ],
    )
    def test_value_and_type_survive(self, entity_codec, edm_type, value):
        entity = _entity(P=(edm_type, value))
        decoded = entity_codec.decode_entity(entity_codec.encode_entity(entity))
        assert decoded.get_property("P") == Property(edm_type=edm_type, value=value)

    def test_null_loses_type(self, entity_codec):
        """Test that a typed null comes back as Edm.String."""
        entity = _entity(P=(EdmType.INT64, None))
        decoded = entity_codec.decode_entity(entity_codec.encode_entity(entity))
        assert decoded.get_property("P") == Property(edm_type=EdmType.STRING, value=None)


class TestDecodeEntityList:
    """Tests for entity list decoding."""

    def test_decode_list(self, entity_codec):
        body = json.dumps({
            "odata.metadata": "https://account.table.core.windows.net/$metadata#people",
            "value": [
                {"PartitionKey": "p", "RowKey": "1", "odata.etag": "e1"},
                {"PartitionKey": "p", "RowKey": "2", "Timestamp": "2020-01-01T00:00:00Z"},
            ],
        })
        entities = entity_codec.decode_entity_list(body)

        assert [e.row_key for e in entities] == ["1", "2"]
        assert entities[0].etag == "e1"
        assert entities[1].etag == "W/\"datetime'5e0be100'\""

    def test_decode_empty_list(self, entity_codec):
        assert entity_codec.decode_entity_list('{"value": []}') == []

    def test_missing_list_field(self, entity_codec):
        with pytest.raises(MalformedPayloadError) as exc_info:
            entity_codec.decode_entity_list('{"odata.metadata": "x"}')
        assert exc_info.value.field == "value"

    def test_list_field_not_a_list(self, entity_codec):
        with pytest.raises(MalformedPayloadError):
            entity_codec.decode_entity_list('{"value": {"PartitionKey": "p"}}')

    def test_entry_not_an_object(self, entity_codec):
        with pytest.raises(MalformedPayloadError):
            entity_codec.decode_entity_list('{"value": [{"A": 1}, 2]}')

    def test_failing_entry_fails_the_list(self, entity_codec):
        body = '{"value": [{"A": 1}, {"A": "x", "A@odata.type": "Edm.Guid"}]}'
        with pytest.raises(ValueConversionError):
            entity_codec.decode_entity_list(body)

    def test_custom_collection_field(self):
        codec = EntityCodec(collection_field="items")
        assert len(codec.decode_entity_list('{"items": [{"A": 1}]}')) == 1


class TestHelpers:
    """Tests for module helpers and the combined reader/writer."""

    @pytest.mark.parametrize(
        "key,expected",
        [
            ("Timestamp", True),
            ("odata.etag", True),
            ("odata.metadata", True),
            ("X@odata.type", True),
            ("@odata.type", True),
            ("X", False),
            ("odata", False),
            ("myodata.x", False),
            ("Timestamps", False),
        ],
    )
    def test_is_metadata_key(self, key, expected):
        assert is_metadata_key(key) is expected

    def test_etag_from_timestamp(self):
        assert etag_from_timestamp(datetime(1970, 1, 1, 0, 0, 16, tzinfo=timezone.utc)) == (
            "W/\"datetime'10'\""
        )

    def test_etag_from_timestamp_before_epoch(self):
        """Test that negative Unix times use the unsigned 64-bit form."""
        assert etag_from_timestamp(datetime(1969, 12, 31, 23, 59, 59, tzinfo=timezone.utc)) == (
            "W/\"datetime'ffffffffffffffff'\""
        )

    def test_reader_writer(self):
        codec = JsonODataReaderWriter(collection_field="value")
        assert isinstance(codec, ODataReaderWriter)
        assert codec.decode_table(codec.encode_table("t")) == "t"
        entity = codec.decode_entity(codec.encode_entity(_entity(A=(EdmType.INT64, 1))))
        assert entity.get_property_value("A") == 1
        assert codec.decode_table_list('{"value": [{"TableName": "t"}]}') == ["t"]
