"""Unit tests for schema-constrained normalization.

Tests cover:
- Parsing schema endpoint properties
- Truncation to the maximum length
- Required field checks
- Duplicate unique keys after truncation
"""

import pytest

from dhis2_seed.exceptions import (
    DuplicateKeyError,
    MissingRequiredFieldError,
    ValidationError,
)
from dhis2_seed.normalize import SchemaConstraint, normalize, truncate
from dhis2_seed.records import DataElement


_SAME_AS_NAME = object()


def _element(uid: str, name: str, short_name=_SAME_AS_NAME) -> DataElement:
    if short_name is _SAME_AS_NAME:
        short_name = name
    return DataElement(id=uid, code=uid, name=name, short_name=short_name)


@pytest.mark.unit
class TestSchemaConstraint:
    """Test schema property parsing."""

    def test_from_schema_property_with_length(self):
        constraint = SchemaConstraint.from_schema_property({
            "name": "shortName",
            "fieldName": "shortName",
            "length": 50,
            "required": True,
            "unique": True,
            "propertyType": "TEXT",
        })
        assert constraint == SchemaConstraint(
            field="shortName", max_length=50, required=True, property_type="TEXT", unique=True
        )

    def test_from_schema_property_falls_back_to_max(self):
        constraint = SchemaConstraint.from_schema_property({"name": "name", "max": 230})
        assert constraint.max_length == 230
        assert constraint.required is False
        assert constraint.unique is False

    def test_from_schema_property_without_limit(self):
        constraint = SchemaConstraint.from_schema_property({"name": "description"})
        assert constraint.max_length is None


@pytest.mark.unit
class TestTruncation:
    """Test truncation behaviour."""

    @pytest.mark.parametrize(
        "value,max_length,expected",
        [
            ("abcdef", 3, "abc"),
            ("abc", 3, "abc"),
            ("ab", 3, "ab"),
            ("abc", None, "abc"),
            (12345, 2, 12345),
            (None, 2, None),
        ],
    )
    def test_truncate(self, value, max_length, expected):
        assert truncate(value, max_length) == expected

    def test_long_fields_cut_to_exactly_max_length(self):
        """Fields over the limit end up exactly at the limit."""
        records = [_element("a", "x" * 300), _element("b", "short")]
        constraints = {"name": SchemaConstraint(field="name", max_length=230)}

        result = normalize(records, constraints)

        assert len(result[0].name) == 230
        assert result[1].name == "short"

    def test_inputs_are_not_mutated(self):
        record = _element("a", "y" * 60)
        normalize([record], {"name": SchemaConstraint(field="name", max_length=50)})
        assert len(record.name) == 60

    def test_untouched_records_pass_through(self):
        record = _element("a", "fine")
        result = normalize([record], {"name": SchemaConstraint(field="name", max_length=50)})
        assert result == [record]


@pytest.mark.unit
class TestRequiredFields:
    """Test required field validation."""

    @pytest.mark.parametrize("empty", ["", "   ", None])
    def test_empty_required_field_fails(self, empty):
        record = _element("a", "name", short_name=empty)
        constraints = {
            "short_name": SchemaConstraint(field="shortName", max_length=50, required=True)
        }
        with pytest.raises(MissingRequiredFieldError) as exc_info:
            normalize([record], constraints)
        assert "shortName" in str(exc_info.value)

    def test_optional_empty_field_passes(self):
        record = _element("a", "name", short_name="")
        result = normalize([record], {"short_name": SchemaConstraint(field="shortName")})
        assert result[0].short_name == ""


@pytest.mark.unit
class TestDuplicateKeys:
    """Test uniqueness checks."""

    def test_duplicates_after_truncation_fail(self):
        """Names that only differ past the limit collide once truncated."""
        records = [
            _element("a", "Estimated incidence, alpha"),
            _element("b", "Estimated incidence, beta"),
        ]
        constraints = {"name": SchemaConstraint(field="name", max_length=19, unique=True)}

        with pytest.raises(DuplicateKeyError) as exc_info:
            normalize(records, constraints)

        assert exc_info.value.field == "name"
        assert exc_info.value.keys == ["Estimated incidence"]

    def test_duplicate_key_error_is_validation_error(self):
        records = [_element("a", "same"), _element("b", "same")]
        with pytest.raises(ValidationError):
            normalize(records, {}, unique_fields=("name",))

    def test_unique_fields_argument_applies_without_schema_flag(self):
        records = [_element("a", "n1", "dup"), _element("b", "n2", "dup")]
        constraints = {"short_name": SchemaConstraint(field="shortName", max_length=50)}
        with pytest.raises(DuplicateKeyError) as exc_info:
            normalize(records, constraints, unique_fields=("short_name",))
        assert exc_info.value.keys == ["dup"]

    def test_non_unique_fields_may_repeat(self):
        records = [_element("a", "n1", "dup"), _element("b", "n2", "dup")]
        result = normalize(records, {"short_name": SchemaConstraint(field="shortName")})
        assert [r.short_name for r in result] == ["dup", "dup"]

    def test_distinct_truncated_values_pass(self):
        records = [_element("a", "alpha-one"), _element("b", "beta-one")]
        constraints = {"name": SchemaConstraint(field="name", max_length=5, unique=True)}
        result = normalize(records, constraints)
        assert [r.name for r in result] == ["alpha", "beta-"]
