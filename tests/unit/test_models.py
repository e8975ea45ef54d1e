"""
Unit tests for record models.

Tests cover:
- Loose number coercion
- Status parsing and ordering
- Verbatim document round-trip (unknown fields, nulls, nesting)
- Record id validation
"""

import pytest

from backend.rfe_server.errors import InvalidError
from backend.rfe_server.models import (
    Actuals,
    Customer,
    Estimate,
    EstimateStatus,
    InventoryItem,
    MaterialLine,
    to_number,
)


class TestToNumber:
    """Tests for to_number coercion."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            (5, 5),
            (2.5, 2.5),
            ("3", 3),
            ("1.25", 1.25),
            (4.0, 4),
            (None, 0),
            ("", 0),
            ("abc", 0),
            ([], 0),
            ({}, 0),
            (float("nan"), 0),
            (float("inf"), 0),
            (True, 1),
            (False, 0),
        ],
    )
    def test_coercion(self, value, expected):
        result = to_number(value)
        assert result == expected
        assert type(result) is type(expected)


class TestEstimateStatus:
    """Tests for lifecycle status."""

    def test_order(self):
        assert [s.rank for s in EstimateStatus] == [0, 1, 2, 3]

    def test_parse_known(self):
        assert EstimateStatus.parse("In Progress") is EstimateStatus.IN_PROGRESS

    def test_parse_unknown_is_draft(self):
        assert EstimateStatus.parse("Quoted") is EstimateStatus.DRAFT
        assert EstimateStatus.parse(None) is EstimateStatus.DRAFT


class TestDocumentRoundTrip:
    """Documents survive from_dict/to_dict unchanged."""

    def test_unknown_fields_preserved(self):
        doc = {"id": "c1", "name": "Bob", "loyaltyTier": "gold", "meta": {"a": [1, 2]}}

        assert Customer.from_dict(doc).to_dict() == doc

    def test_explicit_nulls_preserved(self):
        doc = {"id": "c1", "name": None, "phone": None}

        assert Customer.from_dict(doc).to_dict() == doc

    def test_nested_estimate_round_trip(self):
        doc = {
            "id": "e1",
            "customer": {"id": "c1", "name": "Bob"},
            "status": "Draft",
            "totalValue": 5000,
            "actuals": {
                "openCellSets": 1,
                "inventory": [{"id": "i1", "quantity": 2, "custom": True}, "stray"],
                "crewNotes": "ok",
            },
            "expenses": {"manHours": 8, "laborRate": None},
            "quoteLines": [{"sku": "x"}],
        }

        estimate = Estimate.from_dict(doc)
        assert isinstance(estimate.actuals, Actuals)
        assert isinstance(estimate.actuals.inventory[0], MaterialLine)
        assert estimate.actuals.inventory[1] == "stray"
        assert estimate.to_dict() == doc

    def test_non_object_nested_value_kept_as_is(self):
        doc = {"id": "e1", "actuals": "n/a"}

        estimate = Estimate.from_dict(doc)
        assert estimate.actuals == "n/a"
        assert estimate.to_dict() == doc

    def test_camel_case_mapping(self):
        item = InventoryItem.from_dict({"id": "i1", "unitCost": 3.5})

        assert item.unit_cost == 3.5
        item.unit_cost = 4
        assert item.to_dict() == {"id": "i1", "unitCost": 4}


class TestRecordValidation:
    """Tests for record id and shape checks."""

    def test_missing_id_rejected(self):
        with pytest.raises(InvalidError):
            Customer.from_dict({"name": "No id"})

    def test_empty_id_rejected(self):
        with pytest.raises(InvalidError):
            Estimate.from_dict({"id": ""})

    def test_non_object_rejected(self):
        with pytest.raises(InvalidError):
            Customer.from_dict(["c1"])

    def test_key_is_string(self):
        assert Customer.from_dict({"id": 7}).key == "7"


class TestEstimateHelpers:
    """Tests for Estimate convenience properties."""

    def test_customer_name_default(self):
        assert Estimate.from_dict({"id": "e1"}).customer_name == "Unknown"
        assert Estimate.from_dict({"id": "e1", "customer": {"name": ""}}).customer_name == "Unknown"

    def test_customer_fields(self):
        estimate = Estimate.from_dict({"id": "e1", "customer": {"id": "c1", "name": "Bob"}})

        assert estimate.customer_name == "Bob"
        assert estimate.customer_id == "c1"

    def test_lifecycle_status(self):
        assert Estimate.from_dict({"id": "e1"}).lifecycle_status is EstimateStatus.DRAFT
        assert (
            Estimate.from_dict({"id": "e1", "status": "Paid"}).lifecycle_status
            is EstimateStatus.PAID
        )

    def test_material_lines_skip_non_objects(self):
        actuals = Actuals.from_dict({"inventory": [{"id": "i1"}, 3, None]})

        assert [line.id for line in actuals.material_lines()] == ["i1"]

    @pytest.mark.parametrize("inventory", [5, True, "foam", {"id": "i1"}])
    def test_material_lines_non_list_inventory(self, inventory):
        actuals = Actuals.from_dict({"inventory": inventory})

        assert actuals.material_lines() == []
        assert actuals.to_dict() == {"inventory": inventory}
