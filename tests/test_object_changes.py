"""Tests for typed created-object lookup."""
from __future__ import annotations

import pytest

from xbridge_chain.sui.objects import (
    ObjectTypeId,
    find_created_object_id,
    find_created_objects,
    normalize_sui_address,
)
from xbridge_core.exceptions import ObjectExtractionError

PACKAGE = "0x" + "ab" * 32
OTHER_PACKAGE = "0x" + "cd" * 32

BURN_CAP = ObjectTypeId(name="BurnCap", module="burn", package_id=PACKAGE)


def created(object_id: str, object_type: str) -> dict:
    return {"type": "created", "objectId": object_id, "objectType": object_type}


class TestObjectTypeId:

    def test_parse_strips_type_arguments(self):
        parsed = ObjectTypeId.parse(f"{PACKAGE}::burn::BurnRequest<0x2::sui::SUI>")
        assert parsed == ObjectTypeId(name="BurnRequest", module="burn", package_id=PACKAGE)

    def test_parse_pads_short_address(self):
        assert ObjectTypeId.parse("0x2::coin::Coin").package_id == normalize_sui_address("0x2")

    def test_rejects_non_struct(self):
        with pytest.raises(ValueError):
            ObjectTypeId.parse("u64")

    def test_matches_exact_type_only(self):
        """Should not match by substring of the type name."""
        assert BURN_CAP.matches(f"{PACKAGE}::burn::BurnCap")
        assert not BURN_CAP.matches(f"{PACKAGE}::burn::BurnCapV2")
        assert not BURN_CAP.matches(f"{PACKAGE}::mint::BurnCap")
        assert not BURN_CAP.matches(f"{OTHER_PACKAGE}::burn::BurnCap")

    def test_struct_tag(self):
        assert BURN_CAP.struct_tag() == f"{PACKAGE}::burn::BurnCap"
        with pytest.raises(ValueError):
            ObjectTypeId(name="BurnCap").struct_tag()


class TestFindCreatedObject:

    def test_single_match(self):
        changes = [
            {"type": "mutated", "objectId": "0xgas", "objectType": "0x2::coin::Coin<0x2::sui::SUI>"},
            created("0xcap", f"{PACKAGE}::burn::BurnCap"),
            created("0xreq", f"{PACKAGE}::burn::BurnRequest<0x2::sui::SUI>"),
        ]
        assert find_created_object_id(changes, BURN_CAP, digest="D1") == "0xcap"

    def test_ignores_mutated_objects(self):
        changes = [{"type": "mutated", "objectId": "0xcap", "objectType": f"{PACKAGE}::burn::BurnCap"}]
        assert find_created_objects(changes, BURN_CAP) == []

    def test_zero_matches_is_loud(self):
        """Should raise with the committed digest instead of returning None."""
        with pytest.raises(ObjectExtractionError) as exc_info:
            find_created_object_id([], BURN_CAP, digest="D1")

        assert exc_info.value.matches == 0
        assert exc_info.value.details["createDigest"] == "D1"

    def test_multiple_matches_is_loud(self):
        changes = [
            created("0xcap1", f"{PACKAGE}::burn::BurnCap"),
            created("0xcap2", f"{PACKAGE}::burn::BurnCap"),
        ]
        with pytest.raises(ObjectExtractionError) as exc_info:
            find_created_object_id(changes, BURN_CAP)
        assert exc_info.value.matches == 2

    def test_none_changes(self):
        with pytest.raises(ObjectExtractionError):
            find_created_object_id(None, BURN_CAP)
