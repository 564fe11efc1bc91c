# Overview: Pytest coverage for inventory locations and default-location rules.

import pytest

from opscore.models import InventoryLocation
from opscore.services import inventory_service, location_service
from opscore.services.errors import NotFoundError, PreconditionError, ValidationError


class TestCreateLocation:

    def test_code_normalized(self, db_session, scope_a):
        location = location_service.create_location(scope_a, code=" back-room ", name="Back Room")
        assert location.code == "BACK-ROOM"
        assert location.status == "ACTIVE"
        assert location.is_default is False

    def test_duplicate_code_rejected(self, db_session, scope_a, main_location):
        with pytest.raises(ValidationError):
            location_service.create_location(scope_a, code="main", name="Another Main")

    def test_new_default_clears_previous(self, db_session, scope_a, main_location):
        new_default = location_service.create_location(scope_a, code="DC2", name="Second DC", is_default=True)

        assert location_service.get_default_location(scope_a).id == new_default.id
        assert location_service.get_location(scope_a, main_location.id).is_default is False

    def test_inactive_default_rejected(self, db_session, scope_a):
        with pytest.raises(ValidationError):
            location_service.create_location(
                scope_a, code="OLD", name="Old Site", is_default=True, status="INACTIVE",
            )

    def test_invalid_status_rejected(self, db_session, scope_a):
        with pytest.raises(ValidationError):
            location_service.create_location(scope_a, code="X", name="X", status="CLOSED")

    @pytest.mark.parametrize("fields", [
        {"code": 7, "name": "Seven"},
        {"code": "SEVEN", "name": 7},
        {"code": "SEVEN", "name": "Seven", "address": ["Dock 7"]},
    ])
    def test_non_string_fields_rejected(self, db_session, scope_a, fields):
        with pytest.raises(ValidationError):
            location_service.create_location(scope_a, **fields)


class TestUpdateLocation:

    def test_deactivating_default_clears_flag(self, db_session, scope_a, main_location):
        location = location_service.update_location(scope_a, main_location.id, status="INACTIVE")

        assert location.is_default is False
        assert location_service.get_default_location(scope_a) is None
        with pytest.raises(PreconditionError):
            location_service.require_default_location(scope_a)

    def test_promote_to_default(self, db_session, scope_a, main_location, annex_location):
        location_service.update_location(scope_a, annex_location.id, is_default=True)

        assert location_service.get_default_location(scope_a).id == annex_location.id
        assert location_service.get_location(scope_a, main_location.id).is_default is False

    def test_empty_name_rejected(self, db_session, scope_a, main_location):
        with pytest.raises(ValidationError):
            location_service.update_location(scope_a, main_location.id, name="   ")

    def test_non_string_name_rejected(self, db_session, scope_a, main_location):
        with pytest.raises(ValidationError):
            location_service.update_location(scope_a, main_location.id, name={"en": "Main"})


class TestListLocations:

    def test_default_listed_first(self, db_session, scope_a, main_location, annex_location):
        locations = location_service.list_locations(scope_a)
        assert [loc.code for loc in locations] == ["MAIN", "ANNEX"]

    def test_search_and_status_filters(self, db_session, scope_a, main_location, annex_location):
        assert [loc.code for loc in location_service.list_locations(scope_a, search="annex")] == ["ANNEX"]

        location_service.update_location(scope_a, annex_location.id, status="INACTIVE")
        assert [loc.code for loc in location_service.list_locations(scope_a, status="ACTIVE")] == ["MAIN"]


class TestResolveLineLocations:

    def test_none_maps_to_default(self, db_session, scope_a, main_location, annex_location):
        resolved = location_service.resolve_line_locations(scope_a, [None, annex_location.id, None])

        assert resolved[None].id == main_location.id
        assert resolved[annex_location.id].id == annex_location.id

    def test_explicit_only_needs_no_default(self, db_session, scope_a, annex_location):
        resolved = location_service.resolve_line_locations(scope_a, [annex_location.id])
        assert list(resolved) == [annex_location.id]


class TestDeleteLocation:

    def test_empty_location_deleted(self, db_session, scope_a, annex_location):
        location_service.delete_location(scope_a, annex_location.id)

        assert db_session.get(InventoryLocation, annex_location.id) is None

    def test_location_with_stock_kept(self, db_session, scope_a, item_a, annex_location):
        inventory_service.adjust_stock(scope_a, item_id=item_a.id, location_id=annex_location.id, delta=2, reason=None)

        with pytest.raises(PreconditionError):
            location_service.delete_location(scope_a, annex_location.id)

        assert db_session.get(InventoryLocation, annex_location.id) is not None

    def test_emptied_location_with_history_kept(self, db_session, scope_a, item_a, annex_location):
        inventory_service.adjust_stock(scope_a, item_id=item_a.id, location_id=annex_location.id, delta=2, reason=None)
        inventory_service.adjust_stock(scope_a, item_id=item_a.id, location_id=annex_location.id, delta=-2, reason=None)

        with pytest.raises(PreconditionError):
            location_service.delete_location(scope_a, annex_location.id)

    def test_other_tenant_location_not_found(self, db_session, scope_b, annex_location):
        with pytest.raises(NotFoundError):
            location_service.delete_location(scope_b, annex_location.id)
