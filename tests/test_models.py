"""Unit tests for core domain models."""

from ingressintel.core.models import Entity, Portal, RangeScan


class TestEntity:
    def test_portal(self):
        entity = Entity(id="abc.16", timestamp=1, kind="p", team="E")
        assert entity.is_portal

    def test_link_has_no_position(self):
        entity = Entity(id="abc.9", timestamp=1, kind="e", team="R")
        assert not entity.is_portal
        assert entity.latitude is None
        assert entity.name is None


class TestPortal:
    def test_optional_fields_default(self):
        portal = Portal(
            guid="abc.16",
            name="Fontana",
            team="N",
            latitude=45.5,
            longitude=12.4,
            level=1,
            health=0,
            resonator_count=0,
        )
        assert portal.owner is None
        assert portal.mods == []
        assert portal.resonators == []


class TestRangeScan:
    def test_lists_are_not_shared(self):
        first = RangeScan()
        first.failed_tiles.append("15_1_1_0_8_100")
        assert RangeScan().failed_tiles == []
