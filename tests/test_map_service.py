"""Tests for MapService using an in-memory provider."""

import asyncio
from collections import Counter

import pytest

from ingressintel.core.exceptions import (
    MalformedResponseError,
    PersistentAuthFailureError,
)
from ingressintel.core.interfaces import IntelProvider
from ingressintel.core.tile_key import TileKey
from ingressintel.services.map_service import MapService

PORTAL_RECORD = [
    "p", "E", 45500000, 12400000, 7, 92, 8,
    "https://lh3.googleusercontent.com/x", "Fontana",
    [], False, False, None, 1700000000000,
    [["agent1", "Portal Shield", "RARE", {"MITIGATION": "40"}], None, None, None],
    [["agent1", 8, 6000], None, ["agent2", 7, 5000]],
    "agent1", [],
]

PORTAL_ENTITY = [
    "portal.16",
    1700000000000,
    ["p", "E", 45500000, 12400000, 7, 92, 8, "img", "Fontana", [], False, False, None],
]
LINK_ENTITY = [
    "link.9",
    1700000000001,
    ["e", "R", "a.16", 45500000, 12400000, "b.16", 45510000, 12410000],
]


class FakeProvider(IntelProvider):
    """Serves canned entities per tile.

    Args:
        entities: Map of tile key to the raw entities in it.
        failing: Tiles that always answer ``{"error": "TIMEOUT"}``.
        flaky: Map of tile key to how many times it fails before answering.
        error: Exception raised by every ``get_entities`` call.
    """

    def __init__(self, entities=None, failing=(), flaky=None, error=None, portal=None):
        self.entities = entities or {}
        self.failing = set(failing)
        self.flaky = dict(flaky or {})
        self.error = error
        self.portal = PORTAL_RECORD if portal is None else portal
        self.requested: list[list[str]] = []

    async def get_portal_details(self, portal_id):
        return {"result": self.portal}

    async def get_entities(self, tile_keys):
        self.requested.append(list(tile_keys))
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        tile_map = {}
        for key in tile_keys:
            if key in self.failing:
                tile_map[key] = {"error": "TIMEOUT"}
            elif self.flaky.get(key, 0) > 0:
                self.flaky[key] -= 1
                tile_map[key] = {"error": "TIMEOUT"}
            else:
                tile_map[key] = {"gameEntities": self.entities.get(key, [])}
        return {"result": {"map": tile_map}}

    def request_counts(self) -> Counter:
        return Counter(key for batch in self.requested for key in batch)


CORNER_A = (45.5, 12.4)
CORNER_B = (45.47, 12.45)


@pytest.fixture()
def area():
    return [str(t) for t in TileKey.range(CORNER_A, CORNER_B)]


# ---------------------------------------------------------------------------
# get_portal
# ---------------------------------------------------------------------------


class TestGetPortal:
    @pytest.mark.asyncio
    async def test_parses_record(self):
        portal = await MapService(FakeProvider()).get_portal("abc.16")

        assert portal.guid == "abc.16"
        assert portal.name == "Fontana"
        assert portal.team == "E"
        assert portal.latitude == pytest.approx(45.5)
        assert portal.longitude == pytest.approx(12.4)
        assert (portal.level, portal.health, portal.resonator_count) == (7, 92, 8)
        assert portal.owner == "agent1"
        assert portal.timestamp == 1700000000000
        assert portal.mods[0].name == "Portal Shield"
        assert portal.mods[0].stats == {"MITIGATION": "40"}
        assert portal.mods[1] is None
        assert portal.resonators[1] is None
        assert portal.resonators[2].energy == 5000

    @pytest.mark.asyncio
    async def test_short_record(self):
        service = MapService(FakeProvider(portal=["p", "E", 1, 2]))
        with pytest.raises(MalformedResponseError):
            await service.get_portal("abc.16")


# ---------------------------------------------------------------------------
# get_entities_around
# ---------------------------------------------------------------------------


class TestGetEntitiesAround:
    @pytest.mark.asyncio
    async def test_single_call_for_nine_tiles(self):
        center = TileKey.from_coords(45.5, 12.4)
        neighbour = center + (1, 0)
        provider = FakeProvider(
            entities={
                str(center): [PORTAL_ENTITY, LINK_ENTITY],
                str(neighbour): [LINK_ENTITY],
            }
        )

        entities = await MapService(provider).get_entities_around(45.5, 12.4)

        assert len(provider.requested) == 1
        assert len(provider.requested[0]) == 9
        assert provider.requested[0][0] == str(center)
        assert sorted(e.id for e in entities) == ["link.9", "portal.16"]

        portal = next(e for e in entities if e.is_portal)
        assert portal.name == "Fontana"
        assert portal.level == 7
        assert portal.latitude == pytest.approx(45.5)

    @pytest.mark.asyncio
    async def test_unserved_tiles_are_skipped(self):
        center = TileKey.from_coords(45.5, 12.4)
        provider = FakeProvider(
            entities={str(center): [PORTAL_ENTITY]}, failing={str(center + (0, 1))}
        )

        entities = await MapService(provider).get_entities_around(45.5, 12.4)

        assert [e.id for e in entities] == ["portal.16"]

    @pytest.mark.asyncio
    async def test_missing_tile_map(self):
        class EmptyProvider(FakeProvider):
            async def get_entities(self, tile_keys):
                return {"result": {}}

        with pytest.raises(MalformedResponseError):
            await MapService(EmptyProvider()).get_entities_around(45.5, 12.4)


# ---------------------------------------------------------------------------
# get_entities_in_range
# ---------------------------------------------------------------------------


class TestGetEntitiesInRange:
    @pytest.mark.asyncio
    async def test_every_tile_once(self, area):
        provider = FakeProvider(entities={area[0]: [PORTAL_ENTITY], area[-1]: [LINK_ENTITY]})

        scan = await MapService(provider).get_entities_in_range(
            CORNER_A, CORNER_B, batch_side=2, concurrency=3
        )

        assert scan.tiles_total == len(area)
        assert scan.failed_tiles == []
        assert sorted(e.id for e in scan.entities) == ["link.9", "portal.16"]
        assert provider.request_counts() == Counter(area)
        assert all(len(batch) <= 4 for batch in provider.requested)

    @pytest.mark.asyncio
    async def test_timed_out_tiles_are_retried(self, area):
        provider = FakeProvider(entities={area[1]: [PORTAL_ENTITY]}, flaky={area[1]: 2})

        scan = await MapService(provider).get_entities_in_range(CORNER_A, CORNER_B)

        assert scan.failed_tiles == []
        assert [e.id for e in scan.entities] == ["portal.16"]
        assert provider.request_counts()[area[1]] == 3

    @pytest.mark.asyncio
    async def test_attempts_are_bounded(self, area):
        provider = FakeProvider(failing={area[0]})

        scan = await MapService(provider).get_entities_in_range(
            CORNER_A, CORNER_B, max_attempts=3
        )

        assert scan.failed_tiles == [area[0]]
        assert provider.request_counts()[area[0]] == 3

    @pytest.mark.asyncio
    async def test_failed_batches_count_as_attempts(self, area):
        provider = FakeProvider(error=MalformedResponseError("bad answer"))

        scan = await MapService(provider).get_entities_in_range(
            CORNER_A, CORNER_B, max_attempts=2
        )

        assert sorted(scan.failed_tiles) == sorted(area)
        assert scan.entities == []
        assert set(provider.request_counts().values()) == {2}

    @pytest.mark.asyncio
    async def test_unreadable_tile_is_retried(self, area):
        provider = FakeProvider(
            entities={area[0]: [["bad", 1]], area[1]: [PORTAL_ENTITY]}
        )

        scan = await MapService(provider).get_entities_in_range(
            CORNER_A, CORNER_B, max_attempts=2
        )

        assert scan.failed_tiles == [area[0]]
        assert [e.id for e in scan.entities] == ["portal.16"]
        assert provider.request_counts()[area[0]] == 2
        assert provider.request_counts()[area[1]] == 1

    @pytest.mark.asyncio
    async def test_auth_failure_aborts_scan(self):
        provider = FakeProvider(error=PersistentAuthFailureError("rejected"))

        with pytest.raises(PersistentAuthFailureError):
            await MapService(provider).get_entities_in_range(
                CORNER_A, CORNER_B, concurrency=4
            )

        current = asyncio.current_task()
        assert [t for t in asyncio.all_tasks() if t is not current] == []
