"""Service layer that wraps an IntelProvider for map operations."""

import asyncio
import logging
from enum import Enum
from typing import Any

from ingressintel.core.exceptions import (
    MalformedResponseError,
    NetworkError,
    ProviderError,
)
from ingressintel.core.interfaces import IntelProvider
from ingressintel.core.models import Entity, Mod, Portal, RangeScan, Resonator
from ingressintel.core.tile_key import TileKey

logger = logging.getLogger(__name__)


class TileState(str, Enum):
    """Progress of a tile during a range scan."""

    FREE = "free"
    BUSY = "busy"
    DONE = "done"


class MapService:
    """Provides map-level operations on top of the raw Intel endpoints.

    Delegates all API calls to the injected provider and turns Intel's
    positional JSON arrays into domain models.
    """

    def __init__(self, provider: IntelProvider):
        """Initialise the service.

        Args:
            provider: A concrete implementation of :class:`IntelProvider`.
        """
        self.provider = provider

    async def get_portal(self, portal_id: str) -> Portal:
        """Return the details of a portal.

        Args:
            portal_id: The portal GUID.

        Returns:
            A :class:`Portal` domain model instance.

        Raises:
            MalformedResponseError: If the answer is not a portal record.
        """
        payload = await self.provider.get_portal_details(portal_id)
        return _parse_portal(portal_id, payload.get("result"))

    async def get_entities_around(
        self, latitude: float, longitude: float, zoom: int | None = None
    ) -> list[Entity]:
        """Return entities in the tile containing a point and its neighbours.

        All nine tiles are requested in a single call.  Tiles Intel refuses
        to answer are skipped.

        Args:
            latitude: Latitude in degrees.
            longitude: Longitude in degrees.
            zoom: Intel zoom level; defaults to 15.

        Returns:
            Entities de-duplicated by id.
        """
        tiles = TileKey.from_coords(latitude, longitude, zoom).around()
        payload = await self.provider.get_entities([str(t) for t in tiles])
        entities: dict[str, Entity] = {}
        for key, result in _tile_map(payload).items():
            found = _parse_tile(result)
            if found is None:
                logger.info("tile %s not served: %s", key, result.get("error"))
                continue
            for entity in found:
                entities.setdefault(entity.id, entity)
        return list(entities.values())

    async def get_entities_in_range(
        self,
        corner_a: tuple[float, float],
        corner_b: tuple[float, float],
        zoom: int | None = None,
        batch_side: int = 5,
        concurrency: int = 4,
        max_attempts: int = 3,
    ) -> RangeScan:
        """Return every entity in the rectangle spanned by two points.

        Tiles are handed out to ``concurrency`` workers in square batches of
        ``batch_side`` × ``batch_side``.  Intel often answers part of a batch
        with ``{"error": "TIMEOUT"}``; those tiles are put back and requested
        again, at most ``max_attempts`` times each.

        Args:
            corner_a: ``(latitude, longitude)`` of one corner.
            corner_b: ``(latitude, longitude)`` of the opposite corner.
            zoom: Intel zoom level; defaults to 15.
            batch_side: Edge length of the tile block sent per request.
            concurrency: Number of requests in flight at once.
            max_attempts: Requests per tile before it is given up.

        Returns:
            A :class:`RangeScan` with the entities found and the tiles that
            were never served.

        Raises:
            AuthError: If the session cannot be authenticated.  The scan is
                aborted.
        """
        tiles = {tile: TileState.FREE for tile in TileKey.range(corner_a, corner_b, zoom)}
        attempts = dict.fromkeys(tiles, 0)
        scan = RangeScan(tiles_total=len(tiles))
        entities: dict[str, Entity] = {}
        lock = asyncio.Lock()

        async def claim() -> list[TileKey]:
            async with lock:
                first = next(
                    (t for t, s in tiles.items() if s is TileState.FREE), None
                )
                if first is None:
                    return []
                batch = [
                    t
                    for t in first.square(max(batch_side, 1))
                    if tiles.get(t) is TileState.FREE
                ]
                for tile in batch:
                    tiles[tile] = TileState.BUSY
                    attempts[tile] += 1
                return batch

        def release(tile: TileKey) -> None:
            if attempts[tile] >= max_attempts:
                tiles[tile] = TileState.DONE
                scan.failed_tiles.append(str(tile))
            else:
                tiles[tile] = TileState.FREE

        async def worker() -> None:
            while batch := await claim():
                try:
                    payload = await self.provider.get_entities([str(t) for t in batch])
                    served = _tile_map(payload)
                except (MalformedResponseError, NetworkError, ProviderError) as e:
                    logger.warning("batch of %d tiles failed: %s", len(batch), e)
                    served = {}

                async with lock:
                    for tile in batch:
                        try:
                            found = _parse_tile(served.get(str(tile), {}))
                        except MalformedResponseError as e:
                            logger.warning("tile %s unreadable: %s", tile, e)
                            found = None
                        if found is None:
                            release(tile)
                            continue
                        tiles[tile] = TileState.DONE
                        for entity in found:
                            entities.setdefault(entity.id, entity)

                    counts = _count(tiles)
                    logger.debug(
                        "%d free, %d busy, %d done",
                        counts[TileState.FREE],
                        counts[TileState.BUSY],
                        counts[TileState.DONE],
                    )

        workers = [asyncio.create_task(worker()) for _ in range(max(concurrency, 1))]
        try:
            await asyncio.gather(*workers)
        except BaseException:
            for task in workers:
                task.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            raise

        scan.entities = list(entities.values())
        return scan


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _count(tiles: dict[TileKey, TileState]) -> dict[TileState, int]:
    counts = dict.fromkeys(TileState, 0)
    for state in tiles.values():
        counts[state] += 1
    return counts


def _e6(value: Any) -> float | None:
    if isinstance(value, (int, float)):
        return value / 1_000_000
    return None


def _tile_map(payload: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """Return the per-tile results of a ``getEntities`` answer."""
    result = payload.get("result")
    tile_map = result.get("map") if isinstance(result, dict) else None
    if not isinstance(tile_map, dict):
        raise MalformedResponseError("getEntities answer has no tile map")
    return {k: v for k, v in tile_map.items() if isinstance(v, dict)}


def _parse_tile(result: dict[str, Any]) -> list[Entity] | None:
    """Return the entities of one tile, or ``None`` if it was not served."""
    raw_entities = result.get("gameEntities")
    if raw_entities is None:
        return None
    if not isinstance(raw_entities, list):
        raise MalformedResponseError(f"invalid gameEntities: {raw_entities!r}")
    return [_parse_entity(raw) for raw in raw_entities]


def _parse_entity(raw: Any) -> Entity:
    """Build an :class:`Entity` from ``[guid, timestamp, data]``."""
    try:
        guid, timestamp, data = raw
        kind = data[0]
    except (TypeError, ValueError, IndexError) as e:
        raise MalformedResponseError(f"invalid game entity: {raw!r}") from e

    entity = Entity(id=guid, timestamp=timestamp, kind=kind)
    if len(data) > 1:
        entity.team = data[1]
    if entity.is_portal and len(data) > 8:
        entity.latitude = _e6(data[2])
        entity.longitude = _e6(data[3])
        entity.level = data[4]
        entity.name = data[8]
    return entity


def _parse_portal(guid: str, raw: Any) -> Portal:
    """Build a :class:`Portal` from the positional ``getPortalDetails`` record.

    Layout: type, team, latE6, lngE6, level, health, resonator count, image,
    title, ornaments, mission, mission50plus, artifact brief, timestamp,
    mods, resonators, owner, artifact detail.
    """
    if not isinstance(raw, list) or len(raw) < 17:
        raise MalformedResponseError(f"invalid portal record for {guid}")
    try:
        return Portal(
            guid=guid,
            name=raw[8],
            team=raw[1],
            latitude=_e6(raw[2]),
            longitude=_e6(raw[3]),
            level=int(raw[4]),
            health=int(raw[5]),
            resonator_count=int(raw[6]),
            image_url=raw[7] or None,
            owner=raw[16] or None,
            timestamp=raw[13],
            mods=[_parse_mod(m) for m in raw[14] or []],
            resonators=[_parse_resonator(r) for r in raw[15] or []],
        )
    except (TypeError, ValueError, IndexError) as e:
        raise MalformedResponseError(f"invalid portal record for {guid}: {e}") from e


def _parse_mod(raw: Any) -> Mod | None:
    if raw is None:
        return None
    owner, name, rarity, stats = raw
    return Mod(owner=owner, name=name, rarity=rarity, stats=dict(stats or {}))


def _parse_resonator(raw: Any) -> Resonator | None:
    if raw is None:
        return None
    owner, level, energy = raw
    return Resonator(owner=owner, level=int(level), energy=int(energy))
