"""Intel map tile keys.

Intel splits the map into Web-Mercator tiles whose density depends on the
zoom level.  A tile is addressed by a key of the form
``zoom_x_y_minLevel_maxLevel_health``, e.g. ``"15_17102_11448_0_8_100"``.
"""

import math
from collections.abc import Iterator
from dataclasses import dataclass, replace

DEFAULT_ZOOM = 15

_TILES_PER_EDGE = (
    1, 1, 1, 40, 40, 80, 80, 320, 1000, 2000, 2000, 4000, 8000, 16000, 16000, 32000,
)


def tiles_per_edge(zoom: int) -> int:
    """Return the number of tiles along one edge at ``zoom`` (clamped 3..15)."""
    return _TILES_PER_EDGE[min(max(zoom, 3), 15)]


def lat2tile(latitude: float, per_edge: float) -> int:
    rad = latitude * math.pi / 180
    return math.floor(
        (1 - math.log(math.tan(rad) + 1 / math.cos(rad)) / math.pi) / 2 * per_edge
    )


def lng2tile(longitude: float, per_edge: float) -> int:
    return math.floor((longitude + 180) / 360 * per_edge)


def tile2lat(y: int, per_edge: float) -> float:
    """Latitude of the north edge of tile row ``y``."""
    n = math.pi - 2 * math.pi * y / per_edge
    return 180 / math.pi * math.atan(0.5 * (math.exp(n) - math.exp(-n)))


def tile2lng(x: int, per_edge: float) -> float:
    """Longitude of the west edge of tile column ``x``."""
    return x / per_edge * 360 - 180


@dataclass(frozen=True)
class TileKey:
    """A single map tile plus the portal filters sent along with it."""

    zoom: int
    x: int
    y: int
    min_level: int = 0
    max_level: int = 8
    health: int = 100

    @classmethod
    def from_coords(
        cls,
        latitude: float,
        longitude: float,
        zoom: int | None = None,
        min_level: int = 0,
        max_level: int = 8,
        health: int = 100,
    ) -> "TileKey":
        """Return the tile containing a point.

        Args:
            latitude: Latitude in degrees.
            longitude: Longitude in degrees.
            zoom: Intel zoom level; defaults to :data:`DEFAULT_ZOOM`.
            min_level: Lowest portal level to request.
            max_level: Highest portal level to request.
            health: Portal health filter, in percent.
        """
        zoom = DEFAULT_ZOOM if zoom is None else zoom
        per_edge = tiles_per_edge(zoom)
        return cls(
            zoom=zoom,
            x=lng2tile(longitude, per_edge),
            y=lat2tile(latitude, per_edge),
            min_level=min_level,
            max_level=max_level,
            health=health,
        )

    @classmethod
    def range(
        cls,
        corner_a: tuple[float, float],
        corner_b: tuple[float, float],
        zoom: int | None = None,
        min_level: int = 0,
        max_level: int = 8,
        health: int = 100,
    ) -> list["TileKey"]:
        """Return every tile of the rectangle spanned by two points.

        Args:
            corner_a: ``(latitude, longitude)`` of one corner.
            corner_b: ``(latitude, longitude)`` of the opposite corner.
            zoom: Intel zoom level; defaults to :data:`DEFAULT_ZOOM`.

        Returns:
            Tiles ordered by column, then row.
        """
        a = cls.from_coords(*corner_a, zoom, min_level, max_level, health)
        b = cls.from_coords(*corner_b, zoom, min_level, max_level, health)
        return [
            replace(a, x=x, y=y)
            for x in range(min(a.x, b.x), max(a.x, b.x) + 1)
            for y in range(min(a.y, b.y), max(a.y, b.y) + 1)
        ]

    @classmethod
    def parse(cls, key: str) -> "TileKey":
        """Parse a tile key string.

        Raises:
            ValueError: If ``key`` does not have six integer fields.
        """
        parts = key.split("_")
        if len(parts) != 6:
            raise ValueError(f"invalid tile key: {key!r}")
        zoom, x, y, min_level, max_level, health = (int(p) for p in parts)
        return cls(zoom, x, y, min_level, max_level, health)

    def around(self) -> list["TileKey"]:
        """Return this tile followed by its eight neighbours."""
        return [self] + [
            self + (dx, dy)
            for dx in (-1, 0, 1)
            for dy in (-1, 0, 1)
            if (dx, dy) != (0, 0)
        ]

    def square(self, size: int) -> Iterator["TileKey"]:
        """Yield the ``size`` × ``size`` block whose first tile is this one."""
        for dx in range(size):
            for dy in range(size):
                yield self + (dx, dy)

    @property
    def latitude(self) -> float:
        return tile2lat(self.y, tiles_per_edge(self.zoom))

    @property
    def longitude(self) -> float:
        return tile2lng(self.x, tiles_per_edge(self.zoom))

    def __add__(self, offset: tuple[int, int]) -> "TileKey":
        dx, dy = offset
        return replace(self, x=self.x + dx, y=self.y + dy)

    def __str__(self) -> str:
        return (
            f"{self.zoom}_{self.x}_{self.y}_"
            f"{self.min_level}_{self.max_level}_{self.health}"
        )
