"""Data model dataclasses for Intel map data."""

from dataclasses import dataclass, field


# ----------------------
# Portal
# ----------------------


@dataclass
class Mod:
    """A mod deployed on a portal."""

    owner: str
    name: str
    rarity: str
    stats: dict[str, str] = field(default_factory=dict)


@dataclass
class Resonator:
    """A resonator deployed on a portal."""

    owner: str
    level: int
    energy: int


@dataclass
class Portal:
    """Represents a portal as returned by ``getPortalDetails``."""

    guid: str
    name: str
    team: str
    """Faction code: ``"E"`` (Enlightened), ``"R"`` (Resistance), ``"M"``
    (Machina) or ``"N"`` (neutral)."""

    latitude: float
    longitude: float
    level: int
    health: int
    resonator_count: int
    image_url: str | None = None
    owner: str | None = None
    timestamp: int | None = None
    """Milliseconds since the epoch of the last change seen by Intel."""

    mods: list[Mod | None] = field(default_factory=list)
    """Mod slots in order; ``None`` marks an empty slot."""

    resonators: list[Resonator | None] = field(default_factory=list)


# ----------------------
# Map entities
# ----------------------


@dataclass
class Entity:
    """A game entity from ``getEntities``.

    Only portals carry a name, level and position in the summary returned
    by Intel; for links (``"e"``) and fields (``"r"``) those are ``None``.
    """

    id: str
    timestamp: int
    kind: str
    """``"p"`` (portal), ``"e"`` (link) or ``"r"`` (control field)."""

    team: str | None = None
    name: str | None = None
    level: int | None = None
    latitude: float | None = None
    longitude: float | None = None

    @property
    def is_portal(self) -> bool:
        return self.kind == "p"


@dataclass
class RangeScan:
    """Outcome of scanning every tile of an area."""

    entities: list[Entity] = field(default_factory=list)
    failed_tiles: list[str] = field(default_factory=list)
    """Tiles Intel still refused after the maximum number of attempts."""

    tiles_total: int = 0
