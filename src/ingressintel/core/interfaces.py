"""Abstract interface for Intel map data providers."""

from abc import ABC, abstractmethod
from typing import Any


class IntelProvider(ABC):
    """Abstract base class for Intel map data providers.

    The service layer depends exclusively on this abstraction, so tests and
    alternative transports can stand in for the real web client.
    """

    @abstractmethod
    async def get_portal_details(self, portal_id: str) -> dict[str, Any]:
        """Return the raw ``getPortalDetails`` answer for a portal.

        Args:
            portal_id: The portal GUID, e.g. ``"a1b2….16"``.

        Returns:
            The decoded JSON body; the portal record is under ``"result"``.
        """

    @abstractmethod
    async def get_entities(self, tile_keys: list[str]) -> dict[str, Any]:
        """Return the raw ``getEntities`` answer for a set of map tiles.

        Args:
            tile_keys: Tile key strings as produced by
                :class:`~ingressintel.core.tile_key.TileKey`.

        Returns:
            The decoded JSON body; per-tile results are under
            ``["result"]["map"]``.
        """
