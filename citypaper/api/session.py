"""The render surface shared by API requests."""

import logging
from typing import Callable, Optional

from ..config import get_config
from ..services.surface import RenderSurface, create_surface

logger = logging.getLogger(__name__)


class SurfaceSession:
    """Holds one open RenderSurface for the application.

    A surface with a terminal engine error is closed and replaced by a new
    one on the next request.
    """

    def __init__(self, factory: Optional[Callable[[], RenderSurface]] = None):
        self.factory = factory or (lambda: create_surface(get_config()))
        self._surface: Optional[RenderSurface] = None

    @property
    def surface(self) -> Optional[RenderSurface]:
        return self._surface

    async def get(self) -> RenderSurface:
        """Return the open surface, creating (or replacing) it as needed.

        Raises:
            EngineError: a new surface could not be opened
        """
        if self._surface is not None and self._surface.error is not None:
            logger.warning("Replacing broken render surface: %s", self._surface.error)
            await self.close()
        if self._surface is None:
            surface = self.factory()
            self._surface = surface
            await surface.open()
        return self._surface

    async def close(self) -> None:
        if self._surface is not None:
            surface, self._surface = self._surface, None
            await surface.close()


# Global surface session
surface_session = SurfaceSession()
