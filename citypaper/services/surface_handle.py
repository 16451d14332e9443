"""Host container that a tile engine renders into.

Plays the role a DOM element plays for a browser map library: it has a
logical size, may be mounted or detached, notifies observers when its box
changes, and dispatches pointer clicks to listeners.
"""

import logging
from typing import Callable, Optional

logger = logging.getLogger(__name__)

ResizeObserver = Callable[[tuple[int, int]], None]
ClickListener = Callable[[float, float], None]


class SurfaceHandle:
    """A mountable, resizable box in logical pixels."""

    def __init__(self, width: int, height: int, mounted: bool = True):
        self._width = int(width)
        self._height = int(height)
        self.mounted = mounted
        self._resize_observers: list[ResizeObserver] = []
        self._click_listeners: list[ClickListener] = []
        self.bound_map: Optional[object] = None

    @property
    def size(self) -> tuple[int, int]:
        return (self._width, self._height)

    @property
    def has_area(self) -> bool:
        return self._width > 0 and self._height > 0

    def resize(self, width: int, height: int) -> None:
        """Change the box size and notify resize observers."""
        new_size = (int(width), int(height))
        if new_size == self.size:
            return
        self._width, self._height = new_size
        logger.debug("Surface resized to %dx%d", *new_size)
        for observer in list(self._resize_observers):
            observer(new_size)

    def observe_resize(self, observer: ResizeObserver) -> Callable[[], None]:
        """Register a resize observer. Returns a function that unregisters it."""
        self._resize_observers.append(observer)

        def unobserve() -> None:
            try:
                self._resize_observers.remove(observer)
            except ValueError:
                pass

        return unobserve

    @property
    def resize_observer_count(self) -> int:
        return len(self._resize_observers)

    def add_click_listener(self, listener: ClickListener) -> None:
        self._click_listeners.append(listener)

    def remove_click_listener(self, listener: ClickListener) -> None:
        try:
            self._click_listeners.remove(listener)
        except ValueError:
            pass

    def click(self, x: float, y: float) -> None:
        """Dispatch a click at container point (x, y)."""
        for listener in list(self._click_listeners):
            listener(x, y)

    def mount(self) -> None:
        self.mounted = True

    def unmount(self) -> None:
        self.mounted = False
