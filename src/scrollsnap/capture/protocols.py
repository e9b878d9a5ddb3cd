from __future__ import annotations

from typing import List, Protocol, runtime_checkable

from ..schemas import Display, Region
from ..stitch import Frame


@runtime_checkable
class ScreenCapture(Protocol):
    """Pixel source for a session.

    Implementations holding per-thread resources may also define a
    ``release()`` method; the scheduler calls it from the grabbing thread
    when a session ends.
    """

    def enumerate_displays(self) -> List[Display]: ...

    def capture_region(self, region: Region) -> Frame: ...


@runtime_checkable
class WindowVisibility(Protocol):
    def show(self) -> None: ...

    def hide(self) -> None: ...

    def set_click_through(self, enabled: bool) -> None: ...
