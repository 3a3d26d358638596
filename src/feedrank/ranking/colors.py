"""
Per-run display colors for feeds.

Colors are handed out round-robin over the 256-color palette in the order
feed titles are first seen during a pass, then passed through the user's
color remap table.
"""

from typing import Dict, Mapping, Optional

PALETTE_SIZE = 256


class ColorTable:
    """
    Explicit color assignment table, scoped to a single pass.

    Not thread-safe; the orchestrator only touches it while holding its
    merge lock.

    Example:
        >>> colors = ColorTable({0: 196})
        >>> colors.color_for("Hacker News")
        196
        >>> colors.color_for("LWN.net")
        1
    """

    def __init__(self, remap: Optional[Mapping[int, int]] = None):
        self.remap: Dict[int, int] = dict(remap or {})
        self._assigned: Dict[str, int] = {}

    def map_color(self, index: int) -> int:
        return self.remap.get(index, index)

    def color_for(self, title: str) -> int:
        """Color for a feed title, assigning the next one on first sight."""
        color = self._assigned.get(title)
        if color is None:
            color = self.map_color(len(self._assigned) % PALETTE_SIZE)
            self._assigned[title] = color
        return color

    def __len__(self) -> int:
        return len(self._assigned)

    def as_dict(self) -> Dict[str, int]:
        return dict(self._assigned)
