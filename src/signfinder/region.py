"""
SignFinder Region - Axis-aligned rectangles in cropped-frame pixel coordinates.

A live region always has strictly positive area. The empty region
(zero width/height) is the "lost" sentinel returned by the visual tracker.
"""

from typing import Tuple
from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class Region:
    """Axis-aligned pixel rectangle (x, y, width, height)."""
    x: int = 0
    y: int = 0
    width: int = 0
    height: int = 0

    @classmethod
    def empty(cls) -> "Region":
        return cls(0, 0, 0, 0)

    @classmethod
    def from_shape(cls, frame_shape: Tuple[int, ...]) -> "Region":
        """Bounds of a frame with the given numpy shape."""
        h, w = frame_shape[:2]
        return cls(0, 0, int(w), int(h))

    @property
    def area(self) -> int:
        if self.width <= 0 or self.height <= 0:
            return 0
        return self.width * self.height

    @property
    def is_empty(self) -> bool:
        return self.area < 1

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    def intersect(self, other: "Region") -> "Region":
        """Intersection with another region; empty if they are disjoint."""
        x1 = max(self.x, other.x)
        y1 = max(self.y, other.y)
        x2 = min(self.right, other.right)
        y2 = min(self.bottom, other.bottom)
        if x2 <= x1 or y2 <= y1:
            return Region.empty()
        return Region(x1, y1, x2 - x1, y2 - y1)

    def overlaps(self, other: "Region", ratio: float = 0.5) -> bool:
        """
        True when the intersection covers more than `ratio` of the smaller region.

        (0,0,10,10) vs (2,2,10,10): 64 > 50 -> overlapping
        (0,0,10,10) vs (4,4,10,10): 36 < 50 -> not overlapping
        """
        smaller = min(self.area, other.area)
        if smaller < 1:
            return False
        return self.intersect(other).area > ratio * smaller

    def translate(self, dx: int, dy: int) -> "Region":
        return Region(self.x + dx, self.y + dy, self.width, self.height)

    def pad(self, px: int, py: int) -> "Region":
        """Grow symmetrically by px horizontally and py vertically."""
        return Region(self.x - px, self.y - py, self.width + 2 * px, self.height + 2 * py)

    def crop(self, frame: np.ndarray) -> np.ndarray:
        """View of the frame under this region (clipped to the frame)."""
        clipped = self.intersect(Region.from_shape(frame.shape))
        return frame[clipped.y:clipped.bottom, clipped.x:clipped.right]

    def as_tuple(self) -> Tuple[int, int, int, int]:
        return self.x, self.y, self.width, self.height

    def __repr__(self) -> str:
        return f"Region({self.x}, {self.y}, {self.width}x{self.height})"


@dataclass
class DetectionInfo:
    """A region reported to the caller with its classifier confidence."""
    region: Region
    confidence: float
