"""
SignFinder Median Flow - Model-free single object tracking between two frames.

Pipeline (per tracked region):
┌─────────────────────────────────────────────────────────────────┐
│  10x10 point grid inside the region                             │
│  Forward LK flow (prev → current) + Backward LK flow (→ prev)   │
│  Keep points where both flows succeeded (need >= 4)             │
├─────────────────────────────────────────────────────────────────┤
│  Forward-backward distance + 16x16 patch NCC per point          │
│  Keep lower half by FB distance, then upper half of that by NCC │
├─────────────────────────────────────────────────────────────────┤
│  Median displacement (x, y) + median pairwise scale change      │
│  → new region, clipped to the frame. Empty region = LOST        │
└─────────────────────────────────────────────────────────────────┘

Based on Kalal et al., "Forward-Backward Error: Automatic Detection of
Tracking Failures" (ICPR 2010).
"""

import logging
import math
from typing import Optional, Tuple, List
from dataclasses import dataclass

import numpy as np
import cv2

from .region import Region


logger = logging.getLogger("MedianFlowTracker")


@dataclass(frozen=True)
class PointCorrespondence:
    """A grid point in the previous frame and where it was tracked to."""
    previous: Tuple[float, float]
    current: Tuple[float, float]

    @property
    def motion(self) -> Tuple[float, float]:
        return self.current[0] - self.previous[0], self.current[1] - self.previous[1]


def upper_median(values: np.ndarray) -> float:
    """Element at position n // 2 of the sorted values (no averaging on even counts)."""
    k = len(values) // 2
    return float(np.partition(values, k)[k])


def round_half_away(value: float) -> int:
    """Nearest integer, .5 rounded away from zero."""
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def normalized_cross_correlation(patch1: np.ndarray, patch2: np.ndarray) -> float:
    """
    NCC between two equally sized patches (same as TM_CCOEFF_NORMED).

    Returns 0 when either patch has zero variance.
    """
    a = patch1.astype(np.float64).ravel()
    b = patch2.astype(np.float64).ravel()
    if a.size == 0:
        return 0.0
    a = a - a.mean()
    b = b - b.mean()
    v = float(np.dot(a, a)) * float(np.dot(b, b))
    if v <= 0.0:
        return 0.0
    return float(np.dot(a, b) / np.sqrt(v))


class PointCorrespondenceEstimator:
    """
    Forward-backward optical flow on a fixed point grid.

    Stateless: every call works only on the two frames and the region given.
    """

    N_ROWS = 10
    N_COLS = 10
    PATCH_SIZE = 16
    MIN_FLOW_POINTS = 4  # Fewer than this after the flow check: cannot track

    def __init__(self):
        self.lk_params = dict(
            winSize=(21, 21),
            maxLevel=3,
            criteria=(cv2.TERM_CRITERIA_EPS | cv2.TERM_CRITERIA_COUNT, 30, 0.01)
        )

    def point_grid(self, region: Region) -> np.ndarray:
        """N_ROWS x N_COLS points strictly inside the region, one step from each edge."""
        step_x = region.width / float(self.N_COLS + 1)
        step_y = region.height / float(self.N_ROWS + 1)
        xs = region.x + step_x * np.arange(1, self.N_COLS + 1)
        ys = region.y + step_y * np.arange(1, self.N_ROWS + 1)
        grid_x, grid_y = np.meshgrid(xs, ys)
        return np.stack([grid_x.ravel(), grid_y.ravel()], axis=1).astype(np.float32)

    def estimate(
        self,
        previous_gray: np.ndarray,
        current_gray: np.ndarray,
        region: Region
    ) -> List[PointCorrespondence]:
        if region.area < 1:
            return []

        points = self.point_grid(region)
        pts_prev = points.reshape(-1, 1, 2)

        # === FORWARD FLOW: prev → current ===
        pts_next, status_fwd, _ = cv2.calcOpticalFlowPyrLK(
            previous_gray, current_gray, pts_prev, None, **self.lk_params
        )
        if pts_next is None:
            return []

        # === BACKWARD FLOW: current → prev ===
        pts_back, status_bwd, _ = cv2.calcOpticalFlowPyrLK(
            current_gray, previous_gray, pts_next, None, **self.lk_params
        )
        if pts_back is None:
            return []

        valid = (status_fwd.ravel() == 1) & (status_bwd.ravel() == 1)
        indices = np.flatnonzero(valid)
        if len(indices) < self.MIN_FLOW_POINTS:
            return []

        pts_next = pts_next.reshape(-1, 2)
        pts_back = pts_back.reshape(-1, 2)

        fb_error = np.linalg.norm(points[indices] - pts_back[indices], axis=1)
        patch_size = (self.PATCH_SIZE, self.PATCH_SIZE)
        ncc = np.array([
            normalized_cross_correlation(
                cv2.getRectSubPix(current_gray, patch_size, tuple(map(float, points[i]))),
                cv2.getRectSubPix(current_gray, patch_size, tuple(map(float, pts_next[i])))
            )
            for i in indices
        ])

        keep = self._robust_filter(fb_error, ncc)
        return [
            PointCorrespondence(
                previous=(float(points[i, 0]), float(points[i, 1])),
                current=(float(pts_next[i, 0]), float(pts_next[i, 1]))
            )
            for i in indices[keep]
        ]

    @staticmethod
    def _robust_filter(fb_error: np.ndarray, ncc: np.ndarray) -> np.ndarray:
        """
        Positions of points below the median FB distance and, among those,
        above the median NCC. Ranks are used instead of values so equal
        scores cannot wipe out the whole set.
        """
        by_distance = np.argsort(fb_error, kind="stable")
        lower_half = by_distance[:len(by_distance) // 2]
        by_ncc = lower_half[np.argsort(ncc[lower_half], kind="stable")]
        return by_ncc[len(by_ncc) // 2 + 1:]


class MedianFlowTracker:
    """
    Estimates translation + uniform scale of a region between two grayscale frames.

    An empty region means the target is lost.
    """

    MIN_CORRESPONDENCES = 10
    MAX_SCALE_ANGLE = 0.3  # radians; pairs moving in different directions give unstable ratios

    def __init__(self, estimator: Optional[PointCorrespondenceEstimator] = None):
        self.estimator = estimator or PointCorrespondenceEstimator()

    def track(
        self,
        region: Region,
        previous_gray: np.ndarray,
        current_gray: np.ndarray
    ) -> Region:
        correspondences = self.estimator.estimate(previous_gray, current_gray, region)
        result = self.from_correspondences(correspondences, region, current_gray.shape)
        if result.is_empty:
            logger.debug(f"Lost {region}: {len(correspondences)} correspondences")
        return result

    def from_correspondences(
        self,
        correspondences: List[PointCorrespondence],
        region: Region,
        frame_shape: Optional[Tuple[int, ...]] = None
    ) -> Region:
        """New region from point correspondences, clipped to frame_shape when given."""
        if len(correspondences) < self.MIN_CORRESPONDENCES or region.area < 1:
            return Region.empty()

        prev = np.array([c.previous for c in correspondences], dtype=np.float64)
        curr = np.array([c.current for c in correspondences], dtype=np.float64)
        motion = curr - prev

        dx = upper_median(motion[:, 0])
        dy = upper_median(motion[:, 1])
        scale = self._median_scale(prev, curr, motion)

        c = 0.5 * (scale - 1.0)
        result = Region(
            round_half_away(region.x + dx - region.width * c),
            round_half_away(region.y + dy - region.height * c),
            round_half_away(region.width / scale),
            round_half_away(region.height / scale)
        )
        if frame_shape is not None:
            result = result.intersect(Region.from_shape(frame_shape))
        if result.is_empty:
            return Region.empty()
        return result

    def _median_scale(self, prev: np.ndarray, curr: np.ndarray, motion: np.ndarray) -> float:
        """Median ratio of pairwise distances (current / previous) over direction-consistent pairs."""
        i, j = np.triu_indices(len(prev), k=1)

        norms = np.linalg.norm(motion, axis=1)
        both_moving = (norms[i] > 0) & (norms[j] > 0)
        cos = np.ones(len(i))
        denom = norms[i] * norms[j]
        dots = np.einsum("ij,ij->i", motion[i], motion[j])
        np.divide(dots, denom, out=cos, where=both_moving)
        angle = np.where(both_moving, np.arccos(np.clip(cos, -1.0, 1.0)), 0.0)

        prev_dist = np.linalg.norm(prev[i] - prev[j], axis=1)
        qualifying = (angle < self.MAX_SCALE_ANGLE) & (prev_dist > 0)
        if not np.any(qualifying):
            return 1.0

        curr_dist = np.linalg.norm(curr[i] - curr[j], axis=1)
        scale = upper_median(curr_dist[qualifying] / prev_dist[qualifying])
        if scale <= 0:
            return 1.0
        return scale
