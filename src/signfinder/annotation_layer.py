"""
SignFinder Annotation Layer - Draws detections, tentative tracks and proposals.
"""

from typing import Tuple, List
from dataclasses import dataclass

import numpy as np
import cv2

from .region import Region, DetectionInfo


@dataclass
class ColorScheme:
    """BGR colors for each kind of box."""
    confirmed: Tuple[int, int, int] = (255, 0, 255)   # Magenta
    tentative: Tuple[int, int, int] = (0, 165, 255)   # Orange
    proposal: Tuple[int, int, int] = (90, 90, 90)     # Gray
    text: Tuple[int, int, int] = (0, 255, 255)        # Yellow


class AnnotationRenderer:
    """Draws boxes onto the preprocessed frame in place."""

    def __init__(self, colors: ColorScheme = None, font_scale: float = 1.0, thickness: int = 2):
        self.colors = colors or ColorScheme()
        self.font = cv2.FONT_HERSHEY_PLAIN
        self.font_scale = font_scale
        self.thickness = thickness

    def _draw_box(self, frame: np.ndarray, region: Region, color: Tuple[int, int, int], thickness: int):
        cv2.rectangle(
            frame,
            (region.x, region.y),
            (region.right, region.bottom),
            color,
            thickness,
            cv2.LINE_AA
        )

    def render_detections(self, frame: np.ndarray, detections: List[DetectionInfo]) -> np.ndarray:
        """Confirmed detections with a 'p=0.9' label at the bottom-right corner."""
        for detection in detections:
            self._draw_box(frame, detection.region, self.colors.confirmed, self.thickness)
            cv2.putText(
                frame,
                f"p={detection.confidence:.1f}",
                (detection.region.right, detection.region.bottom),
                self.font,
                self.font_scale,
                self.colors.text,
                1,
                cv2.LINE_AA
            )
        return frame

    def render_tentative(self, frame: np.ndarray, tracks: List[DetectionInfo]) -> np.ndarray:
        for track in tracks:
            self._draw_box(frame, track.region, self.colors.tentative, 1)
        return frame

    def render_proposals(self, frame: np.ndarray, proposals: List[Region]) -> np.ndarray:
        for region in proposals:
            self._draw_box(frame, region, self.colors.proposal, 1)
        return frame
