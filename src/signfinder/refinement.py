"""
SignFinder Refinement - Tighten a box by re-scanning its neighborhood.

The proposer is run at near-unity scale step inside a padded patch around
the region, without grouping, and the best verified candidate wins.
"""

import logging
import math
from typing import Tuple

import numpy as np

from .classifiers import verify_region
from .detection_params import DetectionParams
from .region import Region


class RefinementStep:
    """Re-scan a padded neighborhood and keep the highest-confidence candidate."""

    def __init__(self, proposer, classifier, params: DetectionParams):
        self.proposer = proposer
        self.classifier = classifier
        self.params = params
        self.logger = logging.getLogger("RefinementStep")

    def refine(self, region: Region, frame: np.ndarray, scale: float) -> Tuple[Region, float]:
        """
        Returns:
            (refined region in frame coordinates, confidence), or
            (region, 0.0) when no candidate passes verification
        """
        if region.is_empty:
            return region, 0.0

        px = int(math.floor(region.width / 2.0 * scale))
        py = int(math.floor(region.height / 2.0 * scale))
        search = region.pad(px, py).intersect(Region.from_shape(frame.shape))
        if search.is_empty:
            return region, 0.0

        patch = search.crop(frame)
        candidates = self.proposer.propose(
            patch,
            self.params.refinement_scan_step,
            (region.width, region.height),
            (search.width, search.height),
            group=False
        )

        best_region = region
        best_confidence = 0.0
        for candidate in candidates:
            confidence = verify_region(self.classifier, patch, candidate, self.params.svm_threshold)
            if confidence is not None and confidence > best_confidence:
                best_confidence = confidence
                best_region = candidate.translate(search.x, search.y)

        if best_confidence > 0:
            self.logger.debug(f"Refined {region} -> {best_region} (p={best_confidence:.2f})")
        return best_region, best_confidence
