"""
SignFinder Track Manager - Fuses visual tracking with per-frame detections.

One state transition per frame:
┌──────────────────────────────────────────────────────────────────────┐
│ 1. CONTINUE   median flow moves every track; empty region → dropped  │
│               patch re-verified: pass → age = 0, fail → age += 1     │
│ 2. PROPOSE    cascade candidates verified by HOG+SVM → new detections│
│ 3. ASSOCIATE  first overlapping detection per track (greedy) merges  │
│ 4. AGE        age == 0 → times_seen += 1, else prune if too old      │
│ 5. SPAWN      unclaimed detections become tentative tracks           │
│ 6. EMIT       tracks with times_seen > hangover, by confidence       │
└──────────────────────────────────────────────────────────────────────┘

The track list and the previous grayscale frame are owned by one
TrackManager instance and carried from one update() to the next, so calls
for a given instance must be serialized (one instance per video stream).
"""

import logging
import uuid
from typing import Optional, List
from dataclasses import dataclass, field

import numpy as np

from .classifiers import verify_region, to_gray
from .detection_params import DetectionParams
from .median_flow import MedianFlowTracker
from .refinement import RefinementStep
from .region import Region, DetectionInfo


@dataclass
class Track:
    """A persistent hypothesis about one sign's region."""
    region: Region
    confidence: float
    age: int = 0          # Frames since last confirmation (0 = seen this frame)
    times_seen: int = 1   # Frames in which the track was confirmed
    track_id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])

    def is_confirmed(self, hangover_frames: int) -> bool:
        return self.times_seen > hangover_frames

    def as_detection(self) -> DetectionInfo:
        return DetectionInfo(self.region, self.confidence)


class TrackManager:
    """Owns the active tracks and the previous grayscale frame."""

    def __init__(
        self,
        proposer,
        classifier,
        params: DetectionParams,
        tracker: Optional[MedianFlowTracker] = None,
        refiner: Optional[RefinementStep] = None
    ):
        """
        Args:
            proposer: Object with propose(frame, scale_factor, min_size, max_size, group=True)
            classifier: Object with classify(patch) -> (Label, confidence)
            params: Thresholds, window sizes and age limits
            tracker: Visual tracker (median flow by default)
            refiner: Required when params.refine_detections / refine_tracks is set
        """
        self.proposer = proposer
        self.classifier = classifier
        self.params = params
        self.tracker = tracker or MedianFlowTracker()
        self.refiner = refiner
        self.logger = logging.getLogger("TrackManager")

        if (params.refine_detections or params.refine_tracks) and refiner is None:
            self.refiner = RefinementStep(proposer, classifier, params)

        self._tracks: List[Track] = []
        self._previous_gray: Optional[np.ndarray] = None
        self._raw_proposals: List[Region] = []

    def update(self, frame: np.ndarray, do_track: bool = True) -> List[DetectionInfo]:
        """
        Process one preprocessed frame.

        Returns:
            Confirmed detections sorted by descending confidence. With
            do_track=False, every verified proposal of this frame (no track
            state is read or written).

        Tracks and the previous frame survive do_track=False calls untouched,
        so call reset() before resuming tracking on a stream that kept moving.
        """
        if not do_track:
            return self._sorted(self._detect(frame))

        current_gray = None
        if self._tracks:
            current_gray = to_gray(frame)
            self._tracks = self._continue_tracks(frame, current_gray)

        new_detections = self._detect(frame)
        if self.params.refine_detections:
            new_detections = [self._refine_detection(d, frame) for d in new_detections]

        unclaimed = self._associate(new_detections)
        self._tracks = self._age_tracks()

        for detection in unclaimed:
            track = Track(region=detection.region, confidence=detection.confidence)
            self._tracks.append(track)
            self.logger.debug(f"Spawned track {track.track_id} at {track.region}")

        if self._tracks:
            gray = current_gray if current_gray is not None else to_gray(frame)
            # Grayscale input comes back from to_gray as the caller's own buffer
            self._previous_gray = gray.copy() if np.shares_memory(gray, frame) else gray
        else:
            self._previous_gray = None

        confirmed = [
            t.as_detection() for t in self._tracks
            if t.is_confirmed(self.params.hangover_frames)
        ]
        self.logger.debug(
            f"{len(self._tracks)} tracks, {len(confirmed)} confirmed, "
            f"{len(self._raw_proposals)} proposals"
        )
        return self._sorted(confirmed)

    def _detect(self, frame: np.ndarray) -> List[DetectionInfo]:
        """Stage 1 proposals verified by stage 2."""
        self._raw_proposals = self.proposer.propose(
            frame,
            self.params.cascade_scale_factor,
            self.params.cascade_min_win,
            self.params.cascade_max_win
        )
        detections = []
        for region in self._raw_proposals:
            confidence = verify_region(self.classifier, frame, region, self.params.svm_threshold)
            if confidence is not None:
                detections.append(DetectionInfo(region, confidence))
        return detections

    def _refine_detection(self, detection: DetectionInfo, frame: np.ndarray) -> DetectionInfo:
        region, confidence = self.refiner.refine(detection.region, frame, self.params.refinement_scale)
        if confidence <= 0:
            return detection
        return DetectionInfo(region, confidence)

    def _continue_tracks(self, frame: np.ndarray, current_gray: np.ndarray) -> List[Track]:
        """Move every track with the visual tracker and re-verify it."""
        if self._previous_gray is None or self._previous_gray.shape != current_gray.shape:
            self.logger.warning("No usable previous frame, dropping all tracks")
            return []

        survivors = []
        for track in self._tracks:
            region = self.tracker.track(track.region, self._previous_gray, current_gray)
            if region.is_empty:
                self.logger.debug(f"Track {track.track_id} lost by visual tracker")
                continue

            if self.params.refine_tracks:
                region, confidence = self.refiner.refine(region, frame, self.params.refinement_scale)
                if confidence <= 0:
                    confidence = None
            else:
                confidence = verify_region(self.classifier, frame, region, self.params.svm_threshold)

            if confidence is not None:
                track.region = region
                track.confidence = confidence
                track.age = 0
            else:
                track.age += 1
            survivors.append(track)
        return survivors

    def _associate(self, detections: List[DetectionInfo]) -> List[DetectionInfo]:
        """
        Greedy first-match association. Each detection can claim at most one
        track; returns the detections no track claimed.
        """
        unclaimed = list(detections)
        for track in self._tracks:
            match = next(
                (k for k, d in enumerate(unclaimed) if track.region.overlaps(d.region)),
                None
            )
            if match is None:
                continue
            detection = unclaimed.pop(match)
            track.age = 0
            if detection.confidence > track.confidence:
                track.region = detection.region
                track.confidence = detection.confidence
            self.logger.debug(f"Track {track.track_id} matched detection {detection.region}")
        return unclaimed

    def _age_tracks(self) -> List[Track]:
        survivors = []
        for track in self._tracks:
            if track.age == 0:
                track.times_seen += 1
                survivors.append(track)
                continue
            if track.times_seen < self.params.hangover_frames:
                max_age = self.params.max_age_pre_confirmation
            else:
                max_age = self.params.max_age_post_confirmation
            if track.age > max_age:
                self.logger.debug(
                    f"Track {track.track_id} pruned: age {track.age} > {max_age} "
                    f"(seen {track.times_seen})"
                )
                continue
            survivors.append(track)
        return survivors

    @staticmethod
    def _sorted(detections: List[DetectionInfo]) -> List[DetectionInfo]:
        return sorted(detections, key=lambda d: d.confidence, reverse=True)

    def get_tentative_tracks(self) -> List[DetectionInfo]:
        """All live tracks regardless of confirmation (debug)."""
        return [t.as_detection() for t in self._tracks]

    def get_raw_proposals(self) -> List[Region]:
        """Stage 1 output of the last processed frame, before verification (debug)."""
        return list(self._raw_proposals)

    def reset(self):
        """Drop every track and the previous frame."""
        self._tracks = []
        self._previous_gray = None
        self._raw_proposals = []

    @property
    def tracks(self) -> List[Track]:
        return list(self._tracks)

    @property
    def track_count(self) -> int:
        return len(self._tracks)
