#!/usr/bin/env python3
"""
SignFinder - Video Demo

Runs the sign detector + tracker over a video file and displays the
confirmed detections:
1. Loads the detector configuration (cascade, SVM, thresholds)
2. Reads the video frame by frame
3. Detects and tracks signs, drawing boxes with their confidence

Usage:
    python main_demo.py exit_sign_config.yml walkthrough.mp4

Controls:
    - T: Toggle tracking (off = frame-by-frame detection only)
    - R: Reset all tracks
    - P: Pause/resume
    - Q/ESC: Quit
"""

import sys
import time
import logging
import argparse

import cv2

# Add src to path
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent / "src"))

from signfinder.detection_params import DetectionParams
from signfinder.detector import ObjDetector
from signfinder.errors import SignFinderError
from signfinder.video_pipeline import VideoFileReader, PerformanceOverlay
from signfinder.annotation_layer import AnnotationRenderer


class SignFinderDemo:
    """Frame loop: read → detect/track → draw → display."""

    WINDOW_NAME = "Detection"

    def __init__(
        self,
        config_file: str,
        source,
        classifiers_folder: str = None,
        do_track: bool = True,
        show_tentative: bool = False,
        show_proposals: bool = False,
        loop: bool = False
    ):
        self.params = DetectionParams.from_file(config_file, classifiers_folder)
        self.detector = ObjDetector(self.params)
        self.video = VideoFileReader(source, loop=loop)
        self.renderer = AnnotationRenderer()
        self.perf = PerformanceOverlay()

        self.do_track = do_track
        self.show_tentative = show_tentative
        self.show_proposals = show_proposals
        self._paused = False

        self.logger = logging.getLogger("SignFinderDemo")

    def _handle_key(self, key: int) -> bool:
        """Returns False when the demo should stop."""
        if key in (27, ord('q')):
            return False
        if key == ord('t'):
            self.do_track = not self.do_track
            self.detector.reset()
            self.logger.info(f"Tracking {'enabled' if self.do_track else 'disabled'}")
        elif key == ord('r'):
            self.detector.reset()
            self.logger.info("Tracks reset")
        elif key == ord('p'):
            self._paused = not self._paused
        return True

    def run(self):
        self.video.open()
        cv2.namedWindow(self.WINDOW_NAME, cv2.WINDOW_NORMAL)
        frame_count = 0

        try:
            while True:
                if self._paused:
                    if not self._handle_key(cv2.waitKey(30) & 0xFF):
                        break
                    continue

                frame = self.video.read()
                if frame is None:
                    self.logger.info("End of video")
                    break

                start = time.perf_counter()
                detections = self.detector.detect(frame, self.do_track)
                latency_ms = (time.perf_counter() - start) * 1000.0
                frame_count += 1

                output = self.detector.current_frame
                if self.show_proposals:
                    self.renderer.render_proposals(output, self.detector.get_raw_proposals())
                if self.show_tentative and self.do_track:
                    self.renderer.render_tentative(output, self.detector.get_tentative_tracks())
                self.renderer.render_detections(output, detections)

                self.perf.update(latency_ms)
                self.perf.draw(
                    output,
                    f"signs: {len(detections)}  tracks: {self.detector.track_manager.track_count}"
                )
                cv2.imshow(self.WINDOW_NAME, output)

                if not self._handle_key(cv2.waitKey(1) & 0xFF):
                    break

        except KeyboardInterrupt:
            self.logger.info("Interrupted by user")
        finally:
            self.video.release()
            cv2.destroyAllWindows()
            self.logger.info(f"Demo stopped after {frame_count} frames.")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="SignFinder detection & tracking demo",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Controls:
  T            Toggle tracking
  R            Reset all tracks
  P            Pause/resume
  Q/ESC        Quit

Examples:
  python main_demo.py exit_sign_config.yml walkthrough.mp4
  python main_demo.py exit_sign_config.yml 0 --show-tentative
  python main_demo.py config.yml video.mp4 --classifiers ./classifiers --no-track
        """
    )

    parser.add_argument("config", help="Detector configuration file (OpenCV YAML)")
    parser.add_argument("video", help="Video file path or camera index")
    parser.add_argument(
        "--classifiers", "-c",
        default=None,
        help="Folder holding the classifier files (default: config file folder)"
    )
    parser.add_argument(
        "--no-track",
        action="store_true",
        help="Disable tracking (report per-frame detections only)"
    )
    parser.add_argument(
        "--show-tentative",
        action="store_true",
        help="Draw unconfirmed tracks"
    )
    parser.add_argument(
        "--show-proposals",
        action="store_true",
        help="Draw raw cascade proposals"
    )
    parser.add_argument(
        "--loop",
        action="store_true",
        help="Loop video files when they reach the end"
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    try:
        source = int(args.video)
    except ValueError:
        source = args.video

    try:
        demo = SignFinderDemo(
            config_file=args.config,
            source=source,
            classifiers_folder=args.classifiers,
            do_track=not args.no_track,
            show_tentative=args.show_tentative,
            show_proposals=args.show_proposals,
            loop=args.loop
        )
        demo.run()
    except SignFinderError as e:
        logging.getLogger("SignFinderDemo").error(str(e))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
