from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

import cv2
import numpy as np
from scenedetect import open_video
from scenedetect.video_stream import FrameRateUnavailable, VideoOpenFailure, VideoStream

from config import FRAME_RATE_DEFAULT, PROCESS_WIDTH
from frame_scanner import Frame
from utils import verbose_log


@dataclass(frozen=True)
class VideoInfo:
    duration: float
    fps: float
    frame_count: int
    width: int
    height: int


def open_stream(video_path: Path) -> VideoStream:
    """
    Opens a video with PySceneDetect's OpenCV backend.
    Falls back to FRAME_RATE_DEFAULT when the container reports no frame rate.
    """
    try:
        return open_video(str(video_path))
    except FrameRateUnavailable:
        verbose_log(f"Warning: FPS could not be determined, defaulting to {FRAME_RATE_DEFAULT}.")
        return open_video(str(video_path), framerate=FRAME_RATE_DEFAULT)
    except (OSError, VideoOpenFailure) as e:
        raise RuntimeError(f"Could not open video {video_path}: {e}") from e


def _release(video: VideoStream) -> None:
    capture = getattr(video, "capture", None)
    if capture is not None:
        capture.release()


def probe_video(video_path: Path) -> VideoInfo:
    """
    Returns duration (seconds), frame rate, frame count and resolution.
    """
    video = open_stream(video_path)
    try:
        width, height = video.frame_size
        duration = video.duration
        info = VideoInfo(
            duration=duration.get_seconds() if duration is not None else 0.0,
            fps=float(video.frame_rate),
            frame_count=duration.get_frames() if duration is not None else 0,
            width=int(width),
            height=int(height),
        )
    finally:
        _release(video)
    verbose_log(
        f"Video FPS: {info.fps:.2f}, Total frames: {info.frame_count}, "
        f"Duration: {info.duration:.2f} seconds, Resolution: {info.width}x{info.height}"
    )
    return info


def downscale(image: np.ndarray, process_width: int) -> np.ndarray:
    """
    Shrinks `image` to `process_width` keeping its aspect ratio. Never upscales.
    """
    height, width = image.shape[:2]
    if process_width <= 0 or width <= process_width:
        return image
    scale = process_width / width
    size = (process_width, max(1, int(round(height * scale))))
    return cv2.resize(image, size, interpolation=cv2.INTER_AREA)


def iter_frames(
    video_path: Path,
    sample_every: int = 1,
    process_width: int = PROCESS_WIDTH,
) -> Iterator[Frame]:
    """
    Yields every `sample_every`-th frame of the video in presentation order,
    downscaled to `process_width`. Skipped frames are grabbed but not decoded.
    """
    if sample_every < 1:
        raise ValueError(f"sample_every must be >= 1, got {sample_every}")

    video = open_stream(video_path)
    index = 0
    try:
        while True:
            decode = index % sample_every == 0
            image = video.read(decode=decode)
            if image is False:
                break
            if decode:
                timestamp = video.position.get_seconds()
                yield Frame(image=downscale(image, process_width), timestamp=timestamp, index=index)
            index += 1
    finally:
        _release(video)
    verbose_log(f"Finished reading {index} frames from {video_path}")
