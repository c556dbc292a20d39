import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from functools import partial
from typing import Callable, Iterable, Iterator, List, Optional

from tqdm import tqdm

import utils
from calibration import VisionProfile
from config import PROGRESS_EVERY, SCAN_BATCH_SIZE
from frame_scanner import DetectionEvent, Frame, scan_frame
from utils import verbose_log

ProgressCallback = Callable[[int, Optional[int]], None]


class SessionAborted(Exception):
    """Scanning was cancelled between frames; partial results are discarded."""


@dataclass
class ScanResult:
    events: List[DetectionEvent] = field(default_factory=list)

    @property
    def frames_scanned(self) -> int:
        return len(self.events)

    @property
    def hit_timestamps(self) -> List[float]:
        return sorted(e.timestamp for e in self.events if e.hit)


def _take(frames: Iterator[Frame], count: int, cancel_event: Optional[threading.Event]) -> List[Frame]:
    batch = []
    for _ in range(count):
        if cancel_event is not None and cancel_event.is_set():
            raise SessionAborted("scan cancelled")
        frame = next(frames, None)
        if frame is None:
            break
        batch.append(frame)
    return batch


def scan_frames(
    frames: Iterable[Frame],
    profile: VisionProfile,
    cancel_event: Optional[threading.Event] = None,
    workers: int = 1,
    progress_every: int = PROGRESS_EVERY,
    total_frames: Optional[int] = None,
    on_progress: Optional[ProgressCallback] = None,
    debug: bool = False,
) -> ScanResult:
    """
    Scans every frame from `frames` against `profile` and returns the events
    sorted by timestamp.

    The cancel event is checked before each frame is pulled; once it is set
    SessionAborted is raised and nothing accumulated so far is returned.
    With workers > 1 frames are scanned on a thread pool in batches and the
    per-batch results are merged here, on the calling thread.
    `on_progress(done, total_frames)` is called every `progress_every` frames
    and once at the end; total_frames is None when unknown.
    """
    if workers < 1:
        raise ValueError(f"workers must be >= 1, got {workers}")
    progress_every = max(1, progress_every)
    batch_size = 1 if workers == 1 else SCAN_BATCH_SIZE

    frames_iter = iter(frames)
    scan = partial(scan_frame, profile=profile, debug=debug)
    executor = ThreadPoolExecutor(max_workers=workers) if workers > 1 else None
    events: List[DetectionEvent] = []
    reported = 0

    try:
        with tqdm(total=total_frames, desc="🔍 Scanning frames", unit="frame", disable=not utils.VERBOSE) as pbar:
            while True:
                batch = _take(frames_iter, batch_size, cancel_event)
                if not batch:
                    break
                if executor is not None:
                    events.extend(executor.map(scan, batch))
                else:
                    events.extend(scan(f) for f in batch)

                if len(events) - reported >= progress_every:
                    pbar.update(len(events) - reported)
                    reported = len(events)
                    if on_progress is not None:
                        on_progress(reported, total_frames)

            pbar.update(len(events) - reported)
    except SessionAborted:
        verbose_log(f"⏹️ Scan aborted after {len(events)} frames; discarding results")
        events.clear()
        raise
    finally:
        if executor is not None:
            executor.shutdown(wait=True)
        close = getattr(frames_iter, "close", None)
        if close is not None:
            close()

    if on_progress is not None:
        on_progress(len(events), total_frames)

    events.sort(key=lambda e: e.timestamp)
    hits = sum(1 for e in events if e.hit)
    verbose_log(f"Scanned {len(events)} frames, menu visible in {hits}")
    return ScanResult(events=events)
