"""Camera and file frame sources, and the single-slot handoff between threads.

Sources deliver ImageBuffer objects on their own producer thread. Every buffer
must be closed by whoever ends up holding it, whether or not it was analyzed.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Generic, Iterator, Optional, Tuple, TypeVar, Union

import numpy as np

from core.utils import list_image_files

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PixelFormat(Enum):
    GRAY8 = "gray8"
    NV21 = "nv21"
    YUV_420_888 = "yuv_420_888"
    RGB888 = "rgb888"
    RGBA8888 = "rgba8888"
    BGR888 = "bgr888"


@dataclass(frozen=True)
class Plane:
    """One memory plane of a native image buffer."""
    data: Union[bytes, bytearray, memoryview, np.ndarray]
    row_stride: int
    pixel_stride: int = 1


@dataclass
class ImageBuffer:
    """A native camera buffer with its monotonic source timestamp."""
    width: int
    height: int
    pixel_format: PixelFormat
    planes: Tuple[Plane, ...]
    timestamp_ms: int
    on_close: Optional[Callable[[], None]] = field(default=None, repr=False)
    _closed: bool = field(default=False, repr=False)

    @classmethod
    def from_array(
        cls,
        array: np.ndarray,
        timestamp_ms: int,
        pixel_format: PixelFormat = PixelFormat.BGR888,
        on_close: Optional[Callable[[], None]] = None,
    ) -> "ImageBuffer":
        """Wrap a packed (H, W) or (H, W, C) uint8 array as a single-plane buffer."""
        array = np.ascontiguousarray(array, dtype=np.uint8)
        height, width = array.shape[:2]
        channels = 1 if array.ndim == 2 else array.shape[2]
        plane = Plane(data=array.tobytes(), row_stride=width * channels, pixel_stride=channels)
        return cls(
            width=width,
            height=height,
            pixel_format=pixel_format,
            planes=(plane,),
            timestamp_ms=timestamp_ms,
            on_close=on_close,
        )

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self):
        """Release the buffer back to its producer. Idempotent."""
        if self._closed:
            return
        self._closed = True
        if self.on_close is not None:
            self.on_close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


class LatestSlot(Generic[T]):
    """Single-slot mailbox: put replaces the pending item, take waits for one.

    Used for both the pending-frame handoff (producer to worker) and the
    published-result handoff (worker to presentation). Never queues more than
    one item.
    """

    def __init__(self):
        self._cond = threading.Condition()
        self._item: Optional[T] = None
        self._closed = False

    def put(self, item: T) -> Optional[T]:
        """Store item, returning the displaced one (or the item itself if closed)."""
        with self._cond:
            if self._closed:
                return item
            displaced = self._item
            self._item = item
            self._cond.notify()
            return displaced

    def take(self, timeout: Optional[float] = None) -> Optional[T]:
        """Remove and return the pending item, waiting up to timeout seconds."""
        with self._cond:
            if self._item is None and not self._closed:
                self._cond.wait_for(lambda: self._item is not None or self._closed, timeout)
            item, self._item = self._item, None
            return item

    def peek(self) -> Optional[T]:
        with self._cond:
            return self._item

    def close(self) -> Optional[T]:
        """Refuse further items and return whatever was pending."""
        with self._cond:
            self._closed = True
            item, self._item = self._item, None
            self._cond.notify_all()
            return item

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed


class FrameSource:
    """Base class for frame producers.

    Subclasses implement _open, _read and _close. iter_buffers() is the
    synchronous form; start() runs the same loop on a producer thread.
    """

    def __init__(self):
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    def _open(self):
        pass

    def _read(self) -> Optional[ImageBuffer]:
        raise NotImplementedError

    def _close(self):
        pass

    def iter_buffers(self) -> Iterator[ImageBuffer]:
        """Yield buffers until the source is exhausted or stopped."""
        self._open()
        try:
            while not self._stop_event.is_set():
                buffer = self._read()
                if buffer is None:
                    break
                yield buffer
        finally:
            self._close()

    def start(self, on_frame: Callable[[ImageBuffer], None]):
        """Deliver buffers to on_frame from a dedicated producer thread."""
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._produce, args=(on_frame,), name=type(self).__name__, daemon=True
        )
        self._thread.start()
        logger.info("%s started", type(self).__name__)

    def stop(self, timeout: Optional[float] = 2.0):
        """Stop producing and join the producer thread."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
            logger.info("%s stopped", type(self).__name__)

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _produce(self, on_frame: Callable[[ImageBuffer], None]):
        try:
            for buffer in self.iter_buffers():
                on_frame(buffer)
        except Exception:
            logger.exception("Frame source %s failed", type(self).__name__)


class VideoCaptureSource(FrameSource):
    """Frames from an OpenCV capture device or video file.

    Live devices are stamped with the monotonic clock; files use their own
    stream position so replay is deterministic. An optional digital zoom
    session crops each frame before delivery.
    """

    def __init__(self, source: Union[int, str] = 0, zoom_session=None, realtime: bool = False):
        super().__init__()
        self._source = source
        self._zoom_session = zoom_session
        self._realtime = realtime
        self._capture = None
        self._is_file = isinstance(source, str)
        self._frame_interval = 0.0

    def _open(self):
        import cv2

        self._capture = cv2.VideoCapture(self._source)
        if not self._capture.isOpened():
            self._capture.release()
            self._capture = None
            raise IOError(f"Cannot open video source: {self._source}")
        fps = self._capture.get(cv2.CAP_PROP_FPS) or 0.0
        self._frame_interval = 1.0 / fps if fps > 0 else 0.0
        logger.info("Opened video source %s (%.1f fps)", self._source, fps)

    def _read(self) -> Optional[ImageBuffer]:
        import cv2

        ok, frame = self._capture.read()
        if not ok or frame is None:
            return None

        if self._is_file:
            timestamp_ms = int(self._capture.get(cv2.CAP_PROP_POS_MSEC))
            if self._realtime and self._frame_interval:
                time.sleep(self._frame_interval)
        else:
            timestamp_ms = int(time.monotonic() * 1000)

        if self._zoom_session is not None:
            frame = self._zoom_session.apply(frame)

        return ImageBuffer.from_array(frame, timestamp_ms, PixelFormat.BGR888)

    def _close(self):
        if self._capture is not None:
            self._capture.release()
            self._capture = None


class ImageFolderSource(FrameSource):
    """Replays still images from a folder as a frame stream at a fixed rate."""

    def __init__(self, folder: str, fps: float = 10.0, loop: bool = False, realtime: bool = False):
        super().__init__()
        if fps <= 0:
            raise ValueError("fps must be positive")
        self._folder = folder
        self._interval_ms = 1000.0 / fps
        self._loop = loop
        self._realtime = realtime
        self._paths = []
        self._index = 0

    def _open(self):
        self._paths = list_image_files(self._folder)
        self._index = 0
        if not self._paths:
            logger.warning("No images found in %s", self._folder)

    def _read(self) -> Optional[ImageBuffer]:
        from core.image_preprocessor import ImagePreprocessor

        failures = 0
        while self._paths and failures < len(self._paths):
            position = self._index % len(self._paths)
            if self._index >= len(self._paths) and not self._loop:
                return None
            path = self._paths[position]
            timestamp_ms = int(round(self._index * self._interval_ms))
            self._index += 1

            try:
                rgb = ImagePreprocessor.load_rgb(str(path))
            except (OSError, ValueError):
                logger.warning("Skipping unreadable image %s", path)
                failures += 1
                continue

            if self._realtime:
                time.sleep(self._interval_ms / 1000.0)
            return ImageBuffer.from_array(rgb, timestamp_ms, PixelFormat.RGB888)
        return None
