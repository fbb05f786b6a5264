"""Configuration data structures for the BlockFin wallet core."""
from __future__ import annotations

from dataclasses import dataclass
from typing import List


@dataclass(slots=True)
class AppConfig:
    """Static configuration options used across the wallet core."""

    app_name: str = "BlockFin"
    app_version: str = "1.0"
    copy_feedback_ms: int = 2_000
    quote_decimal_places: int = 8
    qr_service_url: str = "https://api.qrserver.com/v1/create-qr-code/"
    qr_render_size: int = 200
    qr_error_correction: str = "M"
    qr_scale: int = 10
    qr_border: int = 4
    camera_frame_skip: int = 5
    max_frame_size: int = 1_920

    @property
    def copy_feedback_seconds(self) -> float:
        return self.copy_feedback_ms / 1000.0


@dataclass(slots=True)
class CameraConfig:
    """Runtime camera configuration used by :class:`~blockfin_wallet.camera.OpenCVCamera`."""

    width: int = 640
    height: int = 480

    def get_backends(self) -> List[int]:
        """Return a list of OpenCV backend identifiers to try.

        OpenCV is optional.  The import is performed lazily so that the rest of
        the package works on machines without a camera stack installed.
        """

        try:  # pragma: no cover - imported for type side effect only
            import cv2  # type: ignore
        except Exception:  # pragma: no cover - we simply fall back to an empty list
            return []

        backends = [getattr(cv2, name) for name in ("CAP_DSHOW", "CAP_MSMF", "CAP_ANY") if hasattr(cv2, name)]
        return backends or [0]

    def get_indices(self) -> List[int]:
        """Return candidate camera indices."""

        return [0, 1, 2]


__all__ = ["AppConfig", "CameraConfig"]
