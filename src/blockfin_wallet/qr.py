"""QR code helpers: render-service URLs, local rendering and payload decoding."""
from __future__ import annotations

import hashlib
import io
import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote as url_quote

from .config import AppConfig

logger = logging.getLogger(__name__)

_IGNORABLE_CHARS = "\t\n\x0b\x0c\r \x00"
"""Whitespace-like characters some QR libraries append to decoded payloads."""


@dataclass(slots=True)
class QRCodeManager:
    """Build and read QR codes for wallet addresses."""

    config: AppConfig

    def is_available(self) -> bool:
        try:
            import segno  # type: ignore  # pragma: no cover - optional dependency
        except Exception:
            return False
        return True

    def _ensure_bytes(self, payload: bytes | bytearray | str) -> bytes:
        """Return ``payload`` as ``bytes`` for QR operations."""

        if isinstance(payload, (bytes, bytearray)):
            return bytes(payload)
        return payload.encode("utf-8")

    def render_url(self, data: str) -> str:
        """Return the render-service URL showing ``data`` as a QR image.

        ``data`` is percent-encoded in full so that addresses or payment URIs
        containing ``&``, ``?``, ``#`` or spaces cannot alter the query.
        """

        size = self.config.qr_render_size
        return f"{self.config.qr_service_url}?size={size}x{size}&data={url_quote(data, safe='')}"

    def payload_digest(self, data: bytes | bytearray | str) -> str:
        """Return the SHA-256 digest of the QR payload as a hexadecimal string.

        Displaying the digest next to a rendered code lets the payer confirm
        that the scanned address matches the one that was encoded.
        """

        return hashlib.sha256(self._ensure_bytes(data)).hexdigest()

    def _make(self, payload: bytes):
        try:
            import segno  # type: ignore  # pragma: no cover - optional dependency
        except Exception as exc:  # pragma: no cover - depends on environment
            raise RuntimeError("QR generation requires segno; install segno") from exc

        return segno.make(payload, error=self.config.qr_error_correction)

    def to_png_bytes(self, data: bytes | bytearray | str) -> bytes:
        """Render ``data`` locally and return the PNG image bytes."""

        qr = self._make(self._ensure_bytes(data))
        buffer = io.BytesIO()
        qr.save(buffer, kind="png", scale=self.config.qr_scale, border=self.config.qr_border)
        return buffer.getvalue()

    def save_png(self, data: bytes | bytearray | str, path: str) -> str:
        """Persist a QR code representing ``data`` to ``path``.

        Returns the SHA-256 digest of ``data`` so that callers can display the
        checksum alongside the generated image.
        """

        payload = self._ensure_bytes(data)
        qr = self._make(payload)
        qr.save(path, scale=self.config.qr_scale, border=self.config.qr_border)
        logger.debug("Saved QR code for %d byte payload to %s", len(payload), path)

        return self.payload_digest(payload)

    @staticmethod
    def decode_qr_payload(raw: bytes | bytearray | str) -> str:
        """Return the address carried by a scanned QR payload.

        Accepts a bare address or a payment URI such as
        ``bitcoin:bc1q...?amount=0.1`` and returns just the address part.
        """

        if isinstance(raw, (bytes, bytearray)):
            try:
                text = bytes(raw).decode("utf-8")
            except UnicodeDecodeError as exc:
                raise ValueError("QR payload is not valid UTF-8 text") from exc
        else:
            text = raw

        text = text.strip(_IGNORABLE_CHARS)
        scheme, sep, rest = text.partition(":")
        if sep and scheme.isalpha() and not rest.startswith("//"):
            text = rest
        text = text.split("?", 1)[0].strip(_IGNORABLE_CHARS)

        if not text:
            raise ValueError("QR payload does not contain an address")
        return text

    def decode_frame(self, frame) -> Optional[str]:  # pragma: no cover - requires optional deps
        """Decode the first QR code visible in an OpenCV ``frame``."""

        try:
            import cv2  # type: ignore
            from pyzbar import pyzbar  # type: ignore
        except Exception as exc:  # pragma: no cover - depends on environment
            raise RuntimeError("QR decoding requires opencv-python and pyzbar") from exc

        gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
        for processed in (
            gray,
            cv2.GaussianBlur(gray, (5, 5), 0),
            cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)[1],
        ):
            decoded = pyzbar.decode(processed)
            if decoded:
                try:
                    return self.decode_qr_payload(decoded[0].data)
                except ValueError:
                    logger.debug("Ignoring QR code without a usable address")
        return None

    def read_from_file(self, path: str) -> Optional[str]:  # pragma: no cover - requires optional deps
        """Decode the address from a QR image on disk using OpenCV and :mod:`pyzbar`."""

        try:
            import cv2  # type: ignore
        except Exception:
            return None

        image = cv2.imread(path)
        if image is None:
            return None
        return self.decode_frame(image)


__all__ = ["QRCodeManager"]
