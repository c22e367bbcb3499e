"""Chart artifact decoding.

The ledger returns chart bytes in whichever shape its RPC layer produced:
a ``0x``-prefixed hex string, a byte sequence, or a list of integers. The
decoder normalises all three to bytes and only trusts the result if it
starts with the PNG magic byte. Anything else is logged and dropped.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Any

import bittensor as bt

from haulledger.ledger.errors import ArtifactError, HeaderMismatch, UnrecognizedFormat
from haulledger.ledger.models import PNG_MAGIC, ChartArtifact


class DisplayHandle:
    """Transient file holding a decoded chart for display.

    Owned by whichever view shows it; ``release()`` removes the file and is
    safe to call more than once.
    """

    def __init__(self, path: Path):
        self.path = path
        self._released = False

    @property
    def uri(self) -> str:
        return self.path.as_uri()

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass

    def __enter__(self) -> DisplayHandle:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.release()


def _hex_to_bytes(text: str) -> bytes:
    digits = text[2:]
    if len(digits) % 2:
        raise UnrecognizedFormat(f"odd-length hex payload ({len(digits)} digits)")
    try:
        return bytes.fromhex(digits)
    except ValueError as e:
        raise UnrecognizedFormat(f"invalid hex payload: {e}") from e


def _array_to_bytes(items: list | tuple) -> bytes:
    for i, v in enumerate(items):
        if isinstance(v, bool) or not isinstance(v, int) or not 0 <= v <= 255:
            raise UnrecognizedFormat(f"array element {i} is not a byte: {v!r}")
    return bytes(items)


class ArtifactDecoder:
    """Normalises raw chart payloads into validated ChartArtifacts."""

    def __init__(self, tmp_dir: str | None = None):
        self.tmp_dir = tmp_dir

    def convert(self, raw: Any) -> bytes:
        """Convert any accepted wire shape to bytes.

        Raises:
            UnrecognizedFormat: the payload is none of hex string, bytes, int array.
        """
        if isinstance(raw, str):
            if raw[:2].lower() != "0x":
                raise UnrecognizedFormat("string payload is not 0x-prefixed hex")
            return _hex_to_bytes(raw)
        if isinstance(raw, (bytes, bytearray, memoryview)):
            return bytes(raw)
        if isinstance(raw, (list, tuple)):
            return _array_to_bytes(raw)
        raise UnrecognizedFormat(f"unsupported payload type: {type(raw).__name__}")

    def validate(self, data: bytes) -> ChartArtifact:
        """Check the PNG magic byte.

        Raises:
            HeaderMismatch: empty buffer or first byte is not 0x89.
        """
        if not data or data[0] != PNG_MAGIC:
            first = f"0x{data[0]:02x}" if data else "none"
            raise HeaderMismatch(f"PNG header is not correct (first byte {first})")
        return ChartArtifact(data=data)

    def decode(self, raw: Any) -> ChartArtifact | None:
        """Decode a raw payload, returning None when it cannot be trusted."""
        try:
            return self.validate(self.convert(raw))
        except ArtifactError as e:
            bt.logging.warning({"artifact_decoder": {
                "error": type(e).__name__,
                "detail": str(e),
                "payload_type": type(raw).__name__,
            }})
            return None

    def open_display(self, artifact: ChartArtifact) -> DisplayHandle:
        """Write the artifact to a transient file the caller must release."""
        fd, path = tempfile.mkstemp(prefix="haul-chart-", suffix=".png", dir=self.tmp_dir)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(artifact.data)
        except Exception:
            try:
                os.unlink(path)
            except OSError:
                pass
            raise
        bt.logging.debug({"artifact_decoder": {"display": path, "bytes": len(artifact)}})
        return DisplayHandle(Path(path))


__all__ = ["ArtifactDecoder", "DisplayHandle"]
