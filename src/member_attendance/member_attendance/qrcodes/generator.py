from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Protocol

import qrcode

from ..core.constants import QR_URL_PREFIX
from ..core.exceptions import ArtifactGenerationError

logger = logging.getLogger(__name__)


class ArtifactGenerator(Protocol):
    def generate(self, member_id: str) -> str:
        """Produce the member's card artifact and return a reference to it."""

        raise NotImplementedError


def render_qr_png(data: str) -> bytes:
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_H,
        box_size=10,
        border=1,
    )
    qr.add_data(data)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")

    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


class QRCodeGenerator(ArtifactGenerator):
    """Writes ``<member_id>.png`` encoding the member ID into ``output_dir``."""

    def __init__(self, output_dir: str | Path, *, url_prefix: str = QR_URL_PREFIX):
        self._output_dir = Path(output_dir)
        self._url_prefix = url_prefix.rstrip("/")

    def generate(self, member_id: str) -> str:
        file_name = f"{member_id}.png"
        try:
            self._output_dir.mkdir(parents=True, exist_ok=True)
            (self._output_dir / file_name).write_bytes(render_qr_png(member_id))
        except OSError as e:
            logger.error("QR code generation failed for member %s: %s", member_id, e)
            raise ArtifactGenerationError(f"Error generating QR code: {e}") from e
        return f"{self._url_prefix}/{file_name}"
