"""QR check-in token generation and rendering service."""
import base64
import io
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict

import qrcode


@dataclass(frozen=True)
class CheckInToken:
    """Opaque check-in code shown by the lecturer, valid until ``expires_at``."""
    value: str
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        # Still valid at the exact expiry instant
        return now > self.expires_at

    def matches(self, scanned) -> bool:
        if not isinstance(scanned, str) or not scanned:
            return False
        return secrets.compare_digest(self.value.encode(), scanned.encode())

    def to_dict(self) -> Dict:
        return {'value': self.value, 'expires_at': self.expires_at.isoformat()}


class QRService:
    """Service for check-in token operations."""

    TOKEN_BYTES = 24

    @staticmethod
    def mint_token(now: datetime, ttl_seconds: int) -> CheckInToken:
        """Generate a fresh token expiring ``ttl_seconds`` from ``now``."""
        return CheckInToken(
            value=secrets.token_urlsafe(QRService.TOKEN_BYTES),
            expires_at=now + timedelta(seconds=ttl_seconds)
        )

    @staticmethod
    def render_qr(token: CheckInToken) -> str:
        """Render the token as a PNG data URI for the lecturer display."""
        qr = qrcode.QRCode(
            version=None,  # Auto-determine size
            error_correction=qrcode.constants.ERROR_CORRECT_H,
            box_size=10,
            border=4,
        )
        qr.add_data(token.value)
        qr.make(fit=True)

        img = qr.make_image(fill_color="black", back_color="white")

        buffered = io.BytesIO()
        img.save(buffered, format="PNG")
        img_str = base64.b64encode(buffered.getvalue()).decode()

        return f"data:image/png;base64,{img_str}"
