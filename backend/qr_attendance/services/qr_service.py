"""QR token issuing and validation service.

A token is an HS256 JWT carrying the session id (``sid``), the round
(``rnd``) and the issue time (``iat``), signed with the session's current
secret. Rotating the secret or advancing the round invalidates every token
minted before it.
"""
import base64
import calendar
import io
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict

import jwt
import qrcode

from qr_attendance import db
from qr_attendance.models.class_session import ClassSession
from qr_attendance.services.session_service import SessionService
from qr_attendance.utils.exceptions import (
    StaleRound, StateError, TokenError, TokenRejection
)

TOKEN_ALGORITHM = 'HS256'
EPOCH = datetime(1970, 1, 1)

# Expiry is checked against the session's broadcast_duration, not by PyJWT
DECODE_OPTIONS = {
    'verify_exp': False,
    'verify_iat': False,
    'verify_nbf': False,
    'require': ['sid', 'rnd', 'iat'],
}


def _to_epoch(moment: datetime) -> int:
    return calendar.timegm(moment.utctimetuple())


@dataclass(frozen=True)
class TokenClaims:
    """What a valid token proves."""
    session_id: int
    round_no: int
    issued_at: datetime
    expires_at: datetime

    def to_dict(self) -> Dict:
        return {
            'session_id': self.session_id,
            'round': self.round_no,
            'issued_at': self.issued_at.isoformat(),
            'expires_at': self.expires_at.isoformat()
        }


class QRService:
    """Service for QR code operations."""

    @staticmethod
    def issue_token(session_id: int, round_no: int, now: datetime = None) -> str:
        """Mint a token for the session's active round."""
        session = SessionService.get_session(session_id)
        if session.is_closed:
            raise StateError("Session is closed")
        if not session.current_secret:
            raise StateError("No QR secret has been issued for this session yet")
        if round_no != session.current_round:
            raise StaleRound(
                f"Round {round_no} is not the active round ({session.current_round})",
                {'current_round': session.current_round}
            )

        now = now or datetime.utcnow()
        payload = {
            'sid': session.id,
            'rnd': round_no,
            'iat': _to_epoch(now)
        }
        return jwt.encode(payload, session.current_secret, algorithm=TOKEN_ALGORITHM)

    @staticmethod
    def validate_token(token: str, now: datetime = None) -> TokenClaims:
        """Check a scanned token against the session's current state.

        Raises TokenError (forged, expired, session closed, stale round). A
        token naming a session that does not exist is treated as forged.
        """
        if not isinstance(token, str) or not token:
            raise TokenError(TokenRejection.FORGED, "Invalid QR code")

        try:
            claims = jwt.decode(token, options={'verify_signature': False})
        except jwt.InvalidTokenError:
            raise TokenError(TokenRejection.FORGED, "Invalid QR code format")

        session_id, round_no, issued = claims.get('sid'), claims.get('rnd'), claims.get('iat')
        if not all(isinstance(value, int) and not isinstance(value, bool)
                   for value in (session_id, round_no, issued)):
            raise TokenError(TokenRejection.FORGED, "Invalid QR code")

        session = db.session.get(ClassSession, session_id)
        if session is None:
            raise TokenError(TokenRejection.FORGED, "Invalid QR code")

        if session.is_closed or not session.current_secret:
            raise TokenError(TokenRejection.SESSION_CLOSED,
                             "Attendance for this session is closed")

        if round_no != session.current_round:
            raise TokenError(
                TokenRejection.STALE_ROUND,
                "This QR code belongs to a previous round, scan the current one",
                {'token_round': round_no, 'current_round': session.current_round}
            )

        try:
            jwt.decode(token, session.current_secret,
                       algorithms=[TOKEN_ALGORITHM], options=DECODE_OPTIONS)
        except jwt.InvalidTokenError:
            raise TokenError(TokenRejection.FORGED, "Invalid QR code")

        issued_at = EPOCH + timedelta(seconds=issued)
        expires_at = issued_at + timedelta(seconds=session.broadcast_duration)
        if (now or datetime.utcnow()) > expires_at:
            raise TokenError(TokenRejection.EXPIRED, "QR code has expired",
                             {'expired_at': expires_at.isoformat()})

        return TokenClaims(session_id, round_no, issued_at, expires_at)

    @staticmethod
    def render_qr(token: str) -> str:
        """Render the token as a base64 PNG data URI."""
        qr = qrcode.QRCode(
            version=None,  # Auto-determine size
            error_correction=qrcode.constants.ERROR_CORRECT_H,  # High error correction
            box_size=10,
            border=4,
        )
        qr.add_data(token)
        qr.make(fit=True)

        img = qr.make_image(fill_color="black", back_color="white")

        buffered = io.BytesIO()
        img.save(buffered, format="PNG")
        img_str = base64.b64encode(buffered.getvalue()).decode()

        return f"data:image/png;base64,{img_str}"

    @staticmethod
    def broadcast(session_id: int, now: datetime = None, with_image: bool = True) -> Dict:
        """Token for the projector screen, rotating the secret when it lapsed."""
        now = now or datetime.utcnow()
        session = SessionService.get_session(session_id)

        if session.secret_is_expired(now):
            _, expires_at = SessionService.rotate_secret(session_id, now=now)
        else:
            expires_at = session.secret_expires_at

        session = SessionService.get_session(session_id)
        token = QRService.issue_token(session_id, session.current_round, now=now)

        data = {
            'token': token,
            'session_id': session_id,
            'round': session.current_round,
            'max_count': session.max_count,
            'expires_in': session.broadcast_duration,
            'secret_expires_at': expires_at.isoformat()
        }
        if with_image:
            data['qr_image'] = QRService.render_qr(token)
        return data
