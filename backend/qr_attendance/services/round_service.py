"""Round (tur_no) controller for class sessions."""
from datetime import datetime

from flask import current_app
from sqlalchemy import update

from qr_attendance import db
from qr_attendance.models.class_session import ClassSession
from qr_attendance.services.session_service import SessionService
from qr_attendance.services.storage import run_in_transaction
from qr_attendance.utils.exceptions import (
    RoundLimitReached, StateError, StorageConflict, StorageTimeout
)


class RoundService:
    """Advances the active round of a session, bounded by max_count."""

    @staticmethod
    def current_round(session_id: int) -> int:
        """Active round; 0 until the session is first advanced."""
        return SessionService.get_session(session_id).current_round

    @staticmethod
    def advance_round(session_id: int, expected_round: int = None, now: datetime = None) -> int:
        """Move the session to its next round and rotate the QR secret.

        The round is bumped with a compare-and-set UPDATE on the round the
        caller observed, so two concurrent advances never skip a round.
        With ``expected_round`` a lost race is reported instead of retried.
        """
        session = SessionService.get_session(session_id)

        for attempt in range(2):
            if attempt:
                db.session.expire(session)

            if session.is_closed:
                raise StateError("Session is closed")
            observed = session.current_round
            if expected_round is not None and observed != expected_round:
                raise StateError(
                    f"Session is already at round {observed}",
                    {'current_round': observed}
                )
            if observed >= session.max_count:
                raise RoundLimitReached(
                    f"All {session.max_count} rounds of this session have been used",
                    {'current_round': observed, 'max_count': session.max_count}
                )

            moment = now or datetime.utcnow()
            secret, expires_at = SessionService.mint_secret(session.broadcast_duration, moment)

            def _advance():
                return db.session.execute(
                    update(ClassSession)
                    .where(ClassSession.id == session_id,
                           ClassSession.closed_at.is_(None),
                           ClassSession.current_round == observed,
                           ClassSession.current_round < ClassSession.max_count)
                    .values(current_round=observed + 1,
                            current_secret=secret,
                            secret_issued_at=moment,
                            secret_expires_at=expires_at,
                            updated_at=moment)
                    .execution_options(synchronize_session=False)
                ).rowcount

            if run_in_transaction(_advance, label='advance_round') == 1:
                current_app.logger.info('Session %s advanced to round %s', session_id, observed + 1)
                return observed + 1

            current_app.logger.warning('Round advance raced on session %s (observed %s)',
                                       session_id, observed)
            if expected_round is not None:
                raise StateError("Round was advanced concurrently")

        raise StorageTimeout("Session is being modified concurrently, please retry") \
            from StorageConflict("advance_round lost the compare-and-set twice")
