"""Transaction helper mapping database failures onto storage errors."""
from typing import Callable, TypeVar

from flask import current_app
from sqlalchemy.exc import OperationalError, TimeoutError as PoolTimeoutError

from qr_attendance import db
from qr_attendance.utils.exceptions import StorageConflict, StorageTimeout

T = TypeVar('T')


def run_in_transaction(operation: Callable[[], T], retries: int = 1, label: str = 'write') -> T:
    """Run ``operation`` and commit, all-or-nothing.

    OperationalError (lock contention, serialization failure, statement
    timeout) is a StorageConflict and is retried ``retries`` times before
    surfacing as StorageTimeout. Anything else rolls back and propagates.
    """
    attempt = 0
    while True:
        try:
            result = operation()
            db.session.commit()
            return result
        except PoolTimeoutError as e:
            db.session.rollback()
            current_app.logger.error('Storage pool timeout during %s: %s', label, e)
            raise StorageTimeout('The attendance store did not respond in time') from e
        except OperationalError as e:
            db.session.rollback()
            conflict = StorageConflict(f'Storage conflict during {label}')
            if attempt >= retries:
                current_app.logger.error('Giving up on %s after %d attempts: %s',
                                         label, attempt + 1, e.orig)
                raise StorageTimeout('The attendance store is busy, please retry') from conflict
            attempt += 1
            current_app.logger.warning('Retrying %s after storage conflict: %s', label, e.orig)
        except Exception:
            db.session.rollback()
            raise
