# assessment/result_store.py

import logging
import re
import secrets
import string
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from assessment.entities import AssessmentResult, utcnow
from assessment.errors import NotFound, StorageError
from assessment.models import Analysis, Profile, Scores, StoredResult
from assessment.scorer import tier_for

logger = logging.getLogger("maturity_backend")

ID_ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits
ID_LENGTH = 8
MAX_ID_ATTEMPTS = 5
RESULT_ID_RE = re.compile(rf"^[A-Za-z0-9]{{{ID_LENGTH}}}$")


def generate_result_id() -> str:
    return "".join(secrets.choice(ID_ALPHABET) for _ in range(ID_LENGTH))


class ResultStore:
    """
    Durable write-once id -> StoredResult mapping.

    - put() draws a fresh 8-char id, re-drawing on collision up to MAX_ID_ATTEMPTS times
    - rows expire `ttl_days` after creation; expired rows read as NotFound even
      before sweep_expired() removes them
    - no update or delete operation is exposed
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        ttl_days: int = 90,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = generate_result_id,
    ):
        self.session_factory = session_factory
        self.ttl = timedelta(days=ttl_days)
        self._clock = clock
        self._id_factory = id_factory

    def put(self, profile: Profile, scores: Scores, analysis: Analysis) -> StoredResult:
        created_at = self._clock()
        tier = tier_for(scores.overall)

        for attempt in range(1, MAX_ID_ATTEMPTS + 1):
            result_id = self._id_factory()
            record = StoredResult(
                id=result_id,
                profile=profile,
                scores=scores,
                tier=tier,
                analysis=analysis,
                created_at=created_at.replace(tzinfo=timezone.utc),
            )
            session: Session = self.session_factory()
            try:
                if session.get(AssessmentResult, result_id) is not None:
                    logger.warning(f"ResultStore.put: id collision on attempt {attempt}, regenerating")
                    continue
                session.add(AssessmentResult(
                    id=result_id,
                    payload=record.to_wire(),
                    created_at=created_at,
                    expires_at=created_at + self.ttl,
                ))
                session.commit()
                logger.info(f"ResultStore.put: stored result {result_id}")
                return record
            except IntegrityError:
                session.rollback()
                logger.warning(f"ResultStore.put: concurrent insert on id, attempt {attempt}, regenerating")
                continue
            except SQLAlchemyError as e:
                session.rollback()
                raise StorageError(f"Failed to save results: {e}") from e
            finally:
                session.close()

        raise StorageError(f"Could not allocate a unique result id after {MAX_ID_ATTEMPTS} attempts")

    def get(self, result_id: str) -> StoredResult:
        if not isinstance(result_id, str) or not RESULT_ID_RE.match(result_id):
            raise NotFound(f"Malformed result id: {result_id!r}")

        session: Session = self.session_factory()
        try:
            row: Optional[AssessmentResult] = session.get(AssessmentResult, result_id)
            if row is None:
                raise NotFound(f"Result not found: {result_id}")
            if row.expires_at <= self._clock():
                raise NotFound(f"Result expired: {result_id}")
            return StoredResult.model_validate(row.payload)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to retrieve results: {e}") from e
        finally:
            session.close()

    def sweep_expired(self) -> int:
        """
        Delete expired rows. Returns how many rows were removed.
        """
        session: Session = self.session_factory()
        try:
            result = session.execute(
                delete(AssessmentResult).where(AssessmentResult.expires_at <= self._clock())
            )
            session.commit()
            removed = result.rowcount or 0
            if removed:
                logger.info(f"ResultStore.sweep_expired: removed {removed} expired results")
            return removed
        except SQLAlchemyError as e:
            session.rollback()
            raise StorageError(f"Failed to sweep expired results: {e}") from e
        finally:
            session.close()
