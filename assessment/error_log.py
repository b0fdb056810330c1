# assessment/error_log.py

import logging
import re
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from assessment.connection import GcsUploader
from assessment.entities import ErrorLogEntry

logger = logging.getLogger("maturity_backend")


def sanitize_company_name(name: Any) -> str:
    name = name if isinstance(name, str) and name else "Unknown-Company"
    return re.sub(r"[^a-zA-Z0-9\-_]", "-", name)[:50]


class ErrorLog:
    """
    Diagnostic record sink. Rows go to the `error_log` table and, when a bucket
    is configured, a copy goes to errors/<company>_<id>.json in Cloud Storage.
    """

    def __init__(self, session_factory: sessionmaker, uploader: Optional[GcsUploader] = None):
        self.session_factory = session_factory
        self.uploader = uploader

    def record(self, error_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Persist one record; raises on failure. Returns {"errorId", "location"}.
        Records are write-once: a second record with an existing id is ignored and
        the stored one is kept.
        """
        error_id = str(error_data["id"])
        company = sanitize_company_name(error_data.get("companyName"))

        session: Session = self.session_factory()
        try:
            session.add(ErrorLogEntry(
                id=error_id,
                type=str(error_data.get("type") or "")[:64] or None,
                company_name=company,
                payload=error_data,
            ))
            session.commit()
        except IntegrityError:
            session.rollback()
            logger.warning(f"Error {error_id} already logged, keeping the stored record")
            return {"errorId": error_id, "location": f"db://error_log/{error_id}"}
        except SQLAlchemyError:
            session.rollback()
            raise
        finally:
            session.close()

        location = f"db://error_log/{error_id}"
        if self.uploader is not None:
            location = self.uploader.upload_json(f"errors/{company}_{error_id}.json", error_data)

        logger.info(f"Error logged: {error_id} type={error_data.get('type')} timestamp={error_data.get('timestamp')} at {location}")
        return {"errorId": error_id, "location": location}

    def record_safely(self, error_data: Dict[str, Any]) -> bool:
        """
        Fire-and-forget variant for the request boundary: never raises.
        """
        try:
            self.record(error_data)
            return True
        except Exception as e:
            logger.error(f"Failed to log error {error_data.get('id')}: {e}")
            return False
