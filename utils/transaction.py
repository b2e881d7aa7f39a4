from contextlib import contextmanager

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from models import db
from utils.errors import AppError, Conflict, InternalError


@contextmanager
def atomic(action):
    """
    Transactional scope for one user-triggered write.

    Commits on success. On any failure every write made in the scope is
    rolled back and the error surfaces to the caller; nothing is retried.
    """
    try:
        yield db.session
        db.session.commit()
    except AppError:
        db.session.rollback()
        raise
    except StaleDataError as e:
        db.session.rollback()
        current_app.logger.warning("%s: concurrent modification detected (%s)", action, e)
        raise Conflict("The record was modified by another request. Reload and try again.")
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("%s failed", action)
        raise InternalError()
