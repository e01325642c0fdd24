from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError, DBAPIError
from sqlalchemy.orm import Session, sessionmaker, declarative_base
from typing import Callable, TypeVar
from app.core.config import settings
import logging

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Códigos SQLSTATE de PostgreSQL que indican un conflicto transitorio
TRANSIENT_PGCODES = {
    "40001",  # serialization_failure
    "40P01",  # deadlock_detected
    "55P03",  # lock_not_available
}


def _engine_options() -> dict:
    if settings.is_sqlite:
        return {
            "connect_args": {"check_same_thread": False, "timeout": 15},
            "echo": settings.DEBUG and settings.ENVIRONMENT == "development",
        }
    return {
        "pool_pre_ping": True,
        "pool_size": 10,
        "max_overflow": 20,
        "echo": settings.DEBUG and settings.ENVIRONMENT == "development",
    }


sync_engine = create_engine(settings.database_url, **_engine_options())

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=sync_engine)

Base = declarative_base()


def get_db():
    """Genera una sesión de base de datos por request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def is_transient_error(exc: Exception) -> bool:
    """Indica si el error de almacenamiento es un bloqueo/deadlock reintentable."""
    if not isinstance(exc, (OperationalError, DBAPIError)):
        return False
    orig = getattr(exc, "orig", None)
    pgcode = getattr(orig, "pgcode", None)
    if pgcode in TRANSIENT_PGCODES:
        return True
    message = str(orig or exc).lower()
    return "database is locked" in message or "deadlock" in message


def run_in_transaction(db: Session, work: Callable[[Session], T], retries: int = 1) -> T:
    """
    Ejecutar `work` como una unidad atómica y hacer commit.

    Cualquier error provoca rollback completo. Los errores transitorios
    (deadlock, lock timeout) se reintentan `retries` veces; el callable se
    ejecuta de nuevo desde cero, por lo que debe incluir sus validaciones.
    """
    attempt = 0
    while True:
        try:
            result = work(db)
            db.commit()
            return result
        except Exception as e:
            db.rollback()
            if attempt < retries and is_transient_error(e):
                attempt += 1
                logger.warning(f"Transient storage error, retrying unit of work ({attempt}/{retries}): {e}")
                continue
            raise
