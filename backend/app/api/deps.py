from __future__ import annotations

from typing import Generator

from sqlalchemy.orm import Session

from backend.app.db.session import SessionLocal


def get_db() -> Generator[Session, None, None]:
    """
    Une session par requête.
    Les stores commitent eux-mêmes article par article : ici on ne fait que
    rollback ce qui resterait en cours si l'endpoint lève.
    """
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
