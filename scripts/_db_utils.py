from __future__ import annotations

from contextlib import contextmanager

from sqlalchemy.orm import Session

from app.pms.db import make_engine, make_sessionmaker


@contextmanager
def script_session(db_url: str):
    """Standalone session for release/seed scripts that must not build the Flask app."""
    engine = make_engine(db_url)
    s: Session = make_sessionmaker(engine)()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
        engine.dispose()
