import pytest
from werkzeug.security import check_password_hash

from app.pms.constants import ADMIN_ROLE_KEY, MANAGER_PERMISSIONS, MANAGER_ROLE_KEY, PERMISSIONS
from app.pms.db import make_engine
from app.pms.models import Base, Permission, Role, User
from scripts._db_utils import script_session
from scripts.init_db import seed_only
from scripts.release import release_database_url
from scripts.start import gunicorn_argv


@pytest.fixture()
def db_url(tmp_path):
    url = f"sqlite:///{tmp_path/'seed.db'}"
    engine = make_engine(url)
    Base.metadata.create_all(bind=engine)
    engine.dispose()
    return url


def test_seed_is_idempotent(db_url, monkeypatch):
    monkeypatch.setenv("ADMIN_EMAIL", "Boss@Example.com")
    monkeypatch.setenv("ADMIN_PASSWORD", "first")
    seed_only(database_url=db_url)
    monkeypatch.setenv("ADMIN_PASSWORD", "second")
    seed_only(database_url=db_url)

    with script_session(db_url) as s:
        assert s.query(Permission).count() == len(PERMISSIONS)
        admin = s.query(Role).filter(Role.key == ADMIN_ROLE_KEY).one()
        manager = s.query(Role).filter(Role.key == MANAGER_ROLE_KEY).one()
        assert len(admin.permissions) == len(PERMISSIONS)
        assert {p.key for p in manager.permissions} == set(MANAGER_PERMISSIONS)
        user = s.query(User).one()
        assert user.email == "boss@example.com"
        assert [r.key for r in user.roles] == [ADMIN_ROLE_KEY]
        # an existing password is never reset
        assert check_password_hash(user.password_hash, "first")


def test_release_database_url_guardrails(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    with pytest.raises(RuntimeError, match="DATABASE_URL"):
        release_database_url()
    monkeypatch.setenv("DATABASE_URL", "sqlite:///x.db")
    monkeypatch.setenv("ENV", "production")
    with pytest.raises(RuntimeError, match="sqlite"):
        release_database_url()
    monkeypatch.setenv("ENV", "development")
    assert release_database_url() == "sqlite:///x.db"


def test_gunicorn_argv():
    argv = gunicorn_argv(9000, 3, 60)
    assert argv[:2] == ["gunicorn", "app.wsgi:app"]
    assert argv[argv.index("--bind") + 1] == "0.0.0.0:9000"
    assert argv[argv.index("--workers") + 1] == "3"
    assert argv[argv.index("--timeout") + 1] == "60"
