import os
import tempfile

# banco padrão descartável antes de qualquer import do pacote (DB_URL é lido no import)
os.environ.setdefault("DB_URL", f"sqlite:///{tempfile.mkdtemp(prefix='juriscan-')}/default.db")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest

from juriscan.persistence import db as db_module


@pytest.fixture(autouse=True)
def fresh_db(tmp_path):
    """Cada teste roda num SQLite novo em tmp_path."""
    db_module.configure(f"sqlite:///{tmp_path / 'test.db'}")
    db_module.init_db()
    yield
    db_module.SessionLocal.remove()


@pytest.fixture(autouse=True)
def reset_gateway_singleton():
    from juriscan.gateways.legal_data import reset_legal_data_gateway
    reset_legal_data_gateway()
    yield
    reset_legal_data_gateway()
