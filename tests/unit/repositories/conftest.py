from __future__ import annotations

import pytest

from mediagen.db.db_init import init_db
from mediagen.db.db_session import create_engine_for_url, create_session_factory


@pytest.fixture
def session_factory():
    engine = create_engine_for_url("sqlite:///:memory:")
    init_db(engine)
    yield create_session_factory(engine)
    engine.dispose()
