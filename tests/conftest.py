import os

import pytest

from recordstore.bootstrap import create_store
from recordstore.config import StoreConfig, reset_config
from recordstore.database import StoreManager
from recordstore.logger import StructuredLogger
from tests.records import OWNER, VEHICLE


@pytest.fixture(autouse=True)
def _no_log_file(monkeypatch):
    """Keep the suite from writing recordstore.log into the working directory."""
    monkeypatch.setenv("LOG_FILE", "")
    reset_config()
    yield
    reset_config()


@pytest.fixture
def logger():
    return StructuredLogger(name="recordstore.tests", log_file="")


@pytest.fixture
def support_dir(tmp_path):
    return tmp_path / "Application Support"


@pytest.fixture
def config(support_dir):
    return StoreConfig(
        _env_file=None,
        APP_NAME="TestRegister",
        STORE_DIRECTORY_OVERRIDE=str(support_dir),
        LOG_FILE="",
    )


@pytest.fixture
def manager(tmp_path, logger):
    mgr = StoreManager(tmp_path / "store.sqlite", [VEHICLE, OWNER], logger, busy_timeout_s=1.0)
    yield mgr
    mgr.close()


@pytest.fixture
def store(config):
    container = create_store([VEHICLE, OWNER], config=config, log_file="")
    yield container
    container["manager"].close()


@pytest.fixture
def repo(store):
    return store["repository"]


@pytest.fixture
def store_file(store, support_dir):
    path = support_dir / "TestRegister.sqlite"
    assert os.path.exists(path)
    return path
