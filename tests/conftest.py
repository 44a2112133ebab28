import pytest
from cryptography.fernet import Fernet

from src.core.database import DatabaseManager


@pytest.fixture
def db(tmp_path):
    manager = DatabaseManager(tmp_path / "data.db", encryption_key=Fernet.generate_key())
    manager.connect()
    yield manager
    manager.close()
