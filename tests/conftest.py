from __future__ import annotations

import sys
from pathlib import Path

import pytest
from cryptography.fernet import Fernet

BASE_DIR = Path(__file__).resolve().parents[1]
SRC_DIR = BASE_DIR / "src"
TESTS_DIR = Path(__file__).resolve().parent

for path in (SRC_DIR, TESTS_DIR):
    sys.path.insert(0, str(path))

from fake_backend import INVENTORY_URL, UPC_URL, USER_URL, FakeBackend  # noqa: E402
from intellistock_client.config import ClientConfig  # noqa: E402
from intellistock_client.credential_store import CredentialStore  # noqa: E402


@pytest.fixture()
def config(tmp_path: Path) -> ClientConfig:
    return ClientConfig(
        env_name="test",
        inventory_base_url=INVENTORY_URL,
        user_base_url=USER_URL,
        upc_base_url=UPC_URL,
        retries=0,
        retry_backoff_seconds=0.0,
        data_dir=tmp_path,
        credential_key=Fernet.generate_key().decode("utf-8"),
    )


@pytest.fixture()
def credential_store(tmp_path: Path, config: ClientConfig) -> CredentialStore:
    store = CredentialStore(directory=tmp_path, key=config.credential_key)
    store.set_access_token("token-1")
    store.set_subject_id("auth0|owner")
    return store


@pytest.fixture()
def backend() -> FakeBackend:
    return FakeBackend()
