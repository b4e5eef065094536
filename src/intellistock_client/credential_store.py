from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

from cryptography.fernet import Fernet, InvalidToken
from pydantic import BaseModel, Field, ValidationError, field_validator

from .exceptions import CredentialStoreError
from .logger import get_logger, log_event

logger = get_logger(__name__)


class CredentialRecord(BaseModel):
    access_token: str | None = None
    subject_id: str | None = None
    internal_user_id: str | None = None
    owned_store_ids: list[str] = Field(default_factory=list)
    selected_store_id: str | None = None

    @field_validator("owned_store_ids", mode="before")
    @classmethod
    def _clean_store_ids(cls, value: object) -> list[str]:
        if not isinstance(value, (list, tuple)):
            return []
        cleaned = ["" if entry is None else str(entry).strip() for entry in value]
        return [entry for entry in cleaned if entry]


@dataclass
class CredentialStore:
    """Encrypted key-value storage for the signed-in user's credential and context ids."""

    directory: Path
    key: str | None = None
    filename: str = "credentials.enc"
    key_filename: str = "credentials.key"
    _record: CredentialRecord | None = field(default=None, init=False, repr=False)
    _fernet: Fernet | None = field(default=None, init=False, repr=False)

    def _path(self) -> Path:
        return self.directory / self.filename

    def _key_path(self) -> Path:
        return self.directory / self.key_filename

    def _cipher(self) -> Fernet:
        if self._fernet is not None:
            return self._fernet
        key = self.key or self._load_or_create_key()
        try:
            self._fernet = Fernet(key.encode("utf-8"))
        except ValueError as exc:
            raise CredentialStoreError("invalid credential encryption key") from exc
        return self._fernet

    def _load_or_create_key(self) -> str:
        path = self._key_path()
        if path.exists():
            return path.read_text(encoding="utf-8").strip()
        key = Fernet.generate_key().decode("utf-8")
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            path.write_text(key, encoding="utf-8")
            path.chmod(0o600)
        except OSError as exc:
            raise CredentialStoreError(f"Unable to create credential key at {path}") from exc
        return key

    def load(self) -> CredentialRecord:
        if self._record is not None:
            return self._record
        path = self._path()
        if not path.exists():
            self._record = CredentialRecord()
            return self._record
        try:
            raw = self._cipher().decrypt(path.read_bytes())
            self._record = CredentialRecord.model_validate(json.loads(raw))
        except (InvalidToken, json.JSONDecodeError, ValidationError, OSError) as exc:
            log_event(
                logger,
                "credential_store",
                "load",
                "discarded",
                level=logging.WARNING,
                reason=type(exc).__name__,
            )
            self._discard_file()
            self._record = CredentialRecord()
        return self._record

    def save(self, record: CredentialRecord) -> None:
        path = self._path()
        token = self._cipher().encrypt(record.model_dump_json().encode("utf-8"))
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            path.write_bytes(token)
            path.chmod(0o600)
        except OSError as exc:
            raise CredentialStoreError(f"Unable to write credentials to {path}") from exc
        self._record = record

    def _update(self, **changes: object) -> None:
        self.save(self.load().model_copy(update=changes))

    def get_access_token(self) -> str | None:
        return self.load().access_token

    def set_access_token(self, token: str) -> None:
        if token:
            self._update(access_token=token)

    def get_subject_id(self) -> str | None:
        return self.load().subject_id

    def set_subject_id(self, subject_id: str) -> None:
        if subject_id:
            self._update(subject_id=subject_id)

    def get_internal_user_id(self) -> str | None:
        return self.load().internal_user_id

    def set_internal_user_id(self, internal_user_id: str) -> None:
        if internal_user_id:
            self._update(internal_user_id=internal_user_id)

    def get_owned_store_ids(self) -> list[str]:
        return list(self.load().owned_store_ids)

    def set_owned_store_ids(self, store_ids: list[str]) -> None:
        self._update(owned_store_ids=CredentialRecord(owned_store_ids=store_ids).owned_store_ids)

    def get_selected_store_id(self) -> str | None:
        return self.load().selected_store_id

    def set_selected_store_id(self, store_id: str) -> None:
        if store_id:
            self._update(selected_store_id=store_id)

    def clear_context(self) -> None:
        """Forget derived ids while keeping the credential itself."""
        self._update(internal_user_id=None, owned_store_ids=[], selected_store_id=None)

    def clear(self) -> None:
        self._discard_file()
        self._record = CredentialRecord()

    def _discard_file(self) -> None:
        path = self._path()
        if path.exists():
            path.unlink()
