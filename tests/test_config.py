from unittest.mock import patch

import pytest
from pydantic import ValidationError as PydanticValidationError

from form_persistence.config import (
    DEFAULT_EXPIRY_MS,
    DEFAULT_STORAGE_PREFIX,
    PersistenceOptions,
    get_database_url,
)
from form_persistence.models.enums import ErrorLevel


class TestPersistenceOptions:
    def test_defaults(self):
        opts = PersistenceOptions()
        assert opts.file_fields == []
        assert opts.clear_on_close is False
        assert opts.data_expiry_ms == DEFAULT_EXPIRY_MS == 86_400_000
        assert opts.error_level is ErrorLevel.BASIC
        assert opts.storage_prefix == DEFAULT_STORAGE_PREFIX == "form_persistence_"

    def test_invalid_values(self):
        with pytest.raises(PydanticValidationError):
            PersistenceOptions(data_expiry_ms=0)
        with pytest.raises(PydanticValidationError):
            PersistenceOptions(file_fields=["avatar", ""])
        with pytest.raises(PydanticValidationError):
            PersistenceOptions(unknown_option=True)

    def test_from_env_overrides_arguments(self):
        env = {
            "FORM_PERSISTENCE_CLEAR_ON_CLOSE": "yes",
            "FORM_PERSISTENCE_EXPIRY_MS": "1000",
            "FORM_PERSISTENCE_ERROR_LEVEL": "DETAILED",
            "FORM_PERSISTENCE_PREFIX": "app_",
        }
        with patch.dict("os.environ", env):
            opts = PersistenceOptions.from_env(clear_on_close=False, file_fields=["cv"])
        assert opts.clear_on_close is True
        assert opts.data_expiry_ms == 1000
        assert opts.error_level is ErrorLevel.DETAILED
        assert opts.storage_prefix == "app_"
        assert opts.file_fields == ["cv"]

    def test_from_env_without_env(self):
        with patch.dict("os.environ", {}, clear=True):
            opts = PersistenceOptions.from_env(data_expiry_ms=5)
        assert opts.data_expiry_ms == 5

    def test_database_url(self):
        with patch.dict("os.environ", {"FORM_PERSISTENCE_DATABASE_URL": "sqlite:///x.db"}):
            assert get_database_url() == "sqlite:///x.db"
        with patch.dict("os.environ", {}, clear=True):
            assert get_database_url().startswith("sqlite:///")
