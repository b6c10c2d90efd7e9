import json

from sqlalchemy.exc import OperationalError

from form_persistence.errors import (
    FormPersistenceError,
    SerializationError,
    StorageUnavailableError,
    TransactionError,
    ValidationError,
    classify_error,
)


class TestClassifyError:
    def test_taxonomy_errors_pass_through(self):
        err = ValidationError("bad")
        assert classify_error(err, "save_files") is err
        assert err.context == "save_files"
        assert err.code == "request.invalid"

    def test_existing_context_is_kept(self):
        err = SerializationError("bad", "restore:key")
        assert classify_error(err, "restore").context == "restore:key"

    def test_json_errors_become_serialization_errors(self):
        try:
            json.loads("{")
        except json.JSONDecodeError as e:
            err = classify_error(e, "restore")
        assert isinstance(err, SerializationError)
        assert isinstance(err.__cause__, json.JSONDecodeError)

    def test_sqlalchemy_errors_become_transaction_errors(self):
        exc = OperationalError("INSERT", {}, Exception("disk I/O error"))
        err = classify_error(exc, "save")
        assert isinstance(err, TransactionError)
        assert err.context == "save"

    def test_os_errors_mean_unavailable_storage(self):
        err = classify_error(PermissionError("denied"), "save")
        assert isinstance(err, StorageUnavailableError)

    def test_unknown_errors_get_the_base_class(self):
        err = classify_error(RuntimeError("boom"), "clear")
        assert type(err) is FormPersistenceError
        assert str(err) == "boom"
