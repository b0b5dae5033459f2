# =============================================================================
# tests/unit/test_errors.py
# Unit Tests for the error hierarchy and handlers
# =============================================================================

import pytest

from shop_core.errors import (
    ConfigurationError,
    LoadError,
    OfflineError,
    RemoteError,
    ShopSyncError,
    StorageError,
    ValidationError,
    error_boundary,
    handle_error,
)


class TestExceptionHierarchy:
    """Codes, details and recoverability"""

    @pytest.mark.parametrize("error,code,recoverable", [
        (OfflineError(), "OFFLINE_001", True),
        (RemoteError("boom", table="vales"), "REMOTE_001", True),
        (StorageError("disk", db_path="x.db"), "STORE_001", False),
        (LoadError("nope", entity="mecanicos"), "LOAD_001", True),
        (ValidationError("bad", field="status"), "DATA_001", True),
        (ConfigurationError("cfg", config_key="mode"), "CONFIG_001", False),
    ])
    def test_codes(self, error, code, recoverable):
        assert isinstance(error, ShopSyncError)
        assert error.code == code
        assert error.recoverable is recoverable

    def test_str_includes_details(self):
        error = RemoteError("Could not save", table="servicos", operation="upsert")
        assert str(error) == (
            "[REMOTE_001] Could not save | Details: "
            "{'table': 'servicos', 'operation': 'upsert'}"
        )

    def test_to_dict(self):
        data = OfflineError(operation="save").to_dict()
        assert data["error_type"] == "OfflineError"
        assert data["message"] == "You are offline"
        assert data["details"] == {"operation": "save"}


class TestHandleError:
    """Central log + notify"""

    def test_recoverable_error_message(self, notifier):
        handle_error(RemoteError("Backend down"), notifier)
        assert notifier.texts("error") == ["Backend down"]

    def test_user_message_overrides(self, notifier):
        handle_error(RemoteError("HTTP 503"), notifier, user_message="Could not save voucher")
        assert notifier.texts("error") == ["Could not save voucher"]

    def test_non_recoverable_error(self, notifier):
        handle_error(StorageError("disk full"), notifier)
        assert notifier.texts("error") == ["Critical error: disk full. Please contact support."]

    def test_plain_exception(self, notifier):
        handle_error(RuntimeError("oops"), notifier, log_error=False)
        assert notifier.texts("error") == ["oops"]

    def test_log_only(self, caplog):
        handle_error(LoadError("cannot list"))
        assert "[LOAD_001] cannot list" in caplog.text


class TestErrorBoundary:
    """Decorated coroutines never raise"""

    @pytest.mark.asyncio
    async def test_returns_default_and_notifies(self, notifier):
        class Service:
            def __init__(self):
                self.notifier = notifier

            @error_boundary(default_return="fallback", error_message="Could not fetch")
            async def fetch(self):
                raise RemoteError("down")

        assert await Service().fetch() == "fallback"
        assert notifier.texts("error") == ["Could not fetch"]

    @pytest.mark.asyncio
    async def test_passes_through_result(self):
        @error_boundary(default_return=None)
        async def ok(value):
            return value * 2

        assert await ok(21) == 42
