import pytest

from dmarc_store.errors import NotFoundError, ValidationError


def test_save_and_read_values(uow):
    uow.settings_store.save("status.emails-for-last-n-days", "30")
    assert uow.settings_store.value("status.emails-for-last-n-days") == "30"

    uow.settings_store.save("status.emails-for-last-n-days", "7")
    assert uow.settings_store.value("status.emails-for-last-n-days") == "7"

    with pytest.raises(NotFoundError, match="Setting not found"):
        uow.settings_store.value("missing")


def test_user_value_falls_back_to_global(uow):
    uow.settings_store.save("report-view.sort-records-by", "ip,ascent")
    uow.settings_store.save("report-view.sort-records-by", "ip,descent", user_id=2)

    assert uow.settings_store.get("report-view.sort-records-by", 2) == "ip,descent"
    assert uow.settings_store.get("report-view.sort-records-by", 3) == "ip,ascent"
    assert uow.settings_store.get("unknown", 3, "fallback") == "fallback"


def test_get_looks_rows_up_without_not_found_errors(uow, monkeypatch):
    store = uow.settings_store
    store.save("status.emails-for-last-n-days", "30")

    def _no_value(*args, **kwargs):
        raise AssertionError("value() must not be used for lookups")

    monkeypatch.setattr(store, "value", _no_value)
    assert store.get("status.emails-for-last-n-days", 5) == "30"
    assert store.get("missing", 5) is None


def test_list_is_per_scope_and_sorted(uow):
    uow.settings_store.save("b", "2")
    uow.settings_store.save("a", "1")
    uow.settings_store.save("a", "user", user_id=4)
    assert list(uow.settings_store.list().items()) == [("a", "1"), ("b", "2")]
    assert uow.settings_store.list(4) == {"a": "user"}


def test_rejects_bad_names(uow):
    with pytest.raises(ValidationError):
        uow.settings_store.save("", "x")
    with pytest.raises(ValidationError):
        uow.settings_store.save("k" * 65, "x")
