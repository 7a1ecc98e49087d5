import threading

from ctxlog.logging import Field, FieldRegistry, LogContext, call_site_fields, merge_fields, with_field


def test_odd_call_site_pairs_are_dropped() -> None:
    assert merge_fields(None, ["a"]).fields == ()
    assert merge_fields(None, ["a", "1", "b"]).fields == ()


def test_even_call_site_pairs_are_used() -> None:
    res = merge_fields(None, ["a", "1"])

    assert res.fields == (Field("a", "1"),)
    assert res.tags == {"a": "1"}


def test_typed_call_site_fields() -> None:
    assert call_site_fields([Field("a", "1"), Field("b", "2")]) == (Field("a", "1"), Field("b", "2"))


def test_mixed_call_site_forms_degrade_to_nothing() -> None:
    assert call_site_fields(["a", Field("b", "2")]) == ()
    assert call_site_fields(["a", 1]) == ()


def test_merge_order_is_call_site_then_context_then_registry() -> None:
    registry = FieldRegistry(["userID", "clientID"])
    ctx = LogContext.background().with_value("clientID", "c-1").with_value("userID", "u-1")
    ctx = with_field(ctx, "orderUID", "o-1")
    ctx = with_field(ctx, "handler", "create")

    res = merge_fields(ctx, ["step", "validate"], registry)

    assert res.fields == (
        Field("step", "validate"),
        Field("orderUID", "o-1"),
        Field("handler", "create"),
        Field("userID", "u-1"),
        Field("clientID", "c-1"),
    )


def test_registry_skips_absent_empty_and_non_string_values() -> None:
    registry = FieldRegistry(["userID", "clientID", "traceID"])
    ctx = LogContext.background().with_value("clientID", "").with_value("traceID", 42)

    res = merge_fields(ctx, (), registry)

    assert res.fields == ()
    assert res.tags == {}


def test_later_source_wins_in_tags_but_field_list_keeps_both() -> None:
    registry = FieldRegistry(["userID"])
    ctx = with_field(LogContext.background().with_value("userID", "from-registry"), "userID", "from-store")

    res = merge_fields(ctx, (), registry)

    assert res.fields == (Field("userID", "from-store"), Field("userID", "from-registry"))
    assert res.tags == {"userID": "from-registry"}


def test_call_site_tags_map_to_their_values() -> None:
    ctx = with_field(None, "a", "ctx")

    res = merge_fields(ctx, ["a", "call", "b", "2"])

    assert res.tags == {"a": "ctx", "b": "2"}


def test_parent_merge_unaffected_by_child() -> None:
    parent = with_field(None, "a", "1")
    child = with_field(parent, "b", "2")

    assert merge_fields(parent).fields == (Field("a", "1"),)
    assert merge_fields(child).fields == (Field("a", "1"), Field("b", "2"))


def test_registry_keeps_registration_order_without_duplicates() -> None:
    registry = FieldRegistry()
    for key in ("userID", "traceID", "userID"):
        registry.register(key)

    assert registry.keys() == ("userID", "traceID")


def test_registry_concurrent_registration() -> None:
    registry = FieldRegistry()
    threads = [threading.Thread(target=registry.register, args=(f"k{i}",)) for i in range(32)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(registry.keys()) == sorted(f"k{i}" for i in range(32))
