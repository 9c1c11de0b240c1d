import pytest

from factories import FIELDS, SOURCE_OPTIONS, cf, event, expense, lead, ms

from bizpulse.normalize import (
    custom_field_number,
    custom_field_string,
    find_custom_field,
    normalize_event,
    normalize_expense,
    normalize_lead,
    normalize_phone,
    parse_number_loose,
    parse_task_ms,
    status_equals,
    status_in,
    task_name,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("+972-50-123-4567", "0501234567"),
        ("972501234567", "0501234567"),
        ("9720501234567", "0501234567"),
        ("050 123 4567", "0501234567"),
        ("501234567", "0501234567"),
        ("12345", "12345"),
        ("", None),
        ("   ", None),
        ("no digits", None),
        (None, None),
    ],
)
def test_normalize_phone(raw, expected):
    assert normalize_phone(raw) == expected


@pytest.mark.parametrize(
    "raw, expected",
    [
        (1500, 1500.0),
        (12.5, 12.5),
        ("₪ 12,500.00", 12500.0),
        ("3,000 ILS", 3000.0),
        ("-250", -250.0),
        ({"value": "4,500"}, 4500.0),
        ({"value": {"value": 7}}, 7.0),
        ({"amount": 3}, None),
        ("", None),
        ("abc", None),
        ("1.2.3", None),
        (float("inf"), None),
        (float("nan"), None),
        (True, None),
        (None, None),
    ],
)
def test_parse_number_loose(raw, expected):
    assert parse_number_loose(raw) == expected


def test_parse_task_ms():
    assert parse_task_ms("1733400000000") == 1733400000000
    assert parse_task_ms(1733400000000) == 1733400000000
    assert parse_task_ms("") is None
    assert parse_task_ms(None) is None
    assert parse_task_ms("soon") is None


def test_drop_down_resolves_index_option_id_and_name():
    def source_of(value):
        t = {"custom_fields": [cf(FIELDS.source, value, type_="drop_down", options=SOURCE_OPTIONS)]}
        return custom_field_string(t, FIELDS.source)

    assert source_of(0) == "Landing Page"
    assert source_of("1") == "Word of Mouth"
    assert source_of("opt-ig") == "Instagram"
    assert source_of("word of mouth") == "Word of Mouth"
    # Unknown values fall back to the raw value.
    assert source_of("Billboard") == "Billboard"
    assert source_of(9) == "9"


def test_drop_down_uses_orderindex_when_index_is_out_of_range():
    options = [{"id": "a", "name": "Instagram", "orderindex": 7}]
    t = {"custom_fields": [cf(FIELDS.source, 7, type_="drop_down", options=options)]}

    assert custom_field_string(t, FIELDS.source) == "Instagram"


def test_drop_down_without_type_config_keeps_raw_value():
    t = {"custom_fields": [cf(FIELDS.source, 0, type_="drop_down")]}
    assert custom_field_string(t, FIELDS.source) == "0"


def test_find_custom_field_by_name_pattern_is_case_insensitive():
    t = {
        "custom_fields": [
            cf("x1", 10, name="Event Date"),
            cf("x2", 20, name="יתרה לתשלום"),
            cf("x3", 30, name="BALANCE DUE"),
        ]
    }

    assert find_custom_field(t, name_patterns=FIELDS.balance_name_patterns)["id"] == "x2"
    assert custom_field_number(t, name_patterns=("balance",)) == 30.0
    assert find_custom_field(t, field_id="missing") is None


def test_status_helpers_trim_and_ignore_case():
    assert status_equals("  Closed Won ", "closed won")
    assert not status_equals(None, "Done")
    assert status_in("COMPLETE", ("done", "complete"))
    assert not status_in("booked", ())


def test_task_name_falls_back_to_id():
    assert task_name({"id": "abc"}) == "abc"
    assert task_name({"id": "abc", "name": "Wedding"}) == "Wedding"


def test_normalize_lead():
    raw = lead(
        "L1",
        "Closed Won",
        created="2025-12-02T09:00:00Z",
        closed="2025-12-05T09:00:00Z",
        source=0,
        phone="+972-50-111-2222",
        budget="₪10,000",
    )

    rec = normalize_lead(raw, FIELDS)

    assert rec.id == "L1"
    assert rec.status == "Closed Won"
    assert rec.created_ms == ms("2025-12-02T09:00:00Z")
    assert rec.closed_ms == ms("2025-12-05T09:00:00Z")
    assert rec.close_ms == rec.closed_ms
    assert rec.source == "Landing Page"
    assert rec.phone_normalized == "0501112222"
    assert rec.budget_gross_ils == 10000.0
    assert rec.loss_reason is None
    assert rec.paid_amount_gross_ils is None


def test_lead_close_ms_falls_back_to_updated():
    raw = lead("L9", "Closed Won", created="2025-12-01T00:00:00Z", updated="2025-12-03T00:00:00Z")
    rec = normalize_lead(raw, FIELDS)

    assert rec.closed_ms is None
    assert rec.close_ms == ms("2025-12-03T00:00:00Z")


def test_normalize_event_reads_deposit_and_balance():
    raw = event(
        "E1",
        "booked",
        updated="2025-12-03T10:00:00Z",
        requested_date="2026-01-15T18:00:00Z",
        deposit="₪2,000",
        balance={"value": "4,500"},
    )

    rec = normalize_event(raw, FIELDS)

    assert rec.requested_date_ms == ms("2026-01-15T18:00:00Z")
    assert rec.deposit_gross_ils == 2000.0
    assert rec.balance_due_gross_ils == 4500.0


def test_normalize_event_finds_deposit_by_hebrew_name():
    raw = {
        "id": "E7",
        "custom_fields": [
            cf("d-1", "1,200", name="מקדמה"),
            cf("b-1", 800, name="השלמה"),
        ],
    }

    rec = normalize_event(raw, FIELDS)

    assert rec.deposit_gross_ils == 1200.0
    assert rec.balance_due_gross_ils == 800.0
    assert rec.name == "E7"


def test_normalize_expense():
    rec = normalize_expense(expense("X1", "2025-12-08T00:00:00Z", "₪1,180"), FIELDS)

    assert rec.expense_date_ms == ms("2025-12-08T00:00:00Z")
    assert rec.amount_gross_ils == 1180.0
    assert rec.category is None
