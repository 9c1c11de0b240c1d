from factories import comment, ms

from bizpulse.comments import (
    CLOSED_WON_MOVE,
    DEFAULT_RULES,
    DEPOSIT_PAID,
    STATUS_CHANGED_TO,
    CommentRule,
    TaskComment,
    extract_closed_won_move_ms,
    extract_comment_events,
    extract_deposit_paid_ms,
    extract_first_billing_to_done_ms,
    extract_first_done_status_change_ms,
    extract_first_status_change_ms,
    extract_status_changes,
    is_automation_comment,
)
from bizpulse.config import StatusVocabulary


def _raw(text, date, user_id=-1, username="ClickBot"):
    return {"comment_text": text, "user": {"id": user_id, "username": username}, "date": str(date)}


def test_task_comment_from_rich_text_segments():
    raw = {
        "comment": [{"text": "Status has changed "}, {"text": "to : Billing"}],
        "user": {"id": -1, "username": "ClickBot"},
        "date": "1700000000000",
    }

    c = TaskComment.from_clickup(raw)

    assert c.text == "Status has changed to : Billing"
    assert c.author_id == "-1"
    assert c.timestamp_ms == 1700000000000


def test_automation_actor_matches_id_or_username():
    vocab = StatusVocabulary()

    assert is_automation_comment(TaskComment("x", "-1", "someone", 1), vocab)
    assert is_automation_comment(TaskComment("x", None, "clickbot", 1), vocab)
    assert not is_automation_comment(TaskComment("x", "4242", "Dana", 1), vocab)

    custom = StatusVocabulary(automation_username="Zapier", automation_user_id=99)
    assert is_automation_comment(TaskComment("x", "99", "", 1), custom)
    assert not is_automation_comment(TaskComment("x", "-1", "ClickBot", 1), custom)


def test_billing_then_done_gives_first_done_after_billing():
    comments = [
        _raw("Status has changed to : Billing", 100),
        _raw("Status has changed to : Review", 150),
        _raw("Status has changed to : Done", 200),
        _raw("Status has changed to : DONE", 250),
    ]

    assert extract_first_billing_to_done_ms(comments) == 200


def test_done_without_billing_is_not_a_billing_release():
    comments = [_raw("Status has changed to : Done", 200)]

    assert extract_first_billing_to_done_ms(comments) is None
    assert extract_first_done_status_change_ms(comments) == 200


def test_comments_are_scanned_in_timestamp_order():
    comments = [
        _raw("Status has changed to : Done", 300),
        _raw("Status has changed to : Billing", 100),
    ]

    assert extract_first_billing_to_done_ms(comments) == 300


def test_deposit_paid_earliest_wins_and_manual_comments_count():
    comments = [
        _raw("Deposit received, thanks", 500, user_id=4242, username="Dana"),
        _raw("מקדמה שולמה", 300, user_id=4242, username="Dana"),
        _raw("Advance paid again", 900),
    ]

    assert extract_deposit_paid_ms(comments) == 300


def test_hebrew_and_english_deposit_comments_earliest_wins():
    comments = [
        _raw("מקדמה שולמה", 500, user_id=4242, username="Dana"),
        _raw("deposit paid", 300, user_id=4242, username="Dana"),
    ]

    assert extract_deposit_paid_ms(comments) == 300


def test_deposit_without_paid_word_does_not_match():
    comments = [_raw("Deposit requested from client", 100)]
    assert extract_deposit_paid_ms(comments) is None


def test_status_changes_require_the_automation_actor():
    comments = [
        _raw("Status has changed to : Done", 100, user_id=4242, username="Dana"),
        _raw("Moved to Event Calendar - Closed Won", 200, user_id=4242, username="Dana"),
    ]

    assert extract_status_changes(comments) == []
    assert extract_first_done_status_change_ms(comments) is None
    assert extract_closed_won_move_ms(comments) is None


def test_status_value_is_cleaned_and_matched_case_insensitively():
    comments = [_raw('Status has changed to : "Billing"  ', 100)]

    changes = extract_status_changes(comments)

    assert [(e.kind, e.status) for e in changes] == [(STATUS_CHANGED_TO, "Billing")]
    assert extract_first_status_change_ms(comments, ["billing"]) == 100


def test_status_value_stops_at_trailing_annotation():
    comments = [
        _raw("Status has changed to : Done (auto)", 300),
        _raw("Status has changed to : Billing. Invoice sent", 200),
    ]

    changes = extract_status_changes(comments)

    assert [e.status for e in changes] == ["Billing", "Done"]
    assert extract_first_done_status_change_ms(comments) == 300
    assert extract_first_billing_to_done_ms(comments) == 300


def test_done_aliases_count_as_done():
    comments = [_raw("Status has changed to: complete", 400)]
    assert extract_first_done_status_change_ms(comments) == 400


def test_short_done_phrasing_is_recognized():
    comments = [_raw("The status was changed -> DONE", 700)]

    events = extract_status_changes(comments)

    assert [(e.status, e.timestamp_ms) for e in events] == [("done", 700)]


def test_closed_won_move_latest_wins():
    comments = [
        comment("Moved to Event Calendar (Closed Won)", "2025-12-01T10:00:00Z"),
        comment("moved to event calendar - closed won", "2025-12-09T10:00:00Z"),
    ]

    assert extract_closed_won_move_ms(comments) == ms("2025-12-09T10:00:00Z")


def test_one_event_per_kind_per_comment_and_missing_dates_ignored():
    comments = [
        _raw("Deposit paid. Advance received.", 100, user_id=1, username="Dana"),
        {"comment_text": "Deposit paid", "user": {"id": 1}, "date": None},
    ]

    events = extract_comment_events(comments)

    assert [(e.kind, e.timestamp_ms) for e in events] == [(DEPOSIT_PAID, 100)]


def test_custom_rules_extend_the_default_set():
    rule = CommentRule(
        name="deposit_paid_fr",
        kind=DEPOSIT_PAID,
        all_of=(r"acompte", r"pay[ée]"),
    )
    comments = [_raw("Acompte payé", 1234, user_id=1, username="Dana")]

    assert extract_comment_events(comments) == []
    events = extract_comment_events(comments, rules=(*DEFAULT_RULES, rule))
    assert [(e.kind, e.timestamp_ms) for e in events] == [(DEPOSIT_PAID, 1234)]


def test_default_rules_cover_closed_won_moves():
    kinds = {rule.kind for rule in DEFAULT_RULES}
    assert kinds == {DEPOSIT_PAID, STATUS_CHANGED_TO, CLOSED_WON_MOVE}
