from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo

import pytest

from agenda.services.kinds import Personal, Recurring, Single, kind_columns
from agenda.services.recurrence import Frequency
from agenda.services.series_service import (
    ClientRef,
    SeriesForm,
    expand_series,
    payment_drafts,
    single_draft,
)
from agenda.utils.timeutils import local_date, local_time

SP = ZoneInfo("America/Sao_Paulo")
ANA = ClientRef(id=1, name="Ana")


def _weekly_ana(count=4, **kwargs):
    return expand_series(
        ANA,
        datetime(2024, 1, 1, 9, tzinfo=SP),
        datetime(2024, 1, 1, 10, tzinfo=SP),
        Frequency.WEEKLY,
        count,
        tz=SP,
        **kwargs,
    )


def test_weekly_series_for_ana():
    drafts = _weekly_ana()
    assert [local_date(d.start_time, SP) for d in drafts] == [
        date(2024, 1, 1),
        date(2024, 1, 8),
        date(2024, 1, 15),
        date(2024, 1, 22),
    ]
    assert all(local_time(d.start_time, SP) == time(9) for d in drafts)
    assert all(local_time(d.end_time, SP) == time(10) for d in drafts)
    assert {d.title for d in drafts} == {"Ana"}
    assert len({d.recurrence_group_id for d in drafts}) == 1
    assert all(d.client_id == 1 for d in drafts)


def test_first_draft_is_the_base_interval():
    drafts = _weekly_ana()
    assert drafts[0].start_time == datetime(2024, 1, 1, 12, tzinfo=timezone.utc)
    assert drafts[0].end_time == datetime(2024, 1, 1, 13, tzinfo=timezone.utc)
    assert drafts[0].start_time.tzinfo == timezone.utc


def test_drafts_carry_the_form_and_recurrence_columns():
    form = SeriesForm(description="Therapy", price=150.0, color="#000000", is_online=True,
                      online_url="https://meet.example.com/ana")
    drafts = _weekly_ana(count=2, form=form, group_id="fixed-group")
    for d in drafts:
        assert d.kind == Recurring("fixed-group")
        assert d.price == 150.0
        assert d.online_url == "https://meet.example.com/ana"
        assert d.recurrence_type == "weekly"
        assert d.recurrence_count == 2

    model = drafts[1].to_model(user_id=5)
    assert model.session_type == "recurring"
    assert model.appointment_type == "appointment"
    assert model.recurrence_group_id == "fixed-group"


@pytest.mark.parametrize("count", [0, 53])
def test_count_must_be_within_limits(count):
    with pytest.raises(ValueError):
        _weekly_ana(count=count)


def test_biweekly_known_issue_produces_non_positive_intervals():
    drafts = expand_series(
        ANA,
        datetime(2024, 1, 1, 9, tzinfo=SP),
        datetime(2024, 1, 1, 10, tzinfo=SP),
        Frequency.BIWEEKLY,
        3,
        tz=SP,
        advance_biweekly_end=False,
    )
    assert drafts[0].end_time > drafts[0].start_time
    assert drafts[1].end_time <= drafts[1].start_time
    assert local_date(drafts[2].start_time, SP) == date(2024, 1, 29)


def test_kind_columns_for_personal_and_block():
    assert kind_columns(Personal()) == {
        "appointment_type": "personal",
        "session_type": "personal",
        "recurrence_group_id": None,
    }
    draft = single_draft(
        Personal(),
        datetime(2024, 1, 2, 12, tzinfo=timezone.utc),
        datetime(2024, 1, 2, 13, tzinfo=timezone.utc),
        None,
        "Lunch",
        SeriesForm(price=99.0),
    )
    assert draft.client_id is None
    assert draft.price is None
    assert draft.title == "Lunch"


def test_payment_drafts_one_per_billable_session():
    drafts = _weekly_ana(count=3, form=SeriesForm(price=120.0))
    payments = payment_drafts(drafts, [10, 11, 12], SP)
    assert [p.appointment_id for p in payments] == [10, 11, 12]
    assert payments[1].due_date == date(2024, 1, 8)
    assert payments[1].notes == "Payment for the session on 08/01/2024"
    assert all(p.amount == 120.0 and p.status == "pending" for p in payments)


def test_payment_drafts_skip_free_and_personal_entries():
    free = single_draft(
        Single(),
        datetime(2024, 1, 2, 12, tzinfo=timezone.utc),
        datetime(2024, 1, 2, 13, tzinfo=timezone.utc),
        ANA,
        None,
        SeriesForm(price=0),
    )
    personal = single_draft(
        Personal(),
        datetime(2024, 1, 3, 12, tzinfo=timezone.utc),
        datetime(2024, 1, 3, 13, tzinfo=timezone.utc),
        None,
        "Gym",
    )
    assert payment_drafts([free, personal], [1, 2]) == []
    assert free.title == "Ana"
