"""Integration tests for attendance marking and absence alerts."""

import asyncio
import uuid
from datetime import date, datetime, timedelta, timezone

import pytest
import pytest_asyncio
from libs.common.errors import NotFound
from services.training_service.models import (
    AbsenceAlert,
    AttendanceRecord,
    AttendanceStatus,
    CancellationActor,
)
from services.training_service.policy_config import PolicyConfig
from services.training_service.services.absence_alerts import (
    FIRST_ALERT_KEY,
    AlertOutcome,
    acknowledge_alert,
    check_absence_alert,
    list_alerts,
)
from services.training_service.services.attendance import (
    list_session_attendance,
    record_absence,
)
from services.training_service.services.cancellations import cancel
from services.training_service.services.virtual_sessions import VirtualSessionRef
from sqlalchemy import func, select
from tests.factories import (
    AbsenceAlertFactory,
    AthleteFactory,
    RecordingNotifier,
    RecurringTrainingFactory,
    persist,
)

T0 = datetime(2025, 3, 26, 9, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def training(db_session):
    return await persist(db_session, RecurringTrainingFactory.create())


@pytest_asyncio.fixture
async def athlete(db_session):
    athlete = AthleteFactory.create(first_name="Jane", last_name="Doe")
    return await persist(db_session, athlete)


def _ref(training, day) -> str:
    return VirtualSessionRef(recurring_training_id=training.id, date=day).encode()


def _tuesdays(start=date(2025, 3, 4)):
    day = start
    while True:
        yield day
        day += timedelta(days=7)


async def _alert_count(db) -> int:
    result = await db.execute(select(func.count(AbsenceAlert.id)))
    return result.scalar_one()


async def _absent(db, athlete, training, day, config, notifier, now):
    return await record_absence(
        db,
        athlete.id,
        _ref(training, day),
        config=config,
        notifier=notifier,
        status=AttendanceStatus.ABSENT_UNEXCUSED,
        now=now,
    )


# ---------------------------------------------------------------------------
# record_absence
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_record_absence_materializes_and_stores(
    db_session, training, athlete, policy_config, notifier
):
    result = await record_absence(
        db_session,
        athlete.id,
        _ref(training, date(2025, 3, 4)),
        config=policy_config,
        notifier=notifier,
        status=AttendanceStatus.PRESENT,
        now=T0,
    )

    assert result.status == AttendanceStatus.PRESENT
    assert result.absence_alert_triggered is False
    ref = _ref(training, date(2025, 3, 4))
    records = await list_session_attendance(db_session, ref)
    assert [r.id for r in records] == [result.attendance_id]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_record_absence_is_an_upsert(
    db_session, training, athlete, policy_config, notifier
):
    ref = _ref(training, date(2025, 3, 4))
    first = await record_absence(
        db_session,
        athlete.id,
        ref,
        config=policy_config,
        notifier=notifier,
        status=AttendanceStatus.PRESENT,
        now=T0,
    )
    second = await record_absence(
        db_session,
        athlete.id,
        ref,
        config=policy_config,
        notifier=notifier,
        status=AttendanceStatus.ABSENT_EXCUSED,
        notes="Called in sick",
        now=T0,
    )

    assert second.attendance_id == first.attendance_id
    records = await list_session_attendance(db_session, ref)
    assert len(records) == 1
    assert records[0].status == AttendanceStatus.ABSENT_EXCUSED
    assert records[0].notes == "Called in sick"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_unknown_athlete_is_rejected(
    db_session, training, policy_config, notifier
):
    with pytest.raises(NotFound) as exc_info:
        await record_absence(
            db_session,
            uuid.uuid4(),
            _ref(training, date(2025, 3, 4)),
            config=policy_config,
            notifier=notifier,
        )

    assert exc_info.value.reason == "athlete_not_found"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_unmarked_list_for_virtual_session_is_empty(db_session, training):
    ref = _ref(training, date(2025, 3, 4))

    assert await list_session_attendance(db_session, ref) == []


@pytest.mark.asyncio
@pytest.mark.integration
async def test_timely_cancellation_classifies_as_excused(
    db_session, training, athlete, policy_config, notifier
):
    ref = _ref(training, date(2025, 3, 4))
    await cancel(
        db_session,
        ref,
        actor_type=CancellationActor.ATHLETE,
        actor_id=athlete.id,
        reason="Dentist appointment",
        config=policy_config,
        now=datetime(2025, 3, 3, 12, 0, tzinfo=timezone.utc),
    )

    result = await record_absence(
        db_session, athlete.id, ref, config=policy_config, notifier=notifier, now=T0
    )

    assert result.status == AttendanceStatus.ABSENT_EXCUSED


@pytest.mark.asyncio
@pytest.mark.integration
async def test_late_cancellation_classifies_as_unexcused(
    db_session, training, athlete, policy_config, notifier
):
    ref = _ref(training, date(2025, 3, 4))
    await cancel(
        db_session,
        ref,
        actor_type=CancellationActor.ATHLETE,
        actor_id=athlete.id,
        reason="Missed the bus home",
        config=policy_config,
        # 16:30 Berlin, after the two hour deadline
        now=datetime(2025, 3, 4, 15, 30, tzinfo=timezone.utc),
    )

    result = await record_absence(
        db_session, athlete.id, ref, config=policy_config, notifier=notifier, now=T0
    )

    assert result.status == AttendanceStatus.ABSENT_UNEXCUSED


@pytest.mark.asyncio
@pytest.mark.integration
async def test_no_cancellation_classifies_as_unexcused(
    db_session, training, athlete, policy_config, notifier
):
    result = await record_absence(
        db_session,
        athlete.id,
        _ref(training, date(2025, 3, 4)),
        config=policy_config,
        notifier=notifier,
        now=T0,
    )

    assert result.status == AttendanceStatus.ABSENT_UNEXCUSED


# ---------------------------------------------------------------------------
# Absence alerts
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_alert_cooldown_sequence(
    db_session, training, athlete, policy_config, notifier
):
    days = _tuesdays()

    results = [
        await _absent(
            db_session, athlete, training, next(days), policy_config, notifier, T0
        )
        for _ in range(3)
    ]
    assert [r.absence_alert_triggered for r in results] == [False, False, True]
    assert len(notifier.calls) == 1
    call = notifier.calls[0]
    assert call["recipients"] == ["admin@club.local"]
    assert call["body"]["athlete_name"] == "Jane Doe"
    assert call["body"]["absence_count"] == 3
    assert call["body"]["window_days"] == 30
    assert call["body"]["sessions"] == [
        {"date": day, "start_time": "18:00", "training_name": "Evening Squad"}
        for day in ("2025-03-04", "2025-03-11", "2025-03-18")
    ]

    # Two days later: still within the cooldown
    suppressed = await _absent(
        db_session,
        athlete,
        training,
        next(days),
        policy_config,
        notifier,
        T0 + timedelta(days=2),
    )
    assert suppressed.absence_alert_triggered is False
    assert await _alert_count(db_session) == 1

    # Twenty days later: cooldown over, absences still within the window
    again = await _absent(
        db_session,
        athlete,
        training,
        next(days),
        policy_config,
        notifier,
        T0 + timedelta(days=20),
    )
    assert again.absence_alert_triggered is True
    assert await _alert_count(db_session) == 2
    assert len(notifier.calls) == 2


@pytest.mark.asyncio
@pytest.mark.integration
async def test_absences_outside_window_do_not_count(
    db_session, training, athlete, policy_config, notifier
):
    days = _tuesdays()
    for _ in range(2):
        await _absent(
            db_session,
            athlete,
            training,
            next(days),
            policy_config,
            notifier,
            T0 - timedelta(days=45),
        )

    result = await _absent(
        db_session, athlete, training, next(days), policy_config, notifier, T0
    )

    assert result.absence_alert_triggered is False
    assert await _alert_count(db_session) == 0


@pytest.mark.asyncio
@pytest.mark.integration
async def test_disabled_alerts_never_trigger(db_session, training, athlete, notifier):
    config = PolicyConfig(
        absence_alert_enabled=False, admin_recipients=("a@club.local",)
    )
    days = _tuesdays()

    for _ in range(5):
        result = await _absent(
            db_session, athlete, training, next(days), config, notifier, T0
        )
        assert result.absence_alert_triggered is False

    assert await _alert_count(db_session) == 0
    assert notifier.calls == []


@pytest.mark.asyncio
@pytest.mark.integration
@pytest.mark.parametrize(
    "failing_notifier",
    [
        RecordingNotifier(result=False),
        RecordingNotifier(error=RuntimeError("smtp down")),
    ],
    ids=["not-delivered", "raises"],
)
async def test_notification_failure_keeps_alert(
    db_session, training, athlete, policy_config, failing_notifier
):
    days = _tuesdays()
    results = [
        await _absent(
            db_session,
            athlete,
            training,
            next(days),
            policy_config,
            failing_notifier,
            T0,
        )
        for _ in range(3)
    ]

    assert results[-1].absence_alert_triggered is True
    alert = (await db_session.execute(select(AbsenceAlert))).scalar_one()
    assert alert.notification_sent is False
    records = await db_session.execute(select(func.count(AttendanceRecord.id)))
    assert records.scalar_one() == 3


@pytest.mark.asyncio
@pytest.mark.integration
async def test_successful_notification_is_recorded(
    db_session, training, athlete, policy_config, notifier
):
    days = _tuesdays()
    for _ in range(3):
        await _absent(
            db_session, athlete, training, next(days), policy_config, notifier, T0
        )

    alert = (await db_session.execute(select(AbsenceAlert))).scalar_one()
    assert alert.notification_sent is True
    assert alert.absence_count == 3


@pytest.mark.asyncio
@pytest.mark.integration
async def test_concurrent_checks_raise_one_alert(
    db_session, session_factory, training, athlete, policy_config, notifier
):
    days = _tuesdays()
    for _ in range(3):
        await _absent(
            db_session,
            athlete,
            training,
            next(days),
            PolicyConfig(absence_alert_enabled=False),
            notifier,
            T0,
        )

    async def _check():
        async with session_factory() as db:
            return await check_absence_alert(
                db, athlete.id, config=policy_config, notifier=notifier, now=T0
            )

    results = await asyncio.gather(_check(), _check())

    assert sorted(r.decision.outcome for r in results) == sorted(
        [AlertOutcome.TRIGGERED, AlertOutcome.COOLDOWN]
    )
    assert await _alert_count(db_session) == 1
    assert len(notifier.calls) == 1


@pytest.mark.asyncio
@pytest.mark.integration
async def test_concurrent_checks_across_midnight_raise_one_alert(
    db_session, session_factory, training, athlete, policy_config, notifier
):
    days = _tuesdays()
    for _ in range(3):
        await _absent(
            db_session,
            athlete,
            training,
            next(days),
            PolicyConfig(absence_alert_enabled=False),
            notifier,
            T0,
        )
    before_midnight = datetime(2025, 3, 26, 23, 59, tzinfo=timezone.utc)

    async def _check(now):
        async with session_factory() as db:
            return await check_absence_alert(
                db, athlete.id, config=policy_config, notifier=notifier, now=now
            )

    results = await asyncio.gather(
        _check(before_midnight), _check(before_midnight + timedelta(minutes=2))
    )

    assert sorted(r.decision.outcome for r in results) == sorted(
        [AlertOutcome.TRIGGERED, AlertOutcome.COOLDOWN]
    )
    assert await _alert_count(db_session) == 1


@pytest.mark.asyncio
@pytest.mark.integration
async def test_later_alert_follows_the_previous_one(
    db_session, training, athlete, policy_config, notifier
):
    days = _tuesdays()
    for _ in range(3):
        await _absent(
            db_session, athlete, training, next(days), policy_config, notifier, T0
        )
    later = await _absent(
        db_session,
        athlete,
        training,
        next(days),
        policy_config,
        notifier,
        T0 + timedelta(days=20),
    )
    assert later.absence_alert_triggered is True

    result = await db_session.execute(
        select(AbsenceAlert).order_by(AbsenceAlert.created_at)
    )
    alerts = result.scalars().all()
    assert [a.chain_key for a in alerts] == [FIRST_ALERT_KEY, str(alerts[0].id)]


# ---------------------------------------------------------------------------
# Listing and acknowledgement
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_list_and_acknowledge_alerts(db_session, athlete):
    now = datetime.now(timezone.utc)
    recent = AbsenceAlertFactory.create(athlete, created_at=now - timedelta(days=1))
    old = AbsenceAlertFactory.create(athlete, created_at=now - timedelta(days=90))
    await persist(db_session, recent, old)

    alerts = await list_alerts(db_session, athlete_id=athlete.id)
    assert [a.id for a in alerts] == [recent.id]

    admin_id = uuid.uuid4()
    acknowledged = await acknowledge_alert(db_session, recent.id, admin_id)
    assert acknowledged.is_acknowledged is True
    assert acknowledged.acknowledged_by == admin_id

    assert await list_alerts(db_session, unacknowledged_only=True) == []
