"""
ITP Tracker — Reminder Job Tests
=================================
Full batch runs against fake channels and a fixed clock.
"""

import asyncio
import datetime
import threading

from app.itp.config import set_config
from app.itp.delivery import EmailChannel, SMSChannel
from app.itp.dispatcher import NotificationDispatcher
from app.itp.engine import ReminderJob, STATE_IDLE
from tests.conftest import FIXED_NOW, TODAY, FakeChannel, make_client, db_count, db_query


def run(job):
    return asyncio.run(job.run())


class TestHappyPath:

    def test_single_client_both_channels_sent(self, job, sms_channel, email_channel):
        client = make_client(name="Ion Popescu", days=3)

        result = run(job)

        assert result["success"] is True
        assert result["summary"] == {
            "totalClients": 1, "successCount": 1, "failureCount": 0,
            "errorCount": 0, "skipCount": 0,
        }
        entry = result["results"][0]
        assert entry["status"] == "success"
        assert entry["daysRemaining"] == 3
        assert entry["sms"] == "sent" and entry["email"] == "sent"

        assert sms_channel.sent[0][0] == client.phone
        assert "expires in 3 days" in sms_channel.sent[0][1]
        assert email_channel.sent[0][0] == client.email
        assert email_channel.sent[0][1].subject == f"ITP Reminder - {client.license_plate}"

        rows = db_query("SELECT * FROM notifications WHERE client_id = ? ORDER BY id", (client.id,))
        assert [(r["channel"], r["status"]) for r in rows] == [("SMS", "sent"), ("EMAIL", "sent")]
        assert all(r["sent_at"] for r in rows)
        assert rows[0]["provider_id"] == "FAKE-sms-1"

    def test_no_eligible_clients(self, job, sms_channel):
        make_client(days=30)

        result = run(job)

        assert result["success"] is True
        assert result["count"] == 0
        assert result["message"] == "No clients with expiring ITP"
        assert sms_channel.sent == []
        assert db_count("notifications") == 0

    def test_state_returns_to_idle(self, job):
        make_client(days=1)
        run(job)
        assert job.state == STATE_IDLE
        assert job.position is None


class TestIdempotence:

    def test_second_run_same_day_skips_everyone(self, job, sms_channel):
        clients = [make_client(days=d) for d in (1, 2, 5)]

        first = run(job)
        second = run(job)

        assert first["summary"]["successCount"] == 3
        assert second["summary"]["skipCount"] == 3
        assert second["summary"]["successCount"] == 0
        assert all(r["reason"] == "Already notified today" for r in second["results"])
        assert len(sms_channel.sent) == 3
        for c in clients:
            assert db_count("notifications", "client_id = ? AND channel = 'SMS' AND status = 'sent'", (c.id,)) == 1
            assert db_count("notifications", "client_id = ? AND channel = 'EMAIL' AND status = 'sent'", (c.id,)) == 1

    def test_one_channel_success_is_enough_to_skip(self, clock):
        sms = FakeChannel("sms", fail=True)
        email = FakeChannel("email")
        dispatcher = NotificationDispatcher(sms, email, locale="en", clock=clock)
        job = ReminderJob(dispatcher, clock=clock, lookahead_days=7, pacing_seconds=0)
        make_client(days=2)

        first = run(job)
        second = run(job)

        assert first["results"][0]["status"] == "success"
        assert first["results"][0]["sms"] == "failed"
        assert second["results"][0]["status"] == "skipped"
        assert len(sms.sent) == 1

    def test_all_failed_is_retried_on_next_run(self, clock):
        sms = FakeChannel("sms", fail=True)
        email = FakeChannel("email", fail=True)
        dispatcher = NotificationDispatcher(sms, email, locale="en", clock=clock)
        job = ReminderJob(dispatcher, clock=clock, lookahead_days=7, pacing_seconds=0)
        make_client(days=2)

        first = run(job)
        sms.fail = email.fail = False
        second = run(job)

        assert first["results"][0]["status"] == "failed"
        assert first["results"][0]["errors"]["sms"] == "sms provider unavailable"
        assert second["results"][0]["status"] == "success"
        assert db_count("notifications", "status = 'failed'") == 2
        assert db_count("notifications", "status = 'sent'") == 2

    def test_next_day_sends_again(self, dispatcher, sms_channel):
        make_client(days=5)
        tomorrow = FIXED_NOW + datetime.timedelta(days=1)
        today_job = ReminderJob(dispatcher, clock=lambda: FIXED_NOW, lookahead_days=7, pacing_seconds=0)
        tomorrow_job = ReminderJob(dispatcher, clock=lambda: tomorrow, lookahead_days=7, pacing_seconds=0)

        run(today_job)
        dispatcher.clock = lambda: tomorrow
        result = run(tomorrow_job)

        assert result["summary"]["successCount"] == 1
        assert result["results"][0]["daysRemaining"] == 4
        assert len(sms_channel.sent) == 2


class TestBatchResilience:

    def test_one_client_failing_does_not_stop_batch(self, job, dispatcher):
        clients = [make_client(name=f"Client {i}", days=i) for i in range(1, 6)]
        broken_id = clients[2].id
        original = dispatcher.dispatch_both

        async def flaky(client, days):
            if client.id == broken_id:
                raise RuntimeError("template exploded")
            return await original(client, days)

        dispatcher.dispatch_both = flaky

        result = run(job)

        assert result["success"] is True
        assert len(result["results"]) == 5
        statuses = [r["status"] for r in result["results"]]
        assert statuses == ["success", "success", "error", "success", "success"]
        assert result["results"][2]["error"] == "template exploded"
        assert result["summary"]["successCount"] == 4
        assert result["summary"]["errorCount"] == 1
        assert result["summary"]["failureCount"] == 1

    def test_counts_add_up(self, clock):
        sms = FakeChannel("sms", fail_for={"0722100000"})
        email = FakeChannel("email", fail_for={"bad@example.com"})
        dispatcher = NotificationDispatcher(sms, email, locale="en", clock=clock)
        job = ReminderJob(dispatcher, clock=clock, lookahead_days=7, pacing_seconds=0)
        make_client(days=1, phone="0722100000", email="bad@example.com")
        make_client(days=2)
        make_client(days=3)

        run(job)
        result = run(job)

        s = result["summary"]
        assert s["totalClients"] == 3
        assert s["successCount"] + s["failureCount"] + s["skipCount"] == s["totalClients"]
        assert s["skipCount"] == 2
        assert s["failureCount"] == 1

    def test_storage_failure_aborts_run(self, job, tmp_path):
        make_client(days=1)
        set_config("database_path", str(tmp_path))

        result = run(job)

        assert result["success"] is False
        assert result["message"] == "ITP reminder job failed"
        assert result["error"]
        assert job.state == STATE_IDLE


class TestPacingAndClock:

    def test_sleeps_between_clients_but_not_after_last(self, dispatcher):
        calls = []

        async def fake_sleep(seconds):
            calls.append(seconds)

        job = ReminderJob(dispatcher, clock=lambda: FIXED_NOW, lookahead_days=7,
                          pacing_seconds=0.5, sleep=fake_sleep)
        for d in (1, 2, 3):
            make_client(days=d)

        run(job)

        assert calls == [0.5, 0.5]

    def test_no_sleep_after_skipped_clients(self, dispatcher):
        calls = []

        async def fake_sleep(seconds):
            calls.append(seconds)

        job = ReminderJob(dispatcher, clock=lambda: FIXED_NOW, lookahead_days=7,
                          pacing_seconds=0.5, sleep=fake_sleep)
        for d in (1, 2, 3):
            make_client(days=d)

        run(job)
        calls.clear()
        run(job)

        assert calls == []

    def test_run_uses_single_start_time(self, dispatcher):
        # Clock crosses midnight during the batch; window and days stay on the start date
        ticks = iter([
            datetime.datetime(2026, 3, 10, 23, 59, 59),
        ] + [datetime.datetime(2026, 3, 11, 0, 0, 5)] * 50)
        job = ReminderJob(dispatcher, clock=lambda: next(ticks), lookahead_days=7, pacing_seconds=0)
        expires_on_start_day = make_client(expires=datetime.datetime(2026, 3, 10, 12, 0))
        make_client(expires=datetime.datetime(2026, 3, 13))

        result = run(job)

        assert result["startedAt"] == "2026-03-10T23:59:59"
        assert result["summary"]["totalClients"] == 2
        by_id = {r["clientId"]: r for r in result["results"]}
        assert by_id[expires_on_start_day.id]["daysRemaining"] == 0
        assert result["finishedAt"] == "2026-03-11T00:00:05"


class TestEndToEndSimulation:

    def test_unconfigured_providers_simulate_and_record(self, clock):
        sms = SMSChannel({"twilio_account_sid": "", "twilio_auth_token": "", "twilio_phone_number": ""})
        email = EmailChannel({"email_provider": "smtp", "email_user": "", "email_password": ""})
        dispatcher = NotificationDispatcher(sms, email, locale="ro", clock=clock)
        job = ReminderJob(dispatcher, clock=clock, lookahead_days=7, pacing_seconds=0)
        client = make_client(name="Maria Ionescu", expires=TODAY + datetime.timedelta(days=3))

        result = run(job)

        assert result["summary"]["successCount"] == 1
        rows = db_query("SELECT * FROM notifications WHERE client_id = ? ORDER BY id", (client.id,))
        assert len(rows) == 2
        assert all(r["status"] == "sent" for r in rows)
        assert rows[0]["provider_id"].startswith("SIM")
        assert rows[1]["provider_id"].endswith("@simulated.local")
        assert "3 zile" in rows[0]["message"]


class TestOverlappingRuns:

    def test_state_tracks_each_run(self, dispatcher, sms_channel):
        make_client(days=1)
        make_client(days=2)

        async def scenario():
            release = asyncio.Event()

            async def held_sleep(seconds):
                await release.wait()

            job = ReminderJob(dispatcher, clock=lambda: FIXED_NOW, lookahead_days=7,
                              pacing_seconds=1, sleep=held_sleep)
            first = asyncio.ensure_future(job.run())
            await asyncio.sleep(0.1)
            # First run is parked after client 1; second skips client 1 and sends client 2
            second = await job.run()
            state_while_first_active = job.state
            runs_while_first_active = job.active_runs
            release.set()
            first_result = await first
            return second, state_while_first_active, runs_while_first_active, first_result, job.state

        second, mid_state, mid_runs, first_result, end_state = asyncio.run(scenario())

        assert [r["status"] for r in second["results"]] == ["skipped", "success"]
        assert mid_state == "processing"
        assert mid_runs == 1
        assert [r["status"] for r in first_result["results"]] == ["success", "skipped"]
        assert end_state == "idle"
        assert len(sms_channel.sent) == 2


class TestStorageOffLoop:

    def test_ledger_and_selection_run_in_worker_threads(self, job, monkeypatch):
        import app.itp.engine as engine_module
        from app.itp.models import NotificationRepository

        main_thread = threading.main_thread()
        seen = []
        real_find = engine_module.find_eligible_clients
        real_create = NotificationRepository.create

        def tracking_find(*args):
            seen.append(("select", threading.current_thread() is main_thread))
            return real_find(*args)

        def tracking_create(n):
            seen.append(("ledger", threading.current_thread() is main_thread))
            return real_create(n)

        monkeypatch.setattr(engine_module, "find_eligible_clients", tracking_find)
        monkeypatch.setattr(NotificationRepository, "create", staticmethod(tracking_create))
        make_client(days=2)

        result = run(job)

        assert result["summary"]["successCount"] == 1
        assert ("select", False) in seen
        assert seen.count(("ledger", False)) == 2
        assert all(on_main is False for _, on_main in seen)
