from __future__ import annotations

import json
from datetime import timedelta

import redis

from factories import checkout_payment, checkout_subscription, envelope, to_event
from reconciler import crud
from reconciler.billing import catalog as catalog_module
from reconciler.billing.catalog import load_catalog
from reconciler.core.config import DEFAULT_CATALOG_PATH, settings
from reconciler.core.redis_client import JobLock
from reconciler.enums import Plan
from reconciler.models import utc_now
from reconciler.worker import scheduler as scheduler_module
from reconciler.worker.tasks import REFRESH_LOCK_KEY, refresh_expired_entitlements


class _FakeRedis:
    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.ttl: dict[str, int] = {}

    def set(self, name: str, value: str, ex: int | None = None, nx: bool = False):  # type: ignore[override]
        if nx and name in self.store:
            return None
        self.store[name] = value
        if ex is not None:
            self.ttl[name] = ex
        return True

    def eval(self, script: str, numkeys: int, *args: str):  # type: ignore[override]
        key, token = args[0], args[1]
        if self.store.get(key) == token:
            del self.store[key]
            return 1
        return 0


class _BrokenRedis(_FakeRedis):
    def eval(self, script: str, numkeys: int, *args: str):  # type: ignore[override]
        raise redis.ConnectionError("redis down")


def _buy_pass(processor, db, customer_id: str) -> None:
    processor.process(
        db,
        to_event(
            envelope(
                "checkout.session.completed",
                checkout_payment(customer_id, session_id=f"cs_{customer_id}", price_id="price_premium_once"),
            )
        ),
    )


def test_refresh_downgrades_lapsed_entitlements(engine, db, processor, catalog):
    _buy_pass(processor, db, "cus_job_1")
    _buy_pass(processor, db, "cus_job_2")
    processor.process(
        db,
        to_event(
            envelope(
                "checkout.session.completed",
                checkout_subscription("cus_open", session_id="cs_open", subscription_id="sub_open"),
            )
        ),
    )
    fake = _FakeRedis()
    later = utc_now() + timedelta(days=catalog.premium_window_days + 1)

    refreshed = refresh_expired_entitlements(
        db_engine=engine, redis_client=fake, catalog=catalog, now=later
    )

    # the recurring subscription's premium window also ends by then
    assert refreshed == 3
    db.expire_all()
    for customer_id in ("cus_job_1", "cus_job_2", "cus_open"):
        row = crud.get_entitlement(session=db, customer_id=customer_id)
        assert row.plan == Plan.free
        assert row.version == 2
    assert REFRESH_LOCK_KEY not in fake.store


def test_refresh_leaves_current_entitlements_alone(engine, db, processor, catalog):
    _buy_pass(processor, db, "cus_fresh")
    fake = _FakeRedis()

    refreshed = refresh_expired_entitlements(db_engine=engine, redis_client=fake, catalog=catalog)

    assert refreshed == 0
    db.expire_all()
    row = crud.get_entitlement(session=db, customer_id="cus_fresh")
    assert row.plan == Plan.premium_tier
    assert row.version == 1


def test_refresh_skips_when_lock_is_held(engine, db, processor, catalog):
    _buy_pass(processor, db, "cus_locked")
    fake = _FakeRedis()
    fake.store[REFRESH_LOCK_KEY] = "other-instance"
    later = utc_now() + timedelta(days=catalog.premium_window_days + 1)

    refreshed = refresh_expired_entitlements(
        db_engine=engine, redis_client=fake, catalog=catalog, now=later
    )

    assert refreshed == 0
    assert fake.store[REFRESH_LOCK_KEY] == "other-instance"
    db.expire_all()
    assert crud.get_entitlement(session=db, customer_id="cus_locked").plan == Plan.premium_tier


def test_job_lock_is_single_holder():
    fake = _FakeRedis()
    first = JobLock(fake, "lock:test", "token-a", ttl_seconds=30)
    second = JobLock(fake, "lock:test", "token-b", ttl_seconds=30)

    assert first.acquire() is True
    assert fake.ttl["lock:test"] == 30
    assert second.acquire() is False
    # only the holder can release
    assert second.release() is False
    assert first.release() is True
    assert second.acquire() is True


def test_job_lock_release_survives_redis_errors():
    lock = JobLock(_BrokenRedis(), "lock:broken", "token", ttl_seconds=30)
    assert lock.acquire() is True
    assert lock.release() is False


def test_scheduler_registers_refresh_job(monkeypatch):
    monkeypatch.setattr(scheduler_module.settings, "ENTITLEMENT_REFRESH_INTERVAL_MINUTES", 7)

    scheduler = scheduler_module.build_scheduler()
    job = scheduler.get_job(scheduler_module.REFRESH_JOB_ID)

    assert job is not None
    assert job.func is refresh_expired_entitlements
    assert job.trigger.interval == timedelta(minutes=7)
    assert job.max_instances == 1
    assert job.coalesce is True


def test_refresh_run_reloads_catalog_file(engine, db, tmp_path, monkeypatch):
    data = json.loads(DEFAULT_CATALOG_PATH.read_text(encoding="utf-8"))
    data["version"] = "2026-12-01"
    path = tmp_path / "billing_catalog.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    monkeypatch.setattr(settings, "BILLING_CATALOG_PATH", path)
    monkeypatch.setattr(catalog_module, "_catalog", load_catalog(DEFAULT_CATALOG_PATH))

    assert refresh_expired_entitlements(db_engine=engine, redis_client=_FakeRedis()) == 0
    assert catalog_module.get_catalog().version == "2026-12-01"
