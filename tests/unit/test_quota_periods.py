from __future__ import annotations

import datetime

import pytest

from crafter.core.errors import PersistenceError
from crafter.services.quota_ledger import month_key, plan_limit


def test_month_key_uses_utc_calendar_month() -> None:
  assert month_key(datetime.datetime(2026, 3, 31, 23, 59, tzinfo=datetime.UTC)) == "2026-03"


def test_month_key_converts_other_offsets_to_utc() -> None:
  # 23:30 on Jan 31 in UTC-05:00 is already February in UTC.
  eastern = datetime.timezone(datetime.timedelta(hours=-5))
  assert month_key(datetime.datetime(2026, 1, 31, 23, 30, tzinfo=eastern)) == "2026-02"


def test_month_key_rejects_naive_datetimes() -> None:
  with pytest.raises(ValueError):
    month_key(datetime.datetime(2026, 1, 1))


def test_plan_limits() -> None:
  assert plan_limit("free") == 10
  assert plan_limit("pro") == 40


def test_unknown_plan_type_is_a_persistence_error() -> None:
  with pytest.raises(PersistenceError):
    plan_limit("enterprise")
