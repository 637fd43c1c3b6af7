from __future__ import annotations

import datetime

import pytest

from crafter.core.errors import ValidationError
from crafter.services.auth_handoffs import consume_handoff, put_handoff

NOW = datetime.datetime(2026, 5, 1, 12, 0, tzinfo=datetime.UTC)


@pytest.mark.anyio
async def test_payload_is_returned_once(session_factory) -> None:
  async with session_factory() as session:
    expires_at = await put_handoff(session, state="s1", payload={"refresh_token": "r"}, ttl_seconds=300, now=NOW)
  assert expires_at == NOW + datetime.timedelta(seconds=300)

  async with session_factory() as session:
    assert await consume_handoff(session, state="s1", now=NOW) == {"refresh_token": "r"}
  async with session_factory() as session:
    assert await consume_handoff(session, state="s1", now=NOW) is None


@pytest.mark.anyio
async def test_expired_payload_is_swept(session_factory) -> None:
  async with session_factory() as session:
    await put_handoff(session, state="s1", payload={"token": "t"}, ttl_seconds=60, now=NOW)

  async with session_factory() as session:
    assert await consume_handoff(session, state="s1", now=NOW + datetime.timedelta(seconds=61)) is None


@pytest.mark.anyio
async def test_storing_same_state_replaces_payload(session_factory) -> None:
  async with session_factory() as session:
    await put_handoff(session, state="s1", payload={"token": "old"}, ttl_seconds=60, now=NOW)
    await put_handoff(session, state="s1", payload={"token": "new"}, ttl_seconds=60, now=NOW)

  async with session_factory() as session:
    assert await consume_handoff(session, state="s1", now=NOW) == {"token": "new"}


@pytest.mark.anyio
async def test_blank_state_is_rejected(session_factory) -> None:
  async with session_factory() as session:
    with pytest.raises(ValidationError):
      await put_handoff(session, state=" ", payload={}, ttl_seconds=60, now=NOW)
