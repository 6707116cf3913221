"""Tests for key parsing and entry identity."""

from datetime import datetime, timedelta, timezone

import pytest

from conftest import ED25519_A, ED25519_B
from hanko.keys import Key, ResolvedEntry

NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)


def test_parse_drops_comment():
    key = Key.parse(f"ssh-ed25519 {ED25519_A} John Doe (gitlab.com)")
    assert key.algorithm == "ssh-ed25519"
    assert key.material == ED25519_A
    assert str(key) == f"ssh-ed25519 {ED25519_A}"


@pytest.mark.parametrize(
    "line",
    ["", "ssh-ed25519", "ssh-ed25519 not-base64!", "ssh-ed25519 AAAAC3Nza"],
)
def test_parse_rejects_invalid_lines(line):
    with pytest.raises(ValueError):
        Key.parse(line)


def test_expiry_is_relative_to_now():
    past = Key.parse(f"ssh-ed25519 {ED25519_A}", expires_at=NOW - timedelta(days=1))
    future = Key.parse(f"ssh-ed25519 {ED25519_A}", expires_at=NOW + timedelta(days=1))
    never = Key.parse(f"ssh-ed25519 {ED25519_A}")

    assert past.is_expired(NOW)
    assert not future.is_expired(NOW)
    assert not never.is_expired(NOW)


def test_naive_expiry_is_treated_as_utc():
    key = Key(algorithm="ssh-ed25519", material=ED25519_A, expires_at=datetime(2025, 12, 31))
    assert key.is_expired(NOW)


def test_entries_ignore_expiry_for_equality():
    plain = ResolvedEntry(principal="a@example.com", key=Key.parse(f"ssh-ed25519 {ED25519_A}"))
    expiring = ResolvedEntry(
        principal="a@example.com",
        key=Key.parse(f"ssh-ed25519 {ED25519_A}", expires_at=NOW),
    )
    other = ResolvedEntry(principal="b@example.com", key=Key.parse(f"ssh-ed25519 {ED25519_A}"))

    assert plain == expiring
    assert len({plain, expiring}) == 1
    assert plain != other


def test_entry_line_round_trip():
    entry = ResolvedEntry(principal="a@example.com", key=Key.parse(f"ssh-ed25519 {ED25519_B}"))
    assert entry.to_line() == f"a@example.com ssh-ed25519 {ED25519_B}"
    assert ResolvedEntry.parse(entry.to_line()) == entry
