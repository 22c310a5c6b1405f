"""
Tests for the account-scoped SQL repositories
"""

import logging
from datetime import datetime, timedelta, timezone

import pytest

from app.core.errors import (
    CheckInConfirmationRequired,
    ConcurrentModificationError,
    CrossAccountAccessError,
    NotFoundError,
    OperationTimeoutError,
    ValidationError,
)
from app.models import Guest
from app.schemas.guest import GuestFilter, GuestRead
from app.services.repositories import GuestRepo, matches_filter
from app.utils.deadline import Deadline


def _row(name, code, category="Regular", **extra):
    data = {"name": name, "phone": "", "category": category, "code": code}
    data.update(extra)
    return data


def test_find_never_returns_other_accounts_guests(repos, account_a, account_b):
    repos.guests.insert(account_a.id, _row("Alice", "GUEST-AAAAA"))
    repos.guests.insert(account_b.id, _row("Bob", "GUEST-BBBBB", category="Family"))

    names_a = [g.name for g in repos.guests.find(account_a.id)]
    names_b = [g.name for g in repos.guests.find(account_b.id)]

    assert names_a == ["Alice"]
    assert names_b == ["Bob"]


def test_find_by_id_across_accounts_is_not_found(repos, account_a, account_b, caplog):
    bob = repos.guests.insert(account_b.id, _row("Bob", "GUEST-BBBBB", category="Family"))

    with caplog.at_level(logging.WARNING, logger="app.security"):
        with pytest.raises(CrossAccountAccessError) as exc:
            repos.guests.find_by_id(account_a.id, bob.id)

    assert isinstance(exc.value, NotFoundError)
    assert exc.value.message == "Guest not found"
    assert exc.value.status_code == 404
    assert any(bob.id in record.getMessage() for record in caplog.records)


def test_find_by_id_missing(repos, account_a):
    with pytest.raises(NotFoundError) as exc:
        repos.guests.find_by_id(account_a.id, "0" * 32)
    assert not isinstance(exc.value, CrossAccountAccessError)


def test_filter_search_and_checked_in(repos, account_a):
    repos.guests.insert(account_a.id, _row("Alice Wonder", "GUEST-AAAAA", phone="6281234567890"))
    bob = repos.guests.insert(account_a.id, _row("Bob", "GUEST-BBBBB"))
    repos.guests.update_fields(account_a.id, bob.id, {"guest_count": 1, "check_in_date": bob.created_at})

    assert [g.name for g in repos.guests.find(account_a.id, GuestFilter(search="wonder"))] == ["Alice Wonder"]
    assert [g.name for g in repos.guests.find(account_a.id, GuestFilter(search="628123"))] == ["Alice Wonder"]
    assert [g.name for g in repos.guests.find(account_a.id, GuestFilter(checked_in=True))] == ["Bob"]
    assert [g.name for g in repos.guests.find(account_a.id, GuestFilter(checked_in=False))] == ["Alice Wonder"]


def test_search_treats_like_wildcards_literally(repos, account_a):
    repos.guests.insert(account_a.id, _row("Alice", "GUEST-AAAAA"))
    repos.guests.insert(account_a.id, _row("Bob", "GUEST-BBBBB"))
    repos.guests.insert(account_a.id, _row("100% Sure", "GUEST-CCCCC"))
    repos.guests.insert(account_a.id, _row("Under_Score", "GUEST-DDDDD"))

    def search(term):
        return [g.name for g in repos.guests.find(account_a.id, GuestFilter(search=term))]

    assert search("%") == ["100% Sure"]
    assert search("_") == ["Under_Score"]
    assert search("\\") == []
    assert search("GUEST-") == ["100% Sure", "Alice", "Bob", "Under_Score"]


def test_search_agrees_with_in_memory_filter(repos, account_a):
    for name, code in [("Alice", "GUEST-AAAAA"), ("Bob", "GUEST-BBBBB"), ("100% Sure", "GUEST-CCCCC")]:
        repos.guests.insert(account_a.id, _row(name, code))
    guests = repos.guests.find(account_a.id)

    for term in ["%", "_", "a%", "bob", "guest-c"]:
        flt = GuestFilter(search=term)
        in_memory = [g.name for g in guests if matches_filter(g, flt)]
        assert [g.name for g in repos.guests.find(account_a.id, flt)] == in_memory


def test_checked_in_since(repos, account_a):
    now = datetime.utcnow()
    old = repos.guests.insert(account_a.id, _row("Old", "GUEST-AAAAA"))
    new = repos.guests.insert(account_a.id, _row("New", "GUEST-BBBBB"))
    repos.guests.insert(account_a.id, _row("Absent", "GUEST-CCCCC"))
    repos.guests.update_fields(account_a.id, old.id, {"guest_count": 1, "check_in_date": now - timedelta(hours=1)})
    repos.guests.update_fields(account_a.id, new.id, {"guest_count": 1, "check_in_date": now})

    flt = GuestFilter(checked_in=True, checked_in_since=now - timedelta(minutes=5))

    assert [g.name for g in repos.guests.find(account_a.id, flt)] == ["New"]


def test_checked_in_since_with_aware_timestamps():
    since = datetime(2026, 6, 1, 12, 0)
    guest = GuestRead(
        id="a" * 32,
        account_id="b" * 32,
        name="Alice",
        category="Regular",
        code="GUEST-AAAAA",
        check_in_date=datetime(2026, 6, 1, 19, 30, tzinfo=timezone(timedelta(hours=7))),
    )

    # 19:30 at UTC+7 is 12:30 UTC
    assert matches_filter(guest, GuestFilter(checked_in_since=since))
    assert not matches_filter(guest, GuestFilter(checked_in_since=since + timedelta(hours=1)))


def test_delete_all_keeps_other_accounts_and_prizes(repos, account_a, account_b):
    repos.guests.insert(account_a.id, _row("Alice", "GUEST-AAAAA"))
    repos.guests.insert(account_a.id, _row("Budi", "GUEST-BBBBB"))
    repos.guests.insert(account_b.id, _row("Bob", "GUEST-AAAAA", category="Family"))
    repos.prizes.create(account_a.id, "Rice cooker")

    assert repos.guests.delete_all(account_a.id) == 2

    assert repos.guests.find(account_a.id) == []
    assert [g.name for g in repos.guests.find(account_b.id)] == ["Bob"]
    assert len(repos.prizes.list_prizes(account_a.id)) == 1
    assert repos.accounts.exists(account_a.id)
    # the freed code can be used again
    assert repos.guests.insert(account_a.id, _row("Alice", "GUEST-AAAAA")).code == "GUEST-AAAAA"


def test_filter_ignores_account_field():
    # a smuggled account id in a filter payload is dropped
    flt = GuestFilter(**{"account_id": "someone-else", "search": "x"})
    assert not hasattr(flt, "account_id")


def test_insert_rejects_unknown_category(repos, account_a):
    with pytest.raises(ValidationError):
        repos.guests.insert(account_a.id, _row("Alice", "GUEST-AAAAA", category="Family"))


def test_insert_rejects_duplicate_code_within_account(repos, account_a, account_b):
    repos.guests.insert(account_a.id, _row("Alice", "GUEST-AAAAA"))
    with pytest.raises(ValidationError):
        repos.guests.insert(account_a.id, _row("Alicia", "GUEST-AAAAA"))

    # the same code is fine in another account
    other = repos.guests.insert(account_b.id, _row("Bob", "GUEST-AAAAA", category="Family"))
    assert other.account_id == account_b.id


def test_update_fields_cannot_change_account(repos, account_a, account_b):
    alice = repos.guests.insert(account_a.id, _row("Alice", "GUEST-AAAAA"))

    with pytest.raises(ValidationError):
        repos.guests.update_fields(account_a.id, alice.id, {"account_id": account_b.id})
    with pytest.raises(ValidationError):
        repos.guests.update_fields(account_a.id, alice.id, {"version": 99})

    assert repos.guests.find_by_id(account_a.id, alice.id).account_id == account_a.id


def test_update_fields_scoped_by_account(repos, account_a, account_b):
    alice = repos.guests.insert(account_a.id, _row("Alice", "GUEST-AAAAA"))

    with pytest.raises(NotFoundError):
        repos.guests.update_fields(account_b.id, alice.id, {"info": "hijacked"})

    assert repos.guests.find_by_id(account_a.id, alice.id).info == ""


def test_update_fields_bumps_version(repos, account_a):
    alice = repos.guests.insert(account_a.id, _row("Alice", "GUEST-AAAAA"))
    updated = repos.guests.update_fields(account_a.id, alice.id, {"info": "table near stage"})

    assert updated.version == alice.version + 1
    assert updated.info == "table near stage"


def test_update_fields_compare_and_set(repos, account_a):
    alice = repos.guests.insert(account_a.id, _row("Alice", "GUEST-AAAAA"))
    repos.guests.update_fields(account_a.id, alice.id, {"info": "first"})

    with pytest.raises(ConcurrentModificationError):
        repos.guests.update_fields(account_a.id, alice.id, {"info": "stale"}, expected_version=alice.version)

    assert repos.guests.find_by_id(account_a.id, alice.id).info == "first"


def test_update_fields_require_unchecked(repos, account_a):
    alice = repos.guests.insert(account_a.id, _row("Alice", "GUEST-AAAAA"))
    repos.guests.update_fields(
        account_a.id, alice.id, {"check_in_date": alice.created_at, "guest_count": 2}, require_unchecked=True
    )

    with pytest.raises(CheckInConfirmationRequired) as exc:
        repos.guests.update_fields(
            account_a.id, alice.id, {"check_in_date": alice.created_at, "guest_count": 3}, require_unchecked=True
        )
    assert exc.value.guest.guest_count == 2


def test_delete_cascade_only_touches_target_account(repos, account_a, account_b):
    repos.guests.insert(account_a.id, _row("Alice", "GUEST-AAAAA"))
    repos.guests.insert(account_b.id, _row("Bob", "GUEST-BBBBB", category="Family"))
    repos.prizes.create(account_a.id, "Rice cooker")
    repos.prizes.create(account_b.id, "Blender")
    repos.artifacts.add(account_a.id, "guests.xlsx", "/tmp/does-not-matter.xlsx")

    result = repos.guests.delete_cascade(account_a.id)

    assert (result.guests, result.prizes, result.files) == (1, 1, 1)
    assert result.file_paths == ["/tmp/does-not-matter.xlsx"]
    assert repos.guests.find(account_a.id) == []
    assert [g.name for g in repos.guests.find(account_b.id)] == ["Bob"]
    assert [p.name for p in repos.prizes.list_prizes(account_b.id)] == ["Blender"]


def test_find_match_prefers_phone(repos, account_a):
    repos.guests.insert(account_a.id, _row("Siti", "GUEST-AAAAA"))
    by_phone = repos.guests.insert(account_a.id, _row("Siti Rahma", "GUEST-BBBBB", phone="6281234567890"))

    match = repos.guests.find_match(account_a.id, "6281234567890", "siti")
    assert match.id == by_phone.id


def test_find_match_by_name_is_case_insensitive(repos, account_a):
    siti = repos.guests.insert(account_a.id, _row("Siti", "GUEST-AAAAA"))
    assert repos.guests.find_match(account_a.id, "", "  SITI ").id == siti.id
    assert repos.guests.find_match(account_a.id, "", "Budi") is None


def test_stats(repos, account_a, account_b):
    alice = repos.guests.insert(account_a.id, _row("Alice", "GUEST-AAAAA"))
    repos.guests.insert(account_a.id, _row("Walker", "GUEST-BBBBB", is_invited=False))
    repos.guests.insert(account_b.id, _row("Bob", "GUEST-CCCCC", category="Family"))
    repos.guests.update_fields(account_a.id, alice.id, {"check_in_date": alice.created_at, "guest_count": 3})
    repos.guests.update_fields(account_a.id, alice.id, {"kado_count": 1, "gift_recorded_at": alice.created_at})

    stats = repos.guests.stats(account_a.id)

    assert stats.total_guests == 2
    assert stats.invited_guests == 1
    assert stats.walk_in_guests == 1
    assert stats.checked_in_guests == 1
    assert stats.total_attendees == 3
    assert stats.total_kado == 1
    assert stats.guests_with_gifts == 1


def test_expired_deadline_fails_without_writing(db_session, repos, account_a):
    expired = GuestRepo(db_session, Deadline(0))

    with pytest.raises(OperationTimeoutError) as exc:
        expired.insert(account_a.id, _row("Alice", "GUEST-AAAAA"))

    assert exc.value.status_code == 504
    assert db_session.query(Guest).count() == 0
