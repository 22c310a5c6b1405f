"""
Tests for account provisioning, edits and cascade deletion
"""

import os

import pytest
from pydantic import ValidationError as SchemaValidationError

from app.core.config import settings
from app.core.errors import NotFoundError, ValidationError
from app.schemas.account import AccountCreate, AccountUpdate


def test_create_account_uses_default_categories(accounts):
    account = accounts.create_account(AccountCreate(title="  Rina & Joko  "))

    assert account.title == "Rina & Joko"
    assert account.guest_categories == settings.DEFAULT_GUEST_CATEGORIES
    assert len(account.id) == 32


def test_create_account_rejects_duplicate_categories(accounts):
    with pytest.raises(ValidationError):
        accounts.create_account(AccountCreate(title="W", guest_categories=["VIP", "vip"]))


def test_create_account_rejects_empty_categories(accounts):
    with pytest.raises(ValidationError):
        accounts.create_account(AccountCreate(title="W", guest_categories=["  "]))


def test_update_account_details(accounts, account_a):
    updated = accounts.update(account_a.id, AccountUpdate(location="Gedung Serbaguna", welcome_text="Selamat datang"))

    assert updated.location == "Gedung Serbaguna"
    assert updated.welcome_text == "Selamat datang"
    assert updated.title == account_a.title


def test_update_rejects_account_id():
    with pytest.raises(SchemaValidationError):
        AccountUpdate(id="other")


def test_category_in_use_cannot_be_removed(accounts, make_guest, account_a):
    make_guest(account_a, category="VIP")

    with pytest.raises(ValidationError) as exc:
        accounts.update(account_a.id, AccountUpdate(guest_categories=["Regular"]))
    assert exc.value.details == {"categories": ["VIP"]}

    # unused categories can go, new ones can come
    updated = accounts.update(account_a.id, AccountUpdate(guest_categories=["VIP", "Family"]))
    assert updated.guest_categories == ["VIP", "Family"]


def test_delete_account_cascades_only_its_own_data(
    accounts, repos, make_guest, doorprize, account_a, account_b, tmp_path, monkeypatch
):
    monkeypatch.setattr(settings, "UPLOAD_DIR", str(tmp_path / "uploads"))
    upload_dir = tmp_path / "uploads" / account_a.id
    upload_dir.mkdir(parents=True)
    stored = upload_dir / "guests.xlsx"
    stored.write_bytes(b"xlsx")
    repos.artifacts.add(account_a.id, "guests.xlsx", str(stored))

    make_guest(account_a, name="Alice")
    make_guest(account_b, name="Bob")
    doorprize.create_prize(account_a.id, "Rice cooker")
    doorprize.create_prize(account_b.id, "Blender")

    result = accounts.delete_account(account_a.id)

    assert (result.guests, result.prizes, result.files) == (1, 1, 1)
    assert not os.path.exists(stored)
    with pytest.raises(NotFoundError):
        accounts.get(account_a.id)
    assert [g.name for g in repos.guests.find(account_b.id)] == ["Bob"]
    assert [p.name for p in repos.prizes.list_prizes(account_b.id)] == ["Blender"]


def test_delete_missing_account(accounts):
    with pytest.raises(NotFoundError):
        accounts.delete_account("0" * 32)
