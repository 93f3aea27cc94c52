from datetime import datetime

import pytest

from conftest import OTHER_OWNER, OWNER
from database import db
from errors import NotFound, PartialDeleteFailure
from models import Item, Vault
from object_store import vault_prefix
from schemas import PhotoMetadata, VideoMetadata


def _video(name="clip"):
    return VideoMetadata(name=name, filename=f"{name}.mp4", duration_seconds=12, resolution="1920x1080", format="mp4")


def test_created_vault_is_listed_once_with_zero_items(vault_store):
    vault = vault_store.create_vault(OWNER, "Trip", "Summer 2026", "#ff0000")

    listed = vault_store.list_vaults(OWNER)

    assert [(v.id, count) for v, count in listed] == [(vault.id, 0)]
    assert listed[0][0].name == "Trip"


def test_list_vaults_is_owner_scoped(vault_store):
    vault_store.create_vault(OWNER, "Mine")
    vault_store.create_vault(OTHER_OWNER, "Theirs")

    assert [v.name for v, _ in vault_store.list_vaults(OWNER)] == ["Mine"]
    with pytest.raises(NotFound):
        vault_store.get_vault(OWNER, vault_store.list_vaults(OTHER_OWNER)[0][0].id)


def test_update_is_partial_and_bumps_updated_at(vault_store):
    first = vault_store.create_vault(OWNER, "First", "keep me", "#111111")
    second = vault_store.create_vault(OWNER, "Second")
    first.updated_at = datetime(2020, 1, 1)
    second.updated_at = datetime(2021, 1, 1)
    db.session.commit()
    assert [v.name for v, _ in vault_store.list_vaults(OWNER)] == ["Second", "First"]

    updated = vault_store.update_vault(OWNER, first.id, color="#222222")

    assert updated.color == "#222222"
    assert updated.name == "First"
    assert updated.description == "keep me"
    assert updated.updated_at > datetime(2021, 1, 1)
    assert [v.name for v, _ in vault_store.list_vaults(OWNER)] == ["First", "Second"]


def test_item_count_tracks_rows(vault_store, item_store):
    vault = vault_store.create_vault(OWNER, "Counted")
    items = [item_store.create_item(OWNER, vault.id, _video(f"v{i}"), b"x" * i) for i in range(4)]
    item_store.delete_item(OWNER, items[1].id)
    item_store.create_item(OWNER, vault.id, PhotoMetadata(name="p"), b"p")
    item_store.delete_item(OWNER, items[3].id)

    [(listed, count)] = vault_store.list_vaults(OWNER)
    assert count == Item.query.filter_by(vault_id=vault.id).count() == 3
    assert vault_store.item_count(vault.id) == 3


def test_delete_vault_removes_blobs_and_rows(vault_store, item_store, blobs):
    vault = vault_store.create_vault(OWNER, "Doomed")
    keep = vault_store.create_vault(OWNER, "Keep")
    for i in range(3):
        item_store.create_item(OWNER, vault.id, _video(f"v{i}"), b"secret")
    kept_item = item_store.create_item(OWNER, keep.id, PhotoMetadata(name="stay"), b"stay")

    report = vault_store.delete_vault(OWNER, vault.id)

    assert report.complete
    assert len(report.removed_keys) == 3
    assert blobs.list(vault_prefix(OWNER, vault.id)) == []
    assert Item.query.filter_by(vault_id=vault.id).count() == 0
    assert db.session.get(Vault, vault.id) is None
    # Neighbouring vault is untouched
    assert blobs.get(kept_item.blob_ref) == b"stay"
    assert Item.query.filter_by(vault_id=keep.id).count() == 1


def test_delete_vault_with_failing_blob_still_removes_metadata(vault_store, item_store, blobs):
    vault = vault_store.create_vault(OWNER, "Flaky")
    items = [item_store.create_item(OWNER, vault.id, _video(f"v{i}"), b"data") for i in range(3)]
    bad_key = items[1].blob_ref
    blobs.failing_keys.add(bad_key)

    with pytest.raises(PartialDeleteFailure) as excinfo:
        vault_store.delete_vault(OWNER, vault.id)

    assert set(excinfo.value.failed_keys) == {bad_key}
    assert excinfo.value.metadata_deleted is True
    assert len(excinfo.value.report.removed_keys) == 2
    assert Item.query.filter_by(vault_id=vault.id).count() == 0
    assert db.session.get(Vault, vault.id) is None
    assert [b.key for b in blobs.list(vault_prefix(OWNER, vault.id))] == [bad_key]

    # A retry once storage is back clears the leftover
    blobs.failing_keys.clear()
    assert blobs.remove(excinfo.value.failed_keys) == {bad_key: None}
    assert blobs.list(vault_prefix(OWNER, vault.id)) == []


def test_delete_vault_when_listing_fails_uses_known_refs(vault_store, item_store, blobs):
    vault = vault_store.create_vault(OWNER, "Offline listing")
    key = item_store.create_item(OWNER, vault.id, PhotoMetadata(name="p"), b"p").blob_ref
    blobs.fail_list = True

    with pytest.raises(PartialDeleteFailure) as excinfo:
        vault_store.delete_vault(OWNER, vault.id)

    assert excinfo.value.report.listing_error == "listing unavailable"
    assert excinfo.value.report.removed_keys == [key]
    assert db.session.get(Vault, vault.id) is None
    blobs.fail_list = False
    assert blobs.list(vault_prefix(OWNER, vault.id)) == []


def test_delete_vault_sweeps_unreferenced_blobs_under_prefix(vault_store, blobs):
    vault = vault_store.create_vault(OWNER, "Stray")
    stray = f"{vault_prefix(OWNER, vault.id)}left-over.part"
    blobs.put(stray, b"partial upload")

    report = vault_store.delete_vault(OWNER, vault.id)

    assert report.removed_keys == [stray]
    assert blobs.get(stray) is None


def test_delete_unknown_vault_is_not_found(vault_store):
    with pytest.raises(NotFound):
        vault_store.delete_vault(OWNER, "missing")


def test_delete_other_owners_vault_is_not_found(vault_store, item_store, blobs):
    vault = vault_store.create_vault(OTHER_OWNER, "Theirs")
    item = item_store.create_item(OTHER_OWNER, vault.id, PhotoMetadata(name="p"), b"p")

    with pytest.raises(NotFound):
        vault_store.delete_vault(OWNER, vault.id)

    assert blobs.get(item.blob_ref) == b"p"
