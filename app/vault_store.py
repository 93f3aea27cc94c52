from dataclasses import dataclass, field

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from database import db
from errors import NotFound, PartialDeleteFailure, TransientIOError
from logger import get_logger
from models import Item, Vault
from object_store import vault_prefix
from schemas import VaultOut

logger = get_logger(__name__)

UPDATABLE_FIELDS = ('name', 'description', 'color')


@dataclass
class DeleteReport:
    vault_id: str
    removed_keys: list = field(default_factory=list)
    failed_keys: dict = field(default_factory=dict)
    listing_error: str = None

    @property
    def complete(self):
        return not self.failed_keys and self.listing_error is None

    def to_dict(self):
        return {
            'vault_id': self.vault_id,
            'removed_keys': list(self.removed_keys),
            'failed_keys': dict(self.failed_keys),
            'listing_error': self.listing_error,
        }


def serialize_vault(vault, item_count=0):
    return VaultOut(
        id=vault.id,
        owner_id=vault.owner_id,
        name=vault.name,
        description=vault.description,
        color=vault.color,
        created_at=vault.created_at,
        updated_at=vault.updated_at,
        item_count=item_count,
        last_accessed=vault.updated_at,
        is_locked=False,
    )


class VaultStore:
    """Vault rows and the cascade that takes their items and blobs with them."""

    def __init__(self, object_store):
        self.blobs = object_store

    def _commit(self, action):
        try:
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise TransientIOError(f'{action} failed: {e}') from e

    def get_vault(self, owner_id, vault_id):
        vault = Vault.query.filter_by(id=vault_id, owner_id=owner_id).first()
        if vault is None:
            raise NotFound('Vault', vault_id)
        return vault

    def item_count(self, vault_id):
        return Item.query.filter_by(vault_id=vault_id).count()

    def create_vault(self, owner_id, name, description='', color='#6366f1'):
        vault = Vault(owner_id=owner_id, name=name, description=description or '', color=color)
        db.session.add(vault)
        self._commit('Creating vault')
        logger.info("Created vault %s for owner %s", vault.id, owner_id)
        return vault

    def update_vault(self, owner_id, vault_id, **fields):
        vault = self.get_vault(owner_id, vault_id)
        for name in UPDATABLE_FIELDS:
            if fields.get(name) is not None:
                setattr(vault, name, fields[name])
        vault.touch()
        self._commit('Updating vault')
        return vault

    def list_vaults(self, owner_id):
        """Owner's vaults, most recently updated first, as (vault, item_count)."""
        rows = (
            db.session.query(Vault, func.count(Item.id))
            .outerjoin(Item, Item.vault_id == Vault.id)
            .filter(Vault.owner_id == owner_id)
            .group_by(Vault.id)
            .order_by(Vault.updated_at.desc(), Vault.created_at.desc())
            .all()
        )
        return [(vault, count) for vault, count in rows]

    def delete_vault(self, owner_id, vault_id):
        """Delete a vault, its items and every blob under its prefix.

        Blobs go first: an interruption between the two phases leaves a vault
        with no blobs, never rows pointing at deleted blobs. Blob failures do
        not stop the metadata delete; they are raised afterwards as
        PartialDeleteFailure with the report attached.
        """
        vault = self.get_vault(owner_id, vault_id)
        report = DeleteReport(vault_id=vault.id)

        keys = {ref for (ref,) in db.session.query(Item.blob_ref).filter(Item.vault_id == vault.id)}
        prefix = vault_prefix(owner_id, vault.id)
        try:
            keys.update(blob.key for blob in self.blobs.list(prefix))
        except TransientIOError as e:
            report.listing_error = str(e)
            logger.warning("Listing blobs under %s failed, removing known keys only: %s", prefix, e)

        if keys:
            for key, error in self.blobs.remove(sorted(keys)).items():
                if error:
                    report.failed_keys[key] = error
                    logger.warning("Failed to delete blob %s: %s", key, error)
                else:
                    report.removed_keys.append(key)
            logger.info("Deleted %d blobs for vault %s", len(report.removed_keys), vault.id)
        else:
            logger.info("No blobs to delete for vault %s", vault.id)

        # Item rows go with the vault row through ON DELETE CASCADE
        db.session.delete(vault)
        self._commit('Deleting vault')
        logger.info("Deleted vault %s", vault_id)

        if not report.complete:
            raise PartialDeleteFailure(
                f'Vault {vault_id} deleted but some blobs could not be removed',
                failed_keys=report.failed_keys,
                report=report,
            )
        return report
