import re
import uuid
from pathlib import PurePosixPath

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from database import db
from errors import NotFound, PartialDeleteFailure, TransientIOError
from logger import get_logger
from models import Item, Vault
from object_store import blob_key
from schemas import ItemOut, ItemType, UsageSnapshot

logger = get_logger(__name__)

_DEFAULT_EXTENSIONS = {ItemType.PHOTO.value: '.jpg', ItemType.VIDEO.value: '.mp4'}
_SIZE_UNITS = ['Bytes', 'KB', 'MB', 'GB', 'TB']
_DURATION_RE = re.compile(r'^(?:([1-9]\d*):([0-5]\d):([0-5]\d)|([1-5]?\d):([0-5]\d))$')


def format_duration(seconds):
    """Format seconds as ``M:SS``, or ``H:MM:SS`` from one hour up.

    Bad input formats as ``0:00`` instead of raising.
    """
    try:
        total = int(seconds)
    except (TypeError, ValueError, OverflowError):
        return '0:00'
    total = max(total, 0)
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f'{hours}:{minutes:02d}:{secs:02d}'
    return f'{minutes}:{secs:02d}'


def parse_duration(text):
    """Inverse of format_duration for canonical strings; ``None`` otherwise."""
    if not isinstance(text, str):
        return None
    match = _DURATION_RE.match(text.strip())
    if not match:
        return None
    h, m, s, short_m, short_s = match.groups()
    if h is not None:
        return int(h) * 3600 + int(m) * 60 + int(s)
    return int(short_m) * 60 + int(short_s)


def format_file_size(size_bytes):
    try:
        value = float(size_bytes)
    except (TypeError, ValueError):
        return '0 Bytes'
    if not value > 0:
        return '0 Bytes'
    unit = 0
    while value >= 1024 and unit < len(_SIZE_UNITS) - 1:
        value /= 1024
        unit += 1
    return f'{round(value, 2):g} {_SIZE_UNITS[unit]}'


def serialize_item(item):
    is_video = item.type == ItemType.VIDEO.value
    return ItemOut(
        id=item.id,
        vault_id=item.vault_id,
        type=item.type,
        name=item.name,
        filename=item.filename,
        blob_ref=item.blob_ref,
        size_bytes=item.size_bytes,
        created_at=item.created_at,
        duration_seconds=item.duration_seconds,
        resolution=item.resolution,
        format=item.format,
        formatted_duration=format_duration(item.duration_seconds) if is_video else None,
        formatted_size=format_file_size(item.size_bytes),
    )


def _stored_filename(item_id, metadata):
    suffix = PurePosixPath(metadata.filename).suffix.lower()
    if not re.fullmatch(r'\.[a-z0-9]{1,10}', suffix):
        suffix = _DEFAULT_EXTENSIONS[metadata.type]
    return f'{item_id}{suffix}'


class ItemStore:
    """Item metadata rows plus their encrypted blobs."""

    def __init__(self, object_store):
        self.blobs = object_store

    def _owned_vault(self, owner_id, vault_id):
        vault = Vault.query.filter_by(id=vault_id, owner_id=owner_id).first()
        if vault is None:
            raise NotFound('Vault', vault_id)
        return vault

    def _owned_item(self, owner_id, item_id):
        item = (
            Item.query.join(Vault, Item.vault_id == Vault.id)
            .filter(Item.id == item_id, Vault.owner_id == owner_id)
            .first()
        )
        if item is None:
            raise NotFound('Item', item_id)
        return item

    def create_item(self, owner_id, vault_id, metadata, blob_bytes):
        vault = self._owned_vault(owner_id, vault_id)
        item_id = str(uuid.uuid4())
        filename = _stored_filename(item_id, metadata)
        key = blob_key(owner_id, vault.id, filename)

        # The blob has to exist before any row can point at it
        self.blobs.put(key, blob_bytes)

        item = Item(
            id=item_id,
            vault_id=vault.id,
            type=metadata.type,
            name=metadata.name,
            filename=filename,
            blob_ref=key,
            size_bytes=len(blob_bytes),
            duration_seconds=getattr(metadata, 'duration_seconds', None),
            resolution=metadata.resolution,
            format=metadata.format,
        )
        vault.touch()
        try:
            db.session.add(item)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            failed = self.blobs.remove([key]).get(key)
            if failed:
                logger.warning("Orphaned blob %s left after failed insert: %s", key, failed)
            raise TransientIOError(f'Saving item metadata failed: {e}') from e

        logger.info("Created %s item %s in vault %s (%d bytes)", item.type, item.id, vault.id, item.size_bytes)
        return item

    def list_items(self, owner_id, vault_id):
        vault = self._owned_vault(owner_id, vault_id)
        return (
            Item.query.filter_by(vault_id=vault.id)
            .order_by(Item.created_at.desc(), Item.id.desc())
            .all()
        )

    def get_item(self, owner_id, item_id):
        return self._owned_item(owner_id, item_id)

    def read_blob(self, owner_id, item_id):
        item = self._owned_item(owner_id, item_id)
        data = self.blobs.get(item.blob_ref)
        if data is None:
            raise NotFound('Blob', item.blob_ref)
        return item, data

    def update_item(self, owner_id, item_id, **fields):
        item = self._owned_item(owner_id, item_id)
        if fields.get('name') is not None:
            item.name = fields['name']
        try:
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise TransientIOError(f'Updating item failed: {e}') from e
        return item

    def delete_item(self, owner_id, item_id):
        item = self._owned_item(owner_id, item_id)
        key = item.blob_ref

        blob_error = self.blobs.remove([key]).get(key)
        if blob_error:
            logger.warning("Could not remove blob %s of item %s: %s", key, item_id, blob_error)

        try:
            db.session.delete(item)
            db.session.commit()
            metadata_deleted = True
        except SQLAlchemyError:
            db.session.rollback()
            logger.error("Could not delete item record %s", item_id, exc_info=True)
            metadata_deleted = False

        if blob_error and not metadata_deleted:
            raise TransientIOError(f'Deleting item {item_id} failed')
        if blob_error:
            raise PartialDeleteFailure(
                'Item deleted but its blob could not be removed',
                failed_keys={key: blob_error},
            )
        if not metadata_deleted:
            raise PartialDeleteFailure(
                'Blob removed but the item record could not be deleted',
                metadata_deleted=False,
            )
        logger.info("Deleted item %s and blob %s", item_id, key)

    def usage(self, owner_id):
        rows = (
            db.session.query(Item.type, func.count(Item.id), func.coalesce(func.sum(Item.size_bytes), 0))
            .join(Vault, Item.vault_id == Vault.id)
            .filter(Vault.owner_id == owner_id)
            .group_by(Item.type)
            .all()
        )
        counts = {item_type: (count, size) for item_type, count, size in rows}
        photos = counts.get(ItemType.PHOTO.value, (0, 0))
        videos = counts.get(ItemType.VIDEO.value, (0, 0))
        return UsageSnapshot(
            photo_count=photos[0],
            video_count=videos[0],
            vault_count=Vault.query.filter_by(owner_id=owner_id).count(),
            total_bytes=int(photos[1]) + int(videos[1]),
        )
