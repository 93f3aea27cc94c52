import uuid
from datetime import datetime, timezone

from database import db


def _utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _new_id():
    return str(uuid.uuid4())


class Vault(db.Model):
    __tablename__ = 'vaults'

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    owner_id = db.Column(db.String(256), nullable=False, index=True)
    name = db.Column(db.String(256), nullable=False)
    description = db.Column(db.Text, nullable=False, default='')
    color = db.Column(db.String(32), nullable=False, default='#6366f1')
    created_at = db.Column(db.DateTime, nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=_utcnow)

    # Unloaded item rows are removed by ON DELETE CASCADE in the database
    items = db.relationship('Item', backref='vault', cascade='all, delete-orphan', passive_deletes=True)

    def touch(self):
        self.updated_at = _utcnow()

    def __repr__(self):
        return f"<Vault(id={self.id}, owner={self.owner_id}, name={self.name})>"


class Item(db.Model):
    __tablename__ = 'items'

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    vault_id = db.Column(db.String(36), db.ForeignKey('vaults.id', ondelete='CASCADE'), nullable=False, index=True)
    type = db.Column(db.String(10), nullable=False)
    name = db.Column(db.String(256), nullable=False)
    filename = db.Column(db.String(256), nullable=False)
    blob_ref = db.Column(db.String(1024), nullable=False, unique=True)
    size_bytes = db.Column(db.BigInteger, nullable=False, default=0)
    duration_seconds = db.Column(db.Integer)
    resolution = db.Column(db.String(32))
    format = db.Column(db.String(32))
    created_at = db.Column(db.DateTime, nullable=False, default=_utcnow)

    def __repr__(self):
        return f"<Item(id={self.id}, vault={self.vault_id}, type={self.type})>"
