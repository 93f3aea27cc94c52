"""Entry point for every mutating operation the UI layer can request.

The manager checks identity and quota, then delegates to the stores. Errors
from the stores travel upward unchanged.
"""
import threading
import time
from enum import Enum

from errors import CaptureExpired, CaptureInProgress, CaptureStateError, NotAuthenticated, QuotaExceeded
from item_store import format_file_size, serialize_item
from logger import get_logger
from object_store import is_key_segment
from schemas import ItemType, PhotoMetadata, VideoMetadata
from vault_store import serialize_vault

logger = get_logger(__name__)


class CaptureState(str, Enum):
    IDLE = 'idle'
    QUOTA_CHECK = 'quota_check'
    DENIED = 'denied'
    CAPTURING = 'capturing'
    UPLOADING = 'uploading'
    COMMITTED = 'committed'
    FAILED = 'failed'


TERMINAL_STATES = frozenset({CaptureState.DENIED, CaptureState.COMMITTED, CaptureState.FAILED})


class CaptureSession:
    """One recording from quota check to committed item.

    IDLE -> QUOTA_CHECK -> DENIED
                        -> CAPTURING -> UPLOADING -> COMMITTED | FAILED
    """

    def __init__(self, manager, owner_id, vault_id, item_type):
        self.manager = manager
        self.owner_id = owner_id
        self.vault_id = vault_id
        # Unknown types are left for the quota check to deny
        self.item_type = item_type
        self.state = CaptureState.IDLE
        self.decision = None
        self.item = None
        self.error = None
        self.started_at = None

    @property
    def finished(self):
        return self.state in TERMINAL_STATES

    @property
    def elapsed(self):
        if self.started_at is None:
            return 0.0
        return self.manager.clock() - self.started_at

    @property
    def expired(self):
        return self.state is CaptureState.CAPTURING and self.elapsed > self.manager.capture_max_seconds

    def start(self):
        if self.state is CaptureState.CAPTURING:
            raise CaptureInProgress('A capture is already running')
        if self.state is not CaptureState.IDLE:
            raise CaptureStateError(f'Cannot start a capture in state {self.state.value}')

        self.state = CaptureState.QUOTA_CHECK
        try:
            self.decision = self.manager.check_quota(self.owner_id, self.item_type)
        except Exception as e:
            self._fail(e)
            raise
        if not self.decision.allowed:
            self.state = CaptureState.DENIED
            self.error = QuotaExceeded(self.decision.reason)
            logger.info("Capture denied for owner %s: %s", self.owner_id, self.decision.reason)
            return self.decision

        self.state = CaptureState.CAPTURING
        self.started_at = self.manager.clock()
        return self.decision

    def enforce_deadline(self):
        """Force-stop a capture that outlived the cap; True when it did."""
        if not self.expired:
            return False
        self._fail(CaptureExpired(f'Capture exceeded {self.manager.capture_max_seconds} seconds; recording discarded'))
        logger.warning("Capture for owner %s force-stopped after %.0fs", self.owner_id, self.elapsed)
        return True

    def cancel(self):
        if self.state is CaptureState.CAPTURING:
            self._fail(CaptureStateError('Capture cancelled'))

    def complete(self, event, name=None):
        """Upload the captured bytes; returns the committed item."""
        if self.state is not CaptureState.CAPTURING:
            raise CaptureStateError(f'Cannot complete a capture in state {self.state.value}')
        if self.enforce_deadline():
            raise self.error
        if event.duration_seconds > self.manager.capture_max_seconds:
            self._fail(CaptureExpired(f'Capture exceeded {self.manager.capture_max_seconds} seconds; recording discarded'))
            raise self.error

        try:
            metadata = self._metadata(event, name)
        except Exception as e:
            self._fail(e)
            raise

        self.state = CaptureState.UPLOADING
        try:
            self.item = self.manager.add_item(self.owner_id, self.vault_id, metadata, event.data)
        except Exception as e:
            self._fail(e)
            raise
        self.state = CaptureState.COMMITTED
        self.manager._release_capture(self)
        return self.item

    def _metadata(self, event, name):
        fmt = event.format or ('mp4' if self.item_type == ItemType.VIDEO else 'jpg')
        if self.item_type == ItemType.VIDEO:
            return VideoMetadata(
                name=name or 'Video',
                filename=f'capture.{fmt}',
                duration_seconds=event.duration_seconds,
                resolution=event.resolution or 'unknown',
                format=fmt,
            )
        return PhotoMetadata(name=name or 'Photo', filename=f'capture.{fmt}', resolution=event.resolution, format=fmt)

    def _fail(self, error):
        self.state = CaptureState.FAILED
        self.error = error
        self.manager._release_capture(self)


class ResourceManager:

    def __init__(self, vault_store, item_store, quota_policy, entitlements, capture_max_seconds=300, clock=None):
        self.vaults = vault_store
        self.items = item_store
        self.policy = quota_policy
        self.entitlements = entitlements
        self.capture_max_seconds = capture_max_seconds
        self.clock = clock or time.monotonic
        self._captures = {}
        self._captures_lock = threading.Lock()

    def _require_owner(self, owner_id):
        if not owner_id:
            raise NotAuthenticated()
        # Owner ids prefix every blob key
        if not is_key_segment(owner_id):
            raise NotAuthenticated('Owner identity cannot address storage')

    def subscription(self, owner_id):
        return self.entitlements.get(owner_id)

    def check_quota(self, owner_id, item_type, size_bytes=0):
        self._require_owner(owner_id)
        usage = self.items.usage(owner_id)
        return self.policy.can_add(item_type, usage, self.subscription(owner_id), size_bytes)

    def usage_summary(self, owner_id):
        self._require_owner(owner_id)
        usage = self.items.usage(owner_id)
        subscription = self.subscription(owner_id)
        return {
            'tier': subscription.tier.value if subscription else None,
            'usage': {
                'photo_count': usage.photo_count,
                'video_count': usage.video_count,
                'item_count': usage.item_count,
                'vault_count': usage.vault_count,
                'total_bytes': usage.total_bytes,
                'formatted_size': format_file_size(usage.total_bytes),
            },
            'limits': self.policy.limits_for(subscription),
        }

    # Vaults

    def create_vault(self, owner_id, payload):
        self._require_owner(owner_id)
        decision = self.policy.can_create_vault(self.items.usage(owner_id), self.subscription(owner_id))
        if not decision.allowed:
            raise QuotaExceeded(decision.reason)
        vault = self.vaults.create_vault(owner_id, payload.name, payload.description, payload.color)
        return serialize_vault(vault, 0)

    def list_vaults(self, owner_id):
        self._require_owner(owner_id)
        return [serialize_vault(vault, count) for vault, count in self.vaults.list_vaults(owner_id)]

    def get_vault(self, owner_id, vault_id):
        self._require_owner(owner_id)
        vault = self.vaults.get_vault(owner_id, vault_id)
        return serialize_vault(vault, self.vaults.item_count(vault.id))

    def update_vault(self, owner_id, vault_id, payload):
        self._require_owner(owner_id)
        vault = self.vaults.update_vault(owner_id, vault_id, **payload.model_dump(exclude_unset=True))
        return serialize_vault(vault, self.vaults.item_count(vault.id))

    def delete_vault(self, owner_id, vault_id):
        self._require_owner(owner_id)
        return self.vaults.delete_vault(owner_id, vault_id)

    # Items

    def add_item(self, owner_id, vault_id, metadata, data):
        self._require_owner(owner_id)
        self.vaults.get_vault(owner_id, vault_id)
        decision = self.check_quota(owner_id, metadata.type, len(data))
        if not decision.allowed:
            raise QuotaExceeded(decision.reason)
        return serialize_item(self.items.create_item(owner_id, vault_id, metadata, data))

    def list_items(self, owner_id, vault_id):
        self._require_owner(owner_id)
        return [serialize_item(item) for item in self.items.list_items(owner_id, vault_id)]

    def get_item(self, owner_id, item_id):
        self._require_owner(owner_id)
        return serialize_item(self.items.get_item(owner_id, item_id))

    def read_item_blob(self, owner_id, item_id):
        self._require_owner(owner_id)
        item, data = self.items.read_blob(owner_id, item_id)
        return serialize_item(item), data

    def update_item(self, owner_id, item_id, payload):
        self._require_owner(owner_id)
        return serialize_item(self.items.update_item(owner_id, item_id, **payload.model_dump(exclude_unset=True)))

    def delete_item(self, owner_id, item_id):
        self._require_owner(owner_id)
        self.items.delete_item(owner_id, item_id)

    # Capture

    def begin_capture(self, owner_id, vault_id, item_type):
        """Open a capture for ``owner_id``; one recorder, one capture at a time."""
        self._require_owner(owner_id)
        with self._captures_lock:
            active = self._captures.get(owner_id)
            if active is not None and not active.enforce_deadline() and not active.finished:
                raise CaptureInProgress('A capture is already running')
            session = CaptureSession(self, owner_id, vault_id, item_type)
            self._captures[owner_id] = session
        try:
            session.start()
        finally:
            if session.state is not CaptureState.CAPTURING:
                self._release_capture(session)
        return session

    def active_capture(self, owner_id):
        return self._captures.get(owner_id)

    def _release_capture(self, session):
        # enforce_deadline may run while begin_capture already holds the lock
        if self._captures.get(session.owner_id) is session:
            self._captures.pop(session.owner_id, None)
