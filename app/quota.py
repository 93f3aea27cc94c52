"""Admission control for new vaults and media.

Everything here is a pure function of (limits, usage, subscription): no I/O
and no exceptions, so the UI can ask before a capture starts.
"""
from dataclasses import dataclass
from typing import Optional

from schemas import ItemType, QuotaDecision, SubscriptionState, Tier, UsageSnapshot

ENTITLEMENT_UNKNOWN = 'entitlement unknown'
USAGE_UNKNOWN = 'usage unknown'
UPGRADE_HINT = 'Upgrade to Premium for unlimited storage.'


@dataclass(frozen=True)
class QuotaLimits:
    free_max_photos: int = 200
    free_max_videos: int = 50
    free_max_items: int = 250
    free_max_vaults: int = 3
    max_blob_bytes: int = 2 * 1024 ** 3
    premium_storage_bytes: int = 100 * 1024 ** 3

    @classmethod
    def from_config(cls, config):
        return cls(
            free_max_photos=config['FREE_MAX_PHOTOS'],
            free_max_videos=config['FREE_MAX_VIDEOS'],
            free_max_items=config['FREE_MAX_ITEMS'],
            free_max_vaults=config['FREE_MAX_VAULTS'],
            max_blob_bytes=config['MAX_BLOB_BYTES'],
            premium_storage_bytes=config['PREMIUM_STORAGE_BYTES'],
        )


def _allow():
    return QuotaDecision(allowed=True)


def _deny(reason):
    return QuotaDecision(allowed=False, reason=reason)


def _tier_of(subscription):
    if not isinstance(subscription, SubscriptionState):
        return None
    return subscription.tier


class QuotaPolicy:

    def __init__(self, limits: Optional[QuotaLimits] = None):
        self.limits = limits or QuotaLimits()

    def limits_for(self, subscription) -> dict:
        """Effective ceilings for ``subscription``; ``None`` means unlimited."""
        tier = _tier_of(subscription)
        if tier is Tier.PREMIUM:
            return {
                'tier': tier.value,
                'max_photos': None,
                'max_videos': None,
                'max_items': None,
                'max_vaults': None,
                'max_blob_bytes': self.limits.max_blob_bytes,
                'storage_bytes': self.limits.premium_storage_bytes,
            }
        return {
            'tier': tier.value if tier else None,
            'max_photos': self.limits.free_max_photos,
            'max_videos': self.limits.free_max_videos,
            'max_items': self.limits.free_max_items,
            'max_vaults': self.limits.free_max_vaults,
            'max_blob_bytes': self.limits.max_blob_bytes,
            'storage_bytes': None,
        }

    def can_add(self, item_type, usage: UsageSnapshot, subscription, size_bytes=0) -> QuotaDecision:
        tier = _tier_of(subscription)
        if tier is None:
            return _deny(ENTITLEMENT_UNKNOWN)

        try:
            item_type = ItemType(item_type)
        except (ValueError, TypeError):
            return _deny(f'Unsupported item type: {item_type!r}')
        if not isinstance(usage, UsageSnapshot):
            return _deny(USAGE_UNKNOWN)
        if not isinstance(size_bytes, int) or size_bytes < 0:
            return _deny(f'Invalid item size: {size_bytes!r}')

        if size_bytes > self.limits.max_blob_bytes:
            return _deny(f'Files larger than {self.limits.max_blob_bytes} bytes cannot be stored.')

        if tier is Tier.PREMIUM:
            if usage.total_bytes + size_bytes > self.limits.premium_storage_bytes:
                return _deny('Premium storage quota reached. Delete items to free up space.')
            return _allow()

        if item_type is ItemType.VIDEO and usage.video_count >= self.limits.free_max_videos:
            return _deny(f'Free plan limited to {self.limits.free_max_videos} videos. {UPGRADE_HINT}')
        if item_type is ItemType.PHOTO and usage.photo_count >= self.limits.free_max_photos:
            return _deny(f'Free plan limited to {self.limits.free_max_photos} photos. {UPGRADE_HINT}')
        if usage.item_count >= self.limits.free_max_items:
            return _deny(f'Free plan limited to {self.limits.free_max_items} items. {UPGRADE_HINT}')
        return _allow()

    def can_create_vault(self, usage: UsageSnapshot, subscription) -> QuotaDecision:
        tier = _tier_of(subscription)
        if tier is None:
            return _deny(ENTITLEMENT_UNKNOWN)
        if not isinstance(usage, UsageSnapshot):
            return _deny(USAGE_UNKNOWN)
        if tier is Tier.PREMIUM:
            return _allow()
        if usage.vault_count >= self.limits.free_max_vaults:
            return _deny(
                f'Free plan limited to {self.limits.free_max_vaults} vaults. '
                'Upgrade to Premium for unlimited vaults.'
            )
        return _allow()
