"""Error taxonomy shared by the stores, the resource manager and the API.

Quota decisions and formatting helpers never raise; everything that touches
a store surfaces one of these instead.
"""


class MediaVaultError(Exception):
    status_code = 500

    def __init__(self, message=None):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__

    def to_dict(self):
        return {'error': self.message, 'kind': self.__class__.__name__}


class NotAuthenticated(MediaVaultError):
    status_code = 401

    def __init__(self, message='No owner identity available'):
        super().__init__(message)


class QuotaExceeded(MediaVaultError):
    status_code = 403

    def __init__(self, reason):
        super().__init__(reason)
        self.reason = reason


class NotFound(MediaVaultError):
    status_code = 404

    def __init__(self, kind, ident):
        super().__init__(f'{kind} not found')
        self.kind = kind
        self.ident = ident


class CaptureStateError(MediaVaultError):
    status_code = 409


class CaptureInProgress(CaptureStateError):
    pass


class CaptureExpired(CaptureStateError):
    """Recording ran past the wall-clock cap and was discarded."""
    status_code = 408


class TransientIOError(MediaVaultError):
    """A storage or database call failed without a definitive outcome; safe to retry."""
    status_code = 503


class PartialDeleteFailure(MediaVaultError):
    """Some part of a delete failed after the rest went through.

    ``failed_keys`` maps blob keys to the error reported for them.
    ``metadata_deleted`` tells whether the metadata rows are gone.
    """
    status_code = 207

    def __init__(self, message, failed_keys=None, metadata_deleted=True, report=None):
        super().__init__(message)
        self.failed_keys = dict(failed_keys or {})
        self.metadata_deleted = metadata_deleted
        self.report = report

    def to_dict(self):
        payload = super().to_dict()
        payload['status'] = 'partial'
        payload['failed_keys'] = self.failed_keys
        payload['metadata_deleted'] = self.metadata_deleted
        if self.report is not None:
            payload.update(self.report.to_dict())
        return payload
