"""Exception hierarchy for the Peru candidate sync."""


class SyncError(Exception):
    """Base class for all sync errors."""


class PortalError(SyncError):
    """Problem acquiring data from the JNE portal."""


class PortalTransientError(PortalError):
    """Acquisition failure worth retrying (timeouts, captchas, flaky navigation)."""


class PortalTimeoutError(PortalTransientError):
    """Navigation or content wait exceeded its timeout."""


class PortalNavigationError(PortalTransientError):
    """Navigation failed for a network-level reason."""


class CaptchaDetectedError(PortalTransientError):
    """The portal served an anti-bot challenge instead of content."""


class ContentNotFoundError(PortalTransientError):
    """The page rendered but no response or selector yielded data."""


class PortalSessionError(PortalError):
    """The browser session could not be started or restarted. Fatal."""


class StoreError(SyncError):
    """Problem reading from or writing to the candidate store."""


class SlugConflictError(StoreError):
    """Insert rejected by the unique constraint on candidates.slug."""

    def __init__(self, slug: str):
        super().__init__(f"Candidate slug already exists: {slug}")
        self.slug = slug


class ReconcileError(SyncError):
    """A single record could not be merged into the store."""


class SyncCancelled(SyncError):
    """Shutdown was requested while a category was being processed."""
