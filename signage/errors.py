class ManifestError(Exception):
    """Base class for failures raised by the manifest services."""


class NotFoundError(ManifestError):
    """A player, manifest or media item that had to exist does not."""


class ValidationError(ManifestError):
    """Input was rejected before anything was persisted."""


class StorageError(ManifestError):
    """Reading or writing a manifest document failed.

    Corrupt documents are reported, never repaired.
    """
