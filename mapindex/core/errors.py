from __future__ import annotations


class MapIndexError(Exception):
    """Base error for mapindex."""


class DepotFetchError(MapIndexError):
    """Depot transfer failure; status_code is None for transport faults."""

    def __init__(self, filename: str, status_code: int | None = None, message: str | None = None) -> None:
        self.filename = filename
        self.status_code = status_code
        detail = message or f"failed to fetch {filename!r} status={status_code}"
        super().__init__(detail)


class AssetNotFoundError(DepotFetchError):
    """Asset is permanently absent from the depot origin."""


class MalformedAssetError(MapIndexError):
    """Header or locale asset could not be parsed."""

    def __init__(self, asset_hash: str, reason: str) -> None:
        self.asset_hash = asset_hash
        self.reason = reason
        super().__init__(f"malformed asset {asset_hash}: {reason}")


class HeaderDecoderError(MapIndexError):
    """Header decoder process exited abnormally."""


class LockContentionError(MapIndexError):
    """Store lock contention persisted past the retry budget."""


class RevisionConflictError(MapIndexError):
    """A concurrent writer inserted a row first inside a transactional unit."""


class UnknownCategoryError(MapIndexError):
    """Header references a map category missing from the category snapshot."""


class IndexerClosedError(MapIndexError):
    """The indexer no longer accepts submissions."""
