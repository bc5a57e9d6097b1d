"""Failures surfaced while fetching or indexing the static feed."""


class FeedError(Exception):
    """Base class for feed fetch/build failures."""


class DownloadError(FeedError):
    def __init__(self, status: int | None, message: str = "") -> None:
        self.status = status
        if not message:
            message = f"GTFS download failed ({status})"
        super().__init__(message)


class MissingTableError(FeedError):
    def __init__(self, table: str) -> None:
        self.table = table
        super().__init__(f"GTFS missing {table}")


class MalformedArchiveError(FeedError):
    pass
