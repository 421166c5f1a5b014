"""Custom exceptions for PCON."""


class PconError(Exception):
    """Base exception for PCON."""

    pass


class ProjectNotFoundError(PconError):
    """Project file does not exist."""

    pass


class CorruptArchive(PconError):
    """Project file could not be decompressed."""

    pass


class MalformedDocument(PconError):
    """Decompressed project could not be parsed into an object graph."""

    pass


class SequenceNotFoundError(PconError):
    """A requested sequence id is not part of the project."""

    pass


class CycleDetected(PconError):
    """A sequence is nested inside itself, directly or transitively."""

    def __init__(self, chain: list[str]) -> None:
        self.chain = list(chain)
        super().__init__("Nested sequence cycle: " + " -> ".join(self.chain))


class EncoderUnavailable(PconError):
    """The external encoder binary cannot be found or run."""

    pass


class JobNotFoundError(PconError):
    """Unknown or already evicted consolidation job."""

    pass


class CancellationRequested(PconError):
    """Cancellation was observed; not a failure."""

    pass


class ItemError(PconError):
    """Failure while processing a single plan entry."""

    is_fatal: bool = False

    def __init__(self, file_path: str, message: str, is_fatal: bool | None = None) -> None:
        self.file_path = file_path
        self.message = message
        if is_fatal is not None:
            self.is_fatal = is_fatal
        super().__init__(f"{file_path}: {message}")


class OfflineMedia(ItemError):
    """Source media is not reachable on disk."""

    pass


class UnsupportedCodecForLosslessTrim(ItemError):
    """Stream copy is not safe for this file's codecs."""

    pass


class EncoderFailure(ItemError):
    """Encoder invocation failed."""

    pass


class OutputWriteFailure(ItemError):
    """Output location cannot be written."""

    is_fatal = True


class MediaNotFoundError(PconError):
    """Media file to probe does not exist."""

    pass
