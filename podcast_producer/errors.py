"""Exception taxonomy for the synthesis pipeline."""


class PodcastError(Exception):
    """Base class for pipeline errors."""


class ScriptValidationError(PodcastError):
    """Rejected input: unparseable script, missing voices, unknown provider."""


class ProviderError(PodcastError):
    """A TTS provider call failed.

    ``retryable`` is set for rate limiting, transient server errors and
    transport-level failures; everything else is fatal for the line.
    """

    def __init__(self, message: str, provider: str, status_code: int | None = None,
                 retryable: bool = False):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        self.retryable = retryable


class JobNotFoundError(PodcastError):
    """No claimable job with the requested id."""


class JobTimeoutError(PodcastError):
    """The processing invocation ran past its wall-clock budget."""


class AssemblyError(PodcastError):
    """Segments or intro/outro clips could not be decoded or mixed."""


class ClaimLostError(PodcastError):
    """The job was reclaimed by a later attempt; this invocation may not write it."""
