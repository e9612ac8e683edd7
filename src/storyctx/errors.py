"""Exception types for storyctx.

Only configuration loading raises to callers. Generation and selection
failures are recovered inside the engine and reported through results.
"""


class StoryctxError(Exception):
    """Base class for storyctx errors."""


class ConfigError(StoryctxError):
    """storyctx.toml could not be read or holds invalid values."""


class GenerationError(StoryctxError):
    """A generation call failed.

    Raised by strict callers of ``GenerationResult.unwrap``; the engine itself
    only inspects ``GenerationResult.success``.
    """

    def __init__(self, message: str, model: str | None = None):
        super().__init__(message)
        self.model = model


__all__ = ["ConfigError", "GenerationError", "StoryctxError"]
