"""
Pipeline-level errors and the messages shown with the ERROR stage.

Gateway failures (RateLimited, TransportFailure) live in salon_workers.gemini;
they never cross the batch boundary and only show up here as the message the
stylist sees when a stage fails.
"""

NO_STYLES_MESSAGE = "We couldn't generate any styles from this photo. Please try again or use a different photo."
MAIN_IMAGE_MESSAGE = "The final look could not be generated. Please try again."
RATE_LIMITED_MESSAGE = "API rate limit exceeded. Please wait a moment before trying again."
EMPTY_LIBRARY_MESSAGE = "Your style library is empty. Add a style in settings before starting a session."
MAGIC_CAPTURE_MESSAGE = "The look could not be generated from the camera frame. Please try again."
GENERIC_MESSAGE = "Something went wrong. Please try again."


class StudioError(Exception):
    """Base class for Design Studio pipeline errors."""


class InvalidTransition(StudioError):
    """An action was requested in a stage that doesn't accept it."""

    def __init__(self, stage, action: str):
        self.stage = stage
        self.action = action
        super().__init__(f"'{action}' is not allowed in stage {getattr(stage, 'value', stage)}")


class ZeroSuccessError(StudioError):
    """Every call of the initial-styles batch failed."""


class MainImageFailure(StudioError):
    """The load-bearing main image of the final stage failed."""


class EmptyStyleLibrary(StudioError):
    """No styles are configured to seed the initial batch."""
