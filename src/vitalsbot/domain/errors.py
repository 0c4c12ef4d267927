"""Error taxonomy shared by the bot's components."""


class VitalsbotError(Exception):
    """Base class for errors raised by this package."""


class ValidationError(VitalsbotError):
    """Malformed or unrecognized input. Not fatal to the user; re-prompt."""


class StateDecodeError(ValidationError):
    """OAuth ``state`` value could not be decoded back to a user identity."""


class NotFoundCondition(VitalsbotError):
    """Absent document, credential or range.

    Represents the valid business state "no session". The credential store
    raises it internally and converts it to ``None`` before returning.
    """


class ExternalServiceError(VitalsbotError):
    """A call to WhatsApp, Google OAuth or Google Sheets/Drive failed.

    Attributes:
        service: Short name of the failing collaborator (``"meta"``,
            ``"google_oauth"``, ``"google_sheets"``, ``"google_drive"``).
        status: HTTP status reported by the provider, when known.
    """

    def __init__(self, service: str, message: str, status: int | None = None) -> None:
        super().__init__(f"{service}: {message}")
        self.service = service
        self.status = status
