class FuelFinderError(Exception):
    """Base class for failures talking to the Fuel Finder API."""


class AuthenticationError(FuelFinderError):
    def __init__(self, message: str, status: int | None = None, body: str | None = None) -> None:
        self.status = status
        self.body = body
        if status is not None:
            message = f"{message}: {status} - {body}" if body else f"{message}: {status}"
        super().__init__(message)


class FetchError(FuelFinderError):
    def __init__(self, batch_number: int, status: int | None = None, body: str | None = None, message: str | None = None) -> None:
        self.batch_number = batch_number
        self.status = status
        self.body = body
        if message is None:
            message = f"API request failed on batch {batch_number}: {status}"
            if body:
                message = f"{message} - {body}"
        super().__init__(message)


class InvalidResponseError(FetchError):
    """A batch came back without a recognisable record array."""

    def __init__(self, batch_number: int) -> None:
        super().__init__(
            batch_number,
            message=f"Invalid API response format on batch {batch_number} - no records array found",
        )
