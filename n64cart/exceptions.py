from typing import Optional


class FlashcartException(Exception):
    pass


class TransportStatusError(FlashcartException):
    pass


class TransportTimeout(FlashcartException):
    pass


class CommunicationFailed(FlashcartException):
    def __init__(self, detail: str, actual: Optional[bytes]=None, expected: Optional[bytes]=None) -> None:
        super().__init__(detail)
        self.actual = actual
        self.expected = expected


class ModelDetectionFailed(FlashcartException):
    pass


class UnsupportedOperation(FlashcartException):
    pass
