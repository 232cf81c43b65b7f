from typing import Optional


class DeviceError(Exception):
    """
    Base class of everything that can go wrong while talking to the device.
    """


class NotFoundError(DeviceError):
    """
    The requested file or directory does not exist on the device.
    """

    def __init__(self, what: str):
        super().__init__(f"File or directory not found: {what}")
        self.what = what


class InvalidResponseError(DeviceError):
    """
    The device answered, but not in a shape we understand.
    """


class ServerError(DeviceError):
    """
    The device answered with a 5xx status code.
    """

    def __init__(self, status_code: int):
        super().__init__(f"Server error: HTTP {status_code}")
        self.status_code = status_code


class UnexpectedStatusError(DeviceError):
    def __init__(self, status_code: int):
        super().__init__(f"Unexpected status code: {status_code}")
        self.status_code = status_code


class RangeMismatchError(DeviceError):
    """
    A range request was answered with data starting somewhere else.
    """


class DownloadIOError(DeviceError):
    """
    Closing the response or the local file failed after an otherwise
    successful transfer.
    """


class RetriesExhaustedError(DeviceError):
    def __init__(self, name: str, attempts: int, last_error: Optional[BaseException]):
        super().__init__(f"{name} failed after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error
