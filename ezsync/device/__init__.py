from .client import DeviceClient  # noqa: F401
from .errors import (DeviceError, DownloadIOError, InvalidResponseError, NotFoundError,  # noqa: F401
                     RangeMismatchError, RetriesExhaustedError, ServerError, UnexpectedStatusError)
from .transport import RetryPolicy, Transport, is_retriable_error, to_device_path  # noqa: F401
from .types import ClientConfig, Entry, Version  # noqa: F401
