from __future__ import annotations

from typing import Iterable, Optional, Union

from ..models import Otp
from .base import OtpSource


Scripted = Union[Otp, None, BaseException]


class StaticOtpSource(OtpSource):
    """
    Deterministic OTP source that replays a script of results.

    Each `fetch_latest()` call consumes the next item: an `Otp`, `None` (no email yet), or an
    exception instance to raise. Once the script runs out every call returns None.
    """

    def __init__(self, results: Iterable[Scripted] = ()) -> None:
        self._results = list(results)
        self.calls: list[int] = []

    def fetch_latest(self, after_timestamp: int) -> Optional[Otp]:
        self.calls.append(after_timestamp)
        if not self._results:
            return None
        item = self._results.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item
