from __future__ import annotations


class WLHError(Exception):
    pass


class StoreError(WLHError):
    """A resource store call failed.

    `status` is the HTTP-style status code when the store reports one.
    """

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class NotFound(StoreError):
    def __init__(self, message: str) -> None:
        super().__init__(message, status=404)


class Conflict(StoreError):
    def __init__(self, message: str) -> None:
        super().__init__(message, status=409)


class RemoteIOError(StoreError):
    pass


class BindError(WLHError):
    pass
