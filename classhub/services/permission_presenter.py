# classhub/services/permission_presenter.py
import json
import logging
import os
from typing import Callable, Optional

from classhub.models.permission_error import PermissionErrorEvent
from classhub.models.toast import Toast
from classhub.services.error_channel import ErrorChannel

LOGGER = logging.getLogger(__name__)


def debug_mode() -> bool:
    return os.getenv("APP_ENV", "production").lower() == "development"


class PermissionErrorPresenter:
    """
    Listens for PermissionErrorEvent while mounted.

    In development the event is re-raised so it fails loudly; otherwise the
    user gets a dismissible toast and nothing is raised.
    """

    def __init__(self, notify: Optional[Callable[[Toast], None]] = None, debug: Optional[bool] = None):
        self._notify = notify
        self.debug = debug_mode() if debug is None else debug
        self._channel: Optional[ErrorChannel] = None

    def mount(self, channel: ErrorChannel):
        if self._channel is not None:
            self.unmount()
        channel.on(PermissionErrorEvent, self.handle)
        self._channel = channel

    def unmount(self):
        if self._channel is not None:
            self._channel.off(PermissionErrorEvent, self.handle)
            self._channel = None

    def handle(self, error: PermissionErrorEvent):
        LOGGER.error("Permission error: %s", json.dumps(error.context(), indent=2, default=str))

        if self.debug:
            raise error

        if self._notify is not None:
            self._notify(Toast())
