"""Per-client device identifier used as a secondary duplicate key."""
import logging
import uuid
from typing import Dict, Optional

from flask import session as flask_session

logger = logging.getLogger(__name__)

DEVICE_ID_KEY = 'geoattend-device-id'


class KeyValueStoreError(Exception):
    """The client-local store could not be read or written."""
    pass


class DictKeyValueStore:
    """In-memory store, one per client installation."""

    def __init__(self, data: Dict[str, str] = None):
        self.data = data if data is not None else {}

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value


class SessionKeyValueStore:
    """
    Store backed by the signed Flask session cookie.

    The cookie lives in the client, so each browser keeps its own identifier.
    Requires an active request context.
    """

    def get(self, key: str) -> Optional[str]:
        try:
            return flask_session.get(key)
        except RuntimeError as e:
            raise KeyValueStoreError(str(e)) from e

    def set(self, key: str, value: str) -> None:
        try:
            flask_session[key] = value
            flask_session.permanent = True
        except RuntimeError as e:
            raise KeyValueStoreError(str(e)) from e


class DeviceIdentityService:
    """Resolve the stable identifier of the calling client."""

    def __init__(self, store, key: str = DEVICE_ID_KEY):
        self.store = store
        self.key = key

    @staticmethod
    def generate() -> str:
        return f"device_{uuid.uuid4()}"

    def get_or_create(self) -> Optional[str]:
        """
        Return the stored identifier, creating it on first use.

        Store failures yield None: the device guard is best-effort and the
        check-in proceeds on the student guard alone.
        """
        try:
            device_id = self.store.get(self.key)
            if device_id:
                return device_id

            device_id = self.generate()
            self.store.set(self.key, device_id)
            logger.info("Generated new device id %s", device_id)
            return device_id
        except KeyValueStoreError as e:
            logger.warning("Device identity store unavailable, continuing without one: %s", e)
            return None
