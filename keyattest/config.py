"""Configuration and application setup for the key attestation demo server."""
from __future__ import annotations

import logging
import os
from threading import Lock
from typing import Optional

from flask import Flask

from .attestation import SecurityLevel
from .keystore import KeyManager, SoftwareKeyStore

app = Flask(__name__)


def _env_flag(name: str) -> Optional[bool]:
    """Return ``True`` or ``False`` when the named env var is explicitly set."""

    raw_value = os.environ.get(name)
    if raw_value is None:
        return None

    normalised = raw_value.strip().lower()
    if normalised in {"", "0", "false", "off", "no"}:
        return False
    return True


def _env_int(name: str, default: int) -> int:
    raw_value = os.environ.get(name)
    if raw_value is None or not raw_value.strip():
        return default
    try:
        return int(raw_value.strip())
    except ValueError:
        app.logger.warning("Ignoring non-integer %s=%r", name, raw_value)
        return default


app.config.setdefault("KEYATTEST_KEY_ALIAS", os.environ.get("KEYATTEST_KEY_ALIAS", "test_key"))
app.config.setdefault(
    "KEYATTEST_PACKAGE_NAME", os.environ.get("KEYATTEST_PACKAGE_NAME", "dio.security")
)
app.config.setdefault("KEYATTEST_PACKAGE_VERSION", _env_int("KEYATTEST_PACKAGE_VERSION", 1))

_device_properties_flag = _env_flag("KEYATTEST_DEVICE_PROPERTIES")
app.config.setdefault(
    "KEYATTEST_DEVICE_PROPERTIES",
    True if _device_properties_flag is None else _device_properties_flag,
)
app.config.setdefault("KEYATTEST_STRONGBOX", bool(_env_flag("KEYATTEST_STRONGBOX")))


def _configure_logging(raw_value: Optional[str]) -> Optional[int]:
    """Apply a log level name such as ``debug``, ignoring unknown names."""

    if raw_value is None or not raw_value.strip():
        return None
    level = logging.getLevelName(raw_value.strip().upper())
    if not isinstance(level, int):
        app.logger.warning("Ignoring unknown KEYATTEST_LOG_LEVEL=%r", raw_value)
        return None
    logging.basicConfig(level=level)
    app.logger.setLevel(level)
    return level


_configure_logging(os.environ.get("KEYATTEST_LOG_LEVEL"))


_key_manager_lock = Lock()


def build_key_manager() -> KeyManager:
    """Create a key manager backed by a software keystore from ``app.config``."""

    strongbox = bool(app.config["KEYATTEST_STRONGBOX"])
    keystore = SoftwareKeyStore(
        package_name=app.config["KEYATTEST_PACKAGE_NAME"],
        package_version=int(app.config["KEYATTEST_PACKAGE_VERSION"]),
        security_level=SecurityLevel.STRONG_BOX if strongbox else SecurityLevel.SOFTWARE,
        has_strongbox=strongbox,
        device_properties_supported=bool(app.config["KEYATTEST_DEVICE_PROPERTIES"]),
    )
    return KeyManager(keystore, key_name=app.config["KEYATTEST_KEY_ALIAS"])


def get_key_manager() -> KeyManager:
    """Return the process wide key manager, creating it on first use."""

    with _key_manager_lock:
        manager = app.extensions.get("keyattest")
        if manager is None:
            manager = build_key_manager()
            app.extensions["keyattest"] = manager
        return manager


def reset_key_manager() -> None:
    with _key_manager_lock:
        app.extensions.pop("keyattest", None)
