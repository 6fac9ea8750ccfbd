"""Application entry point for the key attestation demo server."""
from __future__ import annotations

import os

from .config import _env_flag, app

# Import the route module so its decorators register endpoints with Flask.
from . import routes  # noqa: F401


def main() -> None:
    app.run(
        host=os.environ.get("KEYATTEST_HOST", "localhost"),
        port=int(os.environ.get("KEYATTEST_PORT", "5000")),
        debug=bool(_env_flag("KEYATTEST_DEBUG")),
    )


__all__ = ["app", "main"]


if __name__ == "__main__":  # pragma: no cover - convenience script entry point.
    main()
