"""Allow ``python -m barcode_relay`` to launch the relay."""

from __future__ import annotations

import sys

from barcode_relay.app.master import run


def main() -> None:
    raise SystemExit(run(sys.argv[1:]))


if __name__ == "__main__":
    main()
