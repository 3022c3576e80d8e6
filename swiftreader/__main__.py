"""Package entry point for ``python -m swiftreader``.

Delegates to the CLI's main(); ``python -m swiftreader serve`` starts the
HTTP API.
"""

from swiftreader.cli import main

if __name__ == "__main__":
    main()
