"""Allow running the server as a module with python -m agent_observer."""

from .cli import main

if __name__ == "__main__":
    import sys

    sys.exit(main())
