"""
Entry point for ``python -m replica_sync``.
"""

from replica_sync.cli import main


if __name__ == "__main__":
    main()
