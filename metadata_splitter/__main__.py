"""Allow running as ``python -m metadata_splitter``."""

from .cli import main

if __name__ == "__main__":
    main()
