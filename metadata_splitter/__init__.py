"""
Metadata Splitter - harvest file metadata and split it into balanced work units.

Features:
- Local filesystem and S3 backends
- Normalized metadata records with per-backend credential fields
- Base paths relative to each source root, for mirrored destinations
- Greedy largest-first balancing into a bounded number of splits
- SQLite plan store so workers can read their split by index
"""

__version__ = "1.0.0"
