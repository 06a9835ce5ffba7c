"""
Repositories implementing the remote contract over the graph store.

Each repository reaches the store only through paths built by
socialx_sync.paths.
"""

from .posts import PostsRepository, date_bucket
from .profiles import ProfilesRepository

__all__ = [
    "PostsRepository",
    "ProfilesRepository",
    "date_bucket",
]
