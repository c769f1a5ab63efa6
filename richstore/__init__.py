"""
RichStore
=========

Secondary indices for an append-only block/transaction store: transactions by
block, by signer and by updated address, served as paginated range queries
from either a document backend or a bulk-loaded relational backend.
"""

from richstore.units.version import get_version, VERSION


__version__ = get_version(VERSION)

__all__ = ["VERSION", "__version__"]
