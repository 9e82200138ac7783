"""Cache store for OAI-PMH records.

This module provides the durable state shared by the synchronizer and the
protocol engine:
- Record, Set and Membership relations
- Resumption tokens with an atomic id counter
- Listing queries with set and datestamp filters

Architecture: All business logic in library, daemon provides thin HTTP wrappers.
"""

# Store
from .store import CacheStore

# Errors
from .errors import CacheStoreError
from .errors import CacheStoreUnavailable

# Models - Relations
from .models import CachedRecord
from .models import CachedSet
from .models import Membership

# Models - Queries and tokens
from .models import CacheCounts
from .models import ListedRecord
from .models import NewResumptionToken
from .models import RecordFilter
from .models import ResumptionToken

__all__ = [
    # Store
    "CacheStore",
    # Errors
    "CacheStoreError",
    "CacheStoreUnavailable",
    # Relations
    "CachedRecord",
    "CachedSet",
    "Membership",
    # Queries and tokens
    "RecordFilter",
    "ListedRecord",
    "ResumptionToken",
    "NewResumptionToken",
    "CacheCounts",
]
