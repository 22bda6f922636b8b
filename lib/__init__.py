# =============================================================================
# lib/ - Standalone Utility Modules
# =============================================================================
# This package contains reusable building blocks of the sync layer:
# - local_store.py: Durable JSON document store with default seeds
# - error_classifier.py: Maps backend error responses to recovery categories
# - supabase_client.py: Async PostgREST + Storage gateway
# - merge.py: Remote/local collection merge
# - utils.py: Client-side identifiers and clocks
#
# These modules are self-contained and can be tested in isolation.
# =============================================================================

from lib.error_classifier import RemoteErrorInfo, RemoteErrorKind, classify_remote_error
from lib.local_store import LocalStore
from lib.merge import merge_collections, merge_mappings
from lib.supabase_client import SupabaseRestClient
from lib.utils import generate_id, random_suffix, utc_now

__all__ = [
    # Local persistence
    "LocalStore",
    # Remote
    "SupabaseRestClient",
    "RemoteErrorInfo",
    "RemoteErrorKind",
    "classify_remote_error",
    # Merge
    "merge_collections",
    "merge_mappings",
    # Utils
    "generate_id",
    "random_suffix",
    "utc_now",
]
