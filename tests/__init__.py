# =============================================================================
# tests/ - Test Suite
# =============================================================================
# This package contains all tests for the Sparkery Sync API:
# - test_models.py: Unit tests for Pydantic model validation
# - test_local_store.py, test_merge.py, test_error_classifier.py: lib/ units
# - test_supabase_client.py: REST gateway request shape and typed errors
# - test_*_service.py: dual-write services against an in-memory backend
# - test_api.py: Integration tests for API endpoints
#
# Run tests with: pytest
# =============================================================================
