"""
Utility functions for YieldSync.

This package contains:
- datetime_utils: Timezone-aware datetime helpers
- query_normalization: Search text / stable identifier normalization
"""
