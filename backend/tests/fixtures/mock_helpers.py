"""Helper functions for creating mocked external services."""

from typing import Any, Dict, List, Optional
from unittest.mock import Mock

# PostgREST builder calls used by NotificationStore; each returns the builder
QUERY_BUILDER_METHODS = (
    "table", "select", "eq", "is_", "in_", "or_", "gte", "order", "limit",
    "insert", "update", "upsert", "delete",
)


def create_mock_supabase(return_data: Optional[List[Dict[str, Any]]] = None):
    """
    Create a mocked Supabase client whose query builder chains onto itself.

    Args:
        return_data: Rows returned by every execute() call

    Returns:
        Mock client; assert on e.g. `mock.eq` to inspect the built query
    """
    client = Mock()
    for method in QUERY_BUILDER_METHODS:
        getattr(client, method).return_value = client

    client.execute.return_value = Mock(data=return_data if return_data is not None else [])
    return client


def create_mock_push_response(
    tickets: Optional[List[Dict[str, Any]]] = None,
    status_code: int = 200,
    raise_error: Optional[Exception] = None,
):
    """Create a mocked requests Response from the push provider."""
    response = Mock(status_code=status_code)
    response.json.return_value = {"data": tickets if tickets is not None else []}
    response.raise_for_status.side_effect = raise_error
    return response
