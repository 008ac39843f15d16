"""
Module: batch_helpers.py
Description: Utility functions for batch operations.

Provides helper functions for splitting batch sends into chunks that
fit SQS request limits and merging the per-chunk responses.

Key Components:
- chunk_list(): Split lists into smaller chunks
- merge_batch_results(): Combine per-chunk responses

Dependencies: typing
"""

from typing import List, TypeVar, Any, Dict

T = TypeVar('T')

# SendMessageBatch accepts at most 10 entries per request
SQS_MAX_BATCH_ENTRIES = 10


def chunk_list(items: List[T], chunk_size: int) -> List[List[T]]:
    """
    Split a list into smaller chunks of specified size.

    Args:
        items: List to split into chunks
        chunk_size: Maximum size of each chunk

    Returns:
        List of chunks, where each chunk is a list of items

    Raises:
        ValueError: If chunk_size is not positive

    Example:
        >>> chunk_list([1, 2, 3, 4, 5], 2)
        [[1, 2], [3, 4], [5]]
    """
    if not isinstance(items, list):
        raise ValueError("items must be a list")
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")

    return [items[i:i + chunk_size] for i in range(0, len(items), chunk_size)]


def merge_batch_results(chunk_results: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Merge results from multiple batch operations into a single result.

    Lists are concatenated, numbers are summed and any other value keeps
    the last one seen.

    Args:
        chunk_results: List of result dictionaries from batch operations

    Returns:
        Merged result dictionary

    Example:
        >>> merge_batch_results([
        ...     {"Successful": [{"Id": "a"}], "Failed": []},
        ...     {"Successful": [{"Id": "b"}], "Failed": [{"Id": "c"}]}
        ... ])
        {'Successful': [{'Id': 'a'}, {'Id': 'b'}], 'Failed': [{'Id': 'c'}]}
    """
    if not chunk_results:
        return {}

    merged: Dict[str, Any] = {}
    for result in chunk_results:
        for key, value in result.items():
            if isinstance(value, list):
                merged.setdefault(key, []).extend(value)
            elif isinstance(value, (int, float)) and not isinstance(value, bool):
                merged[key] = merged.get(key, 0) + value
            else:
                merged[key] = value

    return merged
