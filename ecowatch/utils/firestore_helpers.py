"""
Firestore query helpers using the keyword filter API (avoids the positional
where() deprecation warning).
"""

from google.cloud.firestore_v1.base_query import FieldFilter


def where_filter(query, field_path: str, op_string: str, value):
    """
    Usage:
        query = where_filter(collection, "userId", "==", uid)
        query = where_filter(query, "status", "in", ["Submitted", "In Review"])
    """
    return query.where(filter=FieldFilter(field_path, op_string, value))
