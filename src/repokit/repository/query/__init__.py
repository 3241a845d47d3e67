"""Query options: specifications, fetch strategies, sorting and paging."""

from repokit.repository.query.fetch import FetchStrategy
from repokit.repository.query.options import Criteria, QueryOptions, SortOrder
from repokit.repository.query.result import (
    CachePagedQueryResult,
    CacheQueryResult,
    PagedQueryResult,
    QueryResult,
)
from repokit.repository.query.specification import (
    ComparisonOperator,
    FieldSpecification,
    Specification,
    by_primary_key,
    where,
)

__all__ = [
    "CachePagedQueryResult",
    "CacheQueryResult",
    "ComparisonOperator",
    "Criteria",
    "FetchStrategy",
    "FieldSpecification",
    "PagedQueryResult",
    "QueryOptions",
    "QueryResult",
    "SortOrder",
    "Specification",
    "by_primary_key",
    "where",
]
