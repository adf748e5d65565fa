"""GraphQL response summary extension.

See Also:
    :class:`~reqflow.plugins.graphql.plugin.GraphQLExtension`
"""

from reqflow.plugins.graphql.plugin import GraphQLExtension, summarize

__all__ = ["GraphQLExtension", "summarize"]
