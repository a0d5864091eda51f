from autostaker.data.graph.provider import (
    GraphHttpClient,
    GraphProvider,
    GraphSettings,
    MockGraphProvider,
    get_query_provider,
)
from autostaker.core.request_spec import GraphQLSpec, RequestSpec
from autostaker.data.graph.request_factory import GraphRequestFactory

__all__ = [
    "GraphHttpClient",
    "GraphProvider",
    "GraphQLSpec",
    "GraphRequestFactory",
    "GraphSettings",
    "MockGraphProvider",
    "RequestSpec",
    "get_query_provider",
]
