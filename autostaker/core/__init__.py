from autostaker.core.exceptions import (
    ConfigError,
    ConfirmationTimeout,
    LedgerError,
    LedgerReverted,
    ProviderMisconfigured,
    RunInProgress,
    UpstreamBadResponse,
    UpstreamError,
    UpstreamRateLimited,
)
from autostaker.core.fixtures import load_fixture, load_json_fixture
from autostaker.core.request_spec import GraphQLSpec, RequestSpec
from autostaker.core.units import WEI_PER_DATA, data_to_wei, format_data, parse_wei, wei_to_data

__all__ = [
    "ConfigError",
    "ConfirmationTimeout",
    "GraphQLSpec",
    "LedgerError",
    "LedgerReverted",
    "ProviderMisconfigured",
    "RequestSpec",
    "RunInProgress",
    "UpstreamBadResponse",
    "UpstreamError",
    "UpstreamRateLimited",
    "WEI_PER_DATA",
    "data_to_wei",
    "format_data",
    "load_fixture",
    "load_json_fixture",
    "parse_wei",
    "wei_to_data",
]
