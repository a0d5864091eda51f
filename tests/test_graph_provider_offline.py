import asyncio

from autostaker.data.graph.provider import MockGraphProvider, get_query_provider

OPERATOR = "0x1111111111111111111111111111111111111111"
WEI = 10**18


def test_offline_provider_selected_by_default(monkeypatch):
    monkeypatch.setenv("GRAPH_LIVE", "0")
    provider = get_query_provider()
    assert isinstance(provider, MockGraphProvider)


def test_offline_provider_reads_fixtures():
    provider = MockGraphProvider()

    async def _run():
        return await asyncio.gather(
            provider.get_min_stake_per_sponsorship(),
            provider.get_current_stakes(OPERATOR),
            provider.get_operator_balance(OPERATOR),
            provider.get_undelegation_queue_amount(OPERATOR),
            provider.get_stakeable_sponsorships(1, 1_700_000_000),
        )

    min_stake, stakes, balance, queue, sponsorships = asyncio.run(_run())

    assert min_stake == 5000 * WEI
    assert sum(stakes.values()) == 16000 * WEI
    assert balance.free_balance == 20000 * WEI
    assert queue == 0
    assert [item.id[-4:] for item in sponsorships] == ["cc03", "aa01", "bb02", "dd04"]
    assert {spec.operation_name for spec in provider.requests} == {
        "NetworkMinimumStake",
        "OperatorStakes",
        "OperatorValue",
        "UndelegationQueue",
        "StakeableSponsorships",
    }


def test_offline_listing_uses_stream_ids():
    provider = MockGraphProvider()
    listings = asyncio.run(provider.get_all_sponsorships(1_700_000_000))
    assert listings
    assert all(item.stream_id for item in listings)
