from inflation_scanner.advertisers import AdvertiserAggregator


def _clock():
    ticks = iter(f"t{i}" for i in range(1, 100))
    return lambda: next(ticks)


def test_repeated_slot_accumulates_impressions():
    agg = AdvertiserAggregator(clock=_clock())
    url = "https://securepubads.g.doubleclick.net/gampad/ads?iu=/1234/home_top"
    agg.record(url)
    entry = agg.record(url)
    assert len(agg) == 1
    assert entry.impressions == 2
    assert entry.first_seen == "t1"
    assert entry.last_seen == "t2"
    assert entry.to_dict() == {
        "advertiser": "securepubads.g.doubleclick.net",
        "adId": "/1234/home_top",
        "impressions": 2,
        "firstSeen": "t1",
        "lastSeen": "t2",
    }


def test_ranked_by_impressions_descending():
    agg = AdvertiserAggregator(clock=_clock())
    agg.record("https://ads.pubmatic.com/AdServer/js/pwt.js")
    for _ in range(3):
        agg.record("https://fastlane.rubiconproject.com/a/api/fastlane.json?placement_id=77")
    ranked = agg.to_list()
    assert [r["advertiser"] for r in ranked] == ["fastlane.rubiconproject.com", "ads.pubmatic.com"]
    assert ranked[0]["adId"] == "77"


def test_malformed_urls_are_ignored():
    agg = AdvertiserAggregator(clock=_clock())
    assert agg.record("notaurl") is None
    assert len(agg) == 0
