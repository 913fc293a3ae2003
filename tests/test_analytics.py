"""Tests for the analytics facade's defaults."""

import pytest

from blueguard.analytics import GeoAnalytics
from blueguard.catalog import load_catalog
from blueguard.schemas import LocationEvent
from conftest import PickSequence


@pytest.fixture
def analytics():
    return GeoAnalytics(load_catalog(), default_k=2, default_radius_km=10.0, rng=PickSequence([0, 1]))


@pytest.fixture
def events(now):
    return [
        LocationEvent(lat=25.7617, lon=-80.1918, timestamp=now),
        LocationEvent(lat=37.7749, lon=-122.4194, timestamp=now),
    ]


def test_default_cluster_count(analytics, events):
    assert len(analytics.cluster(events)) == 2


def test_explicit_zero_clusters_is_rejected(analytics, events):
    with pytest.raises(ValueError):
        analytics.cluster(events, k=0)


def test_explicit_zero_radius_is_rejected(analytics):
    with pytest.raises(ValueError):
        analytics.assess_proximity(25.7617, -80.1918, radius_km=0)


def test_default_radius(analytics):
    # 10 km default puts the Miami zone in range; a 1 km search from 5 km away does not
    assert analytics.assess_proximity(25.7617, -80.1918).risk_score == 60
    assert analytics.assess_proximity(25.8067, -80.1918, radius_km=1).nearby_zones == []
