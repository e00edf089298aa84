"""
구역 점유 테스트
"""

from pitguard.core.models import LatLng, WorkerTag, Zone
from pitguard.core.occupancy import occupancy, occupant_counts, resolve_zone


def tag(wid, zone_id=None, name=None):
    return WorkerTag(id=wid, name=name, location=LatLng(lat=0, lng=0), zone_id=zone_id)


class TestResolveZone:
    """위치 → 구역 해석 테스트"""

    def test_inside_and_outside(self, square):
        zones = [Zone(id="a", name="A", polygon=square)]
        assert resolve_zone(LatLng(lat=-24.65, lng=135.05), zones) == "a"
        assert resolve_zone(LatLng(lat=-23.0, lng=135.05), zones) is None

    def test_first_match_wins(self, square):
        """겹치는 구역은 먼저 나온 구역"""
        zones = [Zone(id="a", name="A", polygon=square), Zone(id="b", name="B", polygon=square)]
        assert resolve_zone(LatLng(lat=-24.65, lng=135.05), zones) == "a"


class TestOccupancy:
    """구역별 인원 집계 테스트"""

    def test_counts_include_empty_zones(self, square):
        zones = [Zone(id="a", name="A", polygon=square), Zone(id="b", name="B", polygon=square)]
        result = occupancy(zones, [tag("w1", "a", "Kim"), tag("w2", "a"), tag("w3", None)])
        by_id = {o.zone_id: o for o in result}
        assert by_id["a"].count == 2
        assert [w.id for w in by_id["a"].workers] == ["w1", "w2"]
        assert by_id["a"].workers[0].name == "Kim"
        assert by_id["b"].count == 0
        assert by_id["b"].zone_name == "B"

    def test_unknown_zone_ignored(self, square):
        zones = [Zone(id="a", name="A", polygon=square)]
        assert occupancy(zones, [tag("w1", "gone")])[0].count == 0

    def test_occupant_counts(self):
        counts = occupant_counts([tag("w1", "a"), tag("w2", "a"), tag("w3", "b"), tag("w4")])
        assert counts == {"a": 2, "b": 1}
