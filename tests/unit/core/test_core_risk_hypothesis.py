"""
hypothesis를 활용한 risk 모듈 테스트

이 모듈은 낙석 확률 계산, 위험 등급 분류, 대피 경로,
작업자 맞춤 안내, 감독자 위험 순위를 테스트합니다.
"""

import pytest
from hypothesis import given, strategies as st
from pydantic import ValidationError

from pitguard.common.geo import centroid
from pitguard.core import risk
from pitguard.core.models import (
    EvacuationRoute, LatLng, PredictionFlags, PredictionOutput, RiskThresholds,
    SafeExit, WorkerTag, Zone,
)
from conftest import T0, make_reading

SQUARE = [
    LatLng(lat=-24.7, lng=135.0),
    LatLng(lat=-24.7, lng=135.1),
    LatLng(lat=-24.6, lng=135.1),
    LatLng(lat=-24.6, lng=135.0),
]

probabilities = st.floats(min_value=0.0, max_value=1.0, allow_nan=False)


@st.composite
def threshold_pairs(draw):
    medium = draw(st.floats(min_value=0.01, max_value=0.97, allow_nan=False))
    high = draw(st.floats(min_value=medium + 0.01, max_value=0.99, allow_nan=False))
    return RiskThresholds(high=high, medium=medium)


def zone(zid: str, square, probability: float = 0.0, level: str = "low") -> Zone:
    return Zone(id=zid, name=zid.upper(), polygon=square, probability=probability, risk=level,
                recommended_actions=risk.actions_for_risk(level))


class TestClassify:
    """위험 등급 분류 테스트"""

    @given(t=threshold_pairs(), p1=probabilities, p2=probabilities)
    def test_monotonic(self, t, p1, p2):
        """확률이 커지면 등급이 낮아지지 않음"""
        lo, hi = sorted((p1, p2))
        assert risk.RISK_ORDER[risk.classify(lo, t)] <= risk.RISK_ORDER[risk.classify(hi, t)]

    def test_boundaries_are_exclusive(self):
        """임계값과 같은 확률은 아래 등급"""
        t = RiskThresholds()
        assert risk.classify(0.4, t) == "low"
        assert risk.classify(0.41, t) == "medium"
        assert risk.classify(0.7, t) == "medium"
        assert risk.classify(0.71, t) == "high"

    @pytest.mark.parametrize("high,medium", [(0.5, 0.5), (0.4, 0.7), (1.0, 0.5), (0.7, 0.0)])
    def test_invalid_threshold_order(self, high, medium):
        """0 < medium < high < 1 위반"""
        with pytest.raises(ValidationError):
            RiskThresholds(high=high, medium=medium)

    def test_actions_are_copies(self):
        """권고 조치 목록 수정이 상수에 영향 없음"""
        actions = risk.actions_for_risk("high")
        actions.append("x")
        assert "x" not in risk.ACTIONS_BY_RISK["high"]


class TestProbability:
    """낙석 확률 계산 테스트"""

    def test_defaults_without_inputs(self):
        """입력이 없으면 기준값 사용 (중간 등급)"""
        p = risk.rockfall_probability(risk.DEFAULT_SLOPE_DEG, risk.DEFAULT_CRACK_INDEX, None)
        assert p == pytest.approx(0.5367, abs=1e-3)
        assert risk.classify(p, RiskThresholds()) == "medium"

    @given(
        slope=st.floats(min_value=0, max_value=90, allow_nan=False),
        crack=st.floats(min_value=0, max_value=1, allow_nan=False),
        disp=st.floats(min_value=0, max_value=1000, allow_nan=False),
        rain=st.floats(min_value=0, max_value=1000, allow_nan=False),
    )
    def test_probability_in_unit_interval(self, slope, crack, disp, rain):
        """확률은 항상 0..1"""
        reading = make_reading("z", displacement=disp, rainfall=rain)
        p = risk.rockfall_probability(slope, crack, reading)
        assert 0.0 <= p <= 1.0

    def test_features_saturate(self):
        """센서 채널 특징값은 1 로 상한"""
        f = risk.features(45.0, 0.5, make_reading("z", displacement=500, rainfall=500,
                                                  pore_pressure=500, vibration=500))
        assert f["displacement"] == 1.0
        assert f["rainfall"] == 1.0
        assert f["pore_pressure"] == 1.0
        assert f["vibration"] == 1.0
        assert f["slope"] == pytest.approx(1.0)

    @given(c1=st.floats(min_value=0, max_value=1), c2=st.floats(min_value=0, max_value=1))
    def test_crack_index_increases_probability(self, c1, c2):
        """균열 지수 증가 → 확률 비감소"""
        lo, hi = sorted((c1, c2))
        assert risk.rockfall_probability(25, lo, None) <= risk.rockfall_probability(25, hi, None)


class TestPredict:
    """예측 테스트"""

    def test_predict_does_not_mutate_input(self, square):
        """입력 구역은 변경되지 않음"""
        zones = [zone("a", square)]
        out = risk.predict(zones, slopes={}, cracks={"a": 1.0}, sensors={}, exits=[],
                           thresholds=RiskThresholds(), now_ms=T0)
        assert zones[0].probability == 0.0
        assert out.zones[0].risk == "high"
        assert out.timestamp == T0

    def test_barricade_and_routes_follow_high_zones(self, square):
        """high 구역이 있으면 차단 플래그와 경로 생성"""
        exits = [
            SafeExit(id="far", name="Far", location=LatLng(lat=-25.5, lng=136.0)),
            SafeExit(id="near", name="Near", location=LatLng(lat=-24.64, lng=135.06)),
        ]
        out = risk.predict([zone("a", square), zone("b", square)],
                           slopes={}, cracks={"a": 1.0, "b": 0.0}, sensors={}, exits=exits,
                           thresholds=RiskThresholds(), now_ms=T0)
        assert out.barricade_flag
        assert [r.zone_id for r in out.evacuation_routes] == ["a"]
        route = out.evacuation_routes[0]
        assert route.exit_id == "near"
        assert route.path[0] == centroid(square)
        assert route.eta_minutes == pytest.approx(route.distance_meters / 1.2 / 60)

    def test_no_exits_no_routes(self, square):
        """대피 지점이 없으면 경로 없음"""
        out = risk.predict([zone("a", square)], slopes={}, cracks={"a": 1.0}, sensors={}, exits=[],
                           thresholds=RiskThresholds(), now_ms=T0)
        assert out.barricade_flag
        assert out.evacuation_routes == []

    def test_equal_distance_keeps_first_exit(self, square):
        """동일 거리면 먼저 나온 대피 지점"""
        c = centroid(square)
        exits = [
            SafeExit(id="first", name="First", location=LatLng(lat=c.lat, lng=c.lng + 0.01)),
            SafeExit(id="second", name="Second", location=LatLng(lat=c.lat, lng=c.lng + 0.01)),
        ]
        routes = risk.compute_evacuation_routes([zone("a", square, 0.9, "high")], exits)
        assert routes[0].exit_id == "first"


class TestPersonalizedAlert:
    """작업자 맞춤 안내 테스트"""

    def _prediction(self, square, with_route=True):
        high = zone("a", square, 0.9, "high")
        routes = []
        if with_route:
            routes.append(EvacuationRoute(
                zone_id="a", zone_name="A", exit_id="e1", exit_name="Muster Point A",
                path=[centroid(square), LatLng(lat=-24.5, lng=135.0)],
                distance_meters=100.0, eta_minutes=1.4,
            ))
        return PredictionOutput(timestamp=T0, zones=[high, zone("b", square)],
                                flags=PredictionFlags(barricade=True), evacuation_routes=routes)

    def test_worker_in_high_zone(self, square):
        """high 구역 작업자: 긴급 대피 안내"""
        w = WorkerTag(id="w1", location=centroid(square), zone_id="a")
        alert = risk.personalized_alert(w, self._prediction(square))
        assert alert.urgency == "High"
        assert alert.message == "Evacuate immediately via safest route to Muster Point A."
        assert len(alert.evacuation_route) == 2
        assert alert.language == "en"

    def test_worker_in_high_zone_without_route(self, square):
        """경로가 없으면 일반 문구"""
        w = WorkerTag(id="w1", location=centroid(square), zone_id="a")
        alert = risk.personalized_alert(w, self._prediction(square, with_route=False))
        assert alert.urgency == "High"
        assert "nearest exit" in alert.message
        assert alert.evacuation_route == []

    def test_worker_elsewhere(self, square):
        """그 외 작업자: 안전 안내"""
        for zid in ("b", None):
            w = WorkerTag(id="w2", location=LatLng(lat=0, lng=0), zone_id=zid)
            alert = risk.personalized_alert(w, self._prediction(square))
            assert alert.urgency == "Low"
            assert alert.message == "Safe – No Action Required."


class TestRiskAssessment:
    """감독자 위험 순위 테스트"""

    def _out(self, square, *zones):
        return PredictionOutput(timestamp=T0, zones=list(zones), flags=PredictionFlags(barricade=False))

    def test_scores_and_actions(self, square):
        """점수 = 등급 기본값 + floor(확률×50) + min(인원, 10)"""
        out = self._out(
            square,
            zone("low", square, 0.1, "low"),
            zone("high", square, 0.95, "high"),
            zone("med", square, 0.5, "medium"),
        )
        items = risk.assess_risk(out, {"high": 3, "low": 12})
        assert [i.zone_id for i in items] == ["high", "med", "low"]
        by_id = {i.zone_id: i for i in items}
        assert by_id["high"].risk_score == 40 + 47 + 3
        assert by_id["high"].recommended_action == "Evacuate immediately"
        assert by_id["med"].risk_score == 45
        assert by_id["med"].recommended_action == "Monitor"
        assert by_id["low"].risk_score == 10 + 5 + 10
        assert by_id["low"].workers_at_risk == 12
        assert by_id["low"].recommended_action == "Safe"

    def test_probability_term_is_floored(self, square):
        """확률 항은 내림"""
        items = risk.assess_risk(self._out(square, zone("a", square, 0.999, "high")), {})
        assert items[0].risk_score == 40 + 49

    def test_score_capped_at_100(self, square):
        """최대 100"""
        items = risk.assess_risk(self._out(square, zone("a", square, 1.0, "high")), {"a": 50})
        assert items[0].risk_score == 100

    @given(p=probabilities, workers=st.integers(min_value=0, max_value=100),
           level=st.sampled_from(["low", "medium", "high"]))
    def test_score_range(self, p, workers, level):
        """점수는 10..100"""
        items = risk.assess_risk(self._out(SQUARE, zone("a", SQUARE, p, level)), {"a": workers})
        assert 10 <= items[0].risk_score <= 100


class TestSummary:
    """예측 요약 테스트"""

    def test_risk_detected_summary(self, square):
        """가장 위험한 구역 기준 요약"""
        out = PredictionOutput(
            timestamp=T0,
            zones=[zone("a", square, 0.93, "high"), zone("b", square, 0.5, "medium"), zone("c", square, 0.1)],
            flags=PredictionFlags(barricade=True),
        )
        s = risk.summarize(out, {"a": make_reading("a", displacement=7.5)})
        assert s["status"] == "Risk Detected"
        assert s["probability"] == 0.93
        assert s["estimated_time_window"] == "5-15 minutes"
        assert [u["zone_id"] for u in s["unstable_zones"]] == ["a", "b"]
        assert s["sensor_summary"]["a"]["doppler_radar"] == {"value": 7.5, "status": "ok"}
        assert s["sensor_summary"]["b"]["vibration"]["status"] == "missing"
        assert s["timestamp"] == "2025-06-01T00:00:00.000Z"

    def test_safe_summary(self, square):
        """high 구역이 없으면 Safe"""
        out = PredictionOutput(timestamp=T0, zones=[zone("a", square, 0.5, "medium")],
                               flags=PredictionFlags(barricade=False))
        s = risk.summarize(out, {})
        assert s["status"] == "Safe"
        assert s["estimated_time_window"] is None

    @pytest.mark.parametrize("p,window", [(0.95, "5-15 minutes"), (0.8, "15-30 minutes"), (0.6, "30-60 minutes")])
    def test_time_window(self, p, window):
        """확률별 예상 시간대"""
        assert risk.estimated_time_window(p) == window
