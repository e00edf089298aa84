"""
Rockfall risk engine for PitGuard.

This module turns slope, crack index and the latest sensor channels of
each zone into a rockfall probability through a fixed logistic formula,
classifies it against the configured thresholds and derives evacuation
routes, personalised worker alerts and the supervisor risk ranking.
All functions are pure: they read the inputs they are given and never
raise on valid inputs (missing data falls back to baseline values).
"""

import math
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from pitguard.common.clock import iso_from_ms
from pitguard.common.geo import centroid, distance_meters
from pitguard.core.models import (
    EvacuationAlert, EvacuationRoute, PredictionFlags, PredictionOutput,
    RiskAssessmentItem, RiskLevel, RiskThresholds, SafeExit, SensorReading,
    WorkerTag, Zone,
)

# 위험 등급 순서 정의 (낮음 -> 높음)
RISK_ORDER = {
    "low": 0,
    "medium": 1,
    "high": 2
}

ACTIONS_BY_RISK: Dict[str, List[str]] = {
    "high": [
        "Evacuate personnel from affected zone",
        "Establish exclusion barriers",
        "Deploy spotters and drones",
        "Schedule immediate geotech inspection",
    ],
    "medium": [
        "Increase monitoring frequency",
        "Reduce equipment speeds",
        "Inspect drainage and catch berms",
    ],
    "low": ["Routine inspection"],
}

# 입력 누락 시 기준값
DEFAULT_SLOPE_DEG = 25.0
DEFAULT_CRACK_INDEX = 0.1
DEFAULT_DISPLACEMENT_MM = 2.0
DEFAULT_RAINFALL_MM_H = 0.0
DEFAULT_PORE_PRESSURE_KPA = 10.0
DEFAULT_VIBRATION_MM_S = 0.5

# 포화 상수 (특징값 = 원시값 / 포화 상수)
SLOPE_SATURATION_DEG = 45.0
DISPLACEMENT_SATURATION_MM = 20.0
RAINFALL_SATURATION_MM_H = 30.0
PORE_PRESSURE_SATURATION_KPA = 100.0
VIBRATION_SATURATION_MM_S = 10.0

WEIGHTS = {
    "slope": 3.0,
    "crack": 2.5,
    "displacement": 2.2,
    "rainfall": 1.8,
    "pore_pressure": 1.5,
    "vibration": 1.2,
}
BIAS = -2.2

# 보호구 착용 보행 속도 (m/s)
WALKING_SPEED_MPS = 1.2

def classify(probability: float, thresholds: RiskThresholds) -> RiskLevel:
    """확률을 위험 등급으로 분류합니다."""
    if probability > thresholds.high:
        return "high"
    if probability > thresholds.medium:
        return "medium"
    return "low"

def actions_for_risk(level: RiskLevel) -> List[str]:
    """위험 등급별 고정 권고 조치 목록"""
    return list(ACTIONS_BY_RISK[level])

def features(slope: float, crack: float, reading: Optional[SensorReading]) -> Dict[str, float]:
    """
    모델 입력 특징값을 계산합니다.

    경사와 균열 지수는 그대로(자연 범위 ~1.0) 사용하고
    나머지 채널은 포화 상수로 나눈 뒤 1 로 상한을 둡니다.
    """
    if reading is not None:
        disp, rain = reading.displacement, reading.rainfall
        pore, vib = reading.pore_pressure, reading.vibration
    else:
        disp, rain = DEFAULT_DISPLACEMENT_MM, DEFAULT_RAINFALL_MM_H
        pore, vib = DEFAULT_PORE_PRESSURE_KPA, DEFAULT_VIBRATION_MM_S

    return {
        "slope": slope / SLOPE_SATURATION_DEG,
        "crack": crack,
        "displacement": min(disp / DISPLACEMENT_SATURATION_MM, 1.0),
        "rainfall": min(rain / RAINFALL_SATURATION_MM_H, 1.0),
        "pore_pressure": min(pore / PORE_PRESSURE_SATURATION_KPA, 1.0),
        "vibration": min(vib / VIBRATION_SATURATION_MM_S, 1.0),
    }

def rockfall_probability(slope: float, crack: float, reading: Optional[SensorReading]) -> float:
    """고정 가중치 선형 점수에 로지스틱 함수를 적용합니다."""
    f = features(slope, crack, reading)
    score = sum(WEIGHTS[k] * f[k] for k in WEIGHTS) + BIAS
    return 1.0 / (1.0 + math.exp(-score))

def compute_evacuation_routes(zones: Iterable[Zone], exits: Sequence[SafeExit]) -> List[EvacuationRoute]:
    """
    high 구역마다 중심점에서 가장 가까운 대피 지점까지의 경로를 만듭니다.

    동일 거리일 경우 먼저 발견된 대피 지점을 사용합니다.
    대피 지점이 없으면 경로를 만들지 않습니다.
    """
    routes: List[EvacuationRoute] = []
    for z in zones:
        if z.risk != "high":
            continue

        center = centroid(z.polygon)
        best: Optional[SafeExit] = None
        best_dist = 0.0
        for e in exits:
            d = distance_meters(center, e.location)
            if best is None or d < best_dist:
                best, best_dist = e, d

        if best is None:
            continue

        routes.append(EvacuationRoute(
            zone_id=z.id,
            zone_name=z.name,
            exit_id=best.id,
            exit_name=best.name,
            path=[center, best.location],
            distance_meters=best_dist,
            eta_minutes=best_dist / WALKING_SPEED_MPS / 60,
        ))
    return routes

def predict(
    zones: Sequence[Zone],
    *,
    slopes: Mapping[str, float],
    cracks: Mapping[str, float],
    sensors: Mapping[str, SensorReading],
    exits: Sequence[SafeExit],
    thresholds: RiskThresholds,
    now_ms: int,
) -> PredictionOutput:
    """
    모든 구역의 낙석 확률과 위험 등급을 계산합니다.

    Args:
        zones: 현재 구역 목록
        slopes: 구역별 경사 (도)
        cracks: 구역별 균열 지수 (0..1)
        sensors: 구역별 최신 센서 측정값
        exits: 대피 지점 목록
        thresholds: 분류 임계값 (호출 동안 하나의 쌍으로 고정)
        now_ms: 예측 시각 (epoch ms)

    Returns:
        예측 결과
    """
    scored: List[Zone] = []
    for z in zones:
        probability = rockfall_probability(
            slopes.get(z.id, DEFAULT_SLOPE_DEG),
            cracks.get(z.id, DEFAULT_CRACK_INDEX),
            sensors.get(z.id),
        )
        risk = classify(probability, thresholds)
        scored.append(z.model_copy(update={
            "probability": probability,
            "risk": risk,
            "recommended_actions": actions_for_risk(risk),
        }))

    return PredictionOutput(
        timestamp=now_ms,
        zones=scored,
        flags=PredictionFlags(barricade=any(z.risk == "high" for z in scored)),
        evacuation_routes=compute_evacuation_routes(scored, exits),
    )

def personalized_alert(worker: WorkerTag, prediction: PredictionOutput) -> EvacuationAlert:
    """작업자 위치(해석된 구역) 기준 맞춤 대피 안내를 생성합니다."""
    high_ids = {z.id for z in prediction.zones if z.risk == "high"}

    if worker.zone_id and worker.zone_id in high_ids:
        route = next((r for r in prediction.evacuation_routes if r.zone_id == worker.zone_id), None)
        exit_name = route.exit_name if route else "nearest exit"
        return EvacuationAlert(
            worker_id=worker.id,
            message=f"Evacuate immediately via safest route to {exit_name}.",
            evacuation_route=list(route.path) if route else [],
            urgency="High",
        )

    return EvacuationAlert(
        worker_id=worker.id,
        message="Safe – No Action Required.",
        urgency="Low",
    )

def level_score(level: RiskLevel) -> int:
    return {"high": 40, "medium": 20}.get(level, 10)

def assess_risk(prediction: PredictionOutput, occupant_counts: Mapping[str, int]) -> List[RiskAssessmentItem]:
    """
    감독자용 구역 위험 순위를 계산합니다.

    점수 = 등급 기본값 + floor(확률×50) + min(인원, 10), 최대 100.
    """
    items: List[RiskAssessmentItem] = []
    for z in prediction.zones:
        workers = occupant_counts.get(z.id, 0)
        score = min(100, level_score(z.risk) + math.floor(z.probability * 50) + min(workers, 10))
        if score >= 70:
            action = "Evacuate immediately"
        elif score >= 40:
            action = "Monitor"
        else:
            action = "Safe"
        items.append(RiskAssessmentItem(
            zone_id=z.id,
            risk_score=score,
            workers_at_risk=workers,
            recommended_action=action,
        ))

    items.sort(key=lambda i: i.risk_score, reverse=True)
    return items

def estimated_time_window(probability: float) -> str:
    if probability > 0.9:
        return "5-15 minutes"
    if probability > 0.7:
        return "15-30 minutes"
    return "30-60 minutes"

def summarize(prediction: PredictionOutput, sensors: Mapping[str, SensorReading]) -> dict:
    """가장 위험한 구역 기준 예측 요약과 구역별 센서 상태를 만듭니다."""
    highest = max(prediction.zones, key=lambda z: z.probability, default=None)
    is_high = highest is not None and highest.risk == "high"
    probability = round(highest.probability, 2) if highest else 0.0

    unstable = [
        {
            "zone_id": z.id,
            "name": z.name,
            "polygon": [p.wire() for p in z.polygon],
            "risk_level": z.risk,
            "probability": round(z.probability, 2),
            "recommendedActions": z.recommended_actions,
        }
        for z in prediction.zones if z.risk != "low"
    ]

    def channel(value: Optional[float]) -> dict:
        return {"value": value, "status": "ok" if value is not None else "missing"}

    sensor_summary = {}
    for z in prediction.zones:
        s = sensors.get(z.id)
        sensor_summary[z.id] = {
            "doppler_radar": channel(s.displacement if s else None),
            "vibration": channel(s.vibration if s else None),
            "slope_stability": channel(s.pore_pressure if s else None),
        }

    return {
        "status": "Risk Detected" if is_high else "Safe",
        "probability": probability,
        "estimated_time_window": estimated_time_window(highest.probability) if is_high else None,
        "unstable_zones": unstable,
        "sensor_summary": sensor_summary,
        "timestamp": iso_from_ms(prediction.timestamp),
    }
