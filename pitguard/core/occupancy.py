"""
Zone occupancy for PitGuard.

Resolves which zone contains each worker tag and aggregates the
per-zone head count used by the compliance log and risk ranking.
"""

from typing import Dict, Iterable, List, Optional, Sequence

from pitguard.common.geo import point_in_polygon
from pitguard.core.models import LatLng, WorkerRef, WorkerTag, Zone, ZoneOccupancy

def resolve_zone(location: LatLng, zones: Sequence[Zone]) -> Optional[str]:
    """위치를 포함하는 첫 번째 구역 ID (없으면 None)"""
    for z in zones:
        if point_in_polygon(location, z.polygon):
            return z.id
    return None

def occupancy(zones: Sequence[Zone], workers: Iterable[WorkerTag]) -> List[ZoneOccupancy]:
    """
    구역별 작업자 수와 목록을 집계합니다.

    인원이 없는 구역도 포함하며, 어느 구역에도 속하지 않은
    작업자는 집계에서 제외됩니다.
    """
    by_zone: Dict[str, ZoneOccupancy] = {
        z.id: ZoneOccupancy(zone_id=z.id, zone_name=z.name, count=0, workers=[])
        for z in zones
    }
    for w in workers:
        entry = by_zone.get(w.zone_id) if w.zone_id else None
        if entry is None:
            continue
        entry.count += 1
        entry.workers.append(WorkerRef(id=w.id, name=w.name, type=w.type))
    return list(by_zone.values())

def occupant_counts(workers: Iterable[WorkerTag]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for w in workers:
        if w.zone_id:
            counts[w.zone_id] = counts.get(w.zone_id, 0) + 1
    return counts
