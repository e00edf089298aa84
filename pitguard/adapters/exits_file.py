"""
Safe exit file loader for PitGuard.

This module loads muster points, gates and safe zones from a CSV or
XLSX file with the columns ``id,name,lat,lng,type``. Rows that fail
validation are skipped with a warning.
"""

import os
import csv
from typing import Dict, Iterable, List, Optional
import openpyxl
from pydantic import ValidationError as PydanticValidationError

from pitguard.core import errors
from pitguard.core.models import SafeExit
from pitguard.observability.logging_setup import get_logger

log = get_logger("pitguard.exits")

REQUIRED_COLUMNS = ("id", "name", "lat", "lng")

def _check_columns(headers: Iterable[Optional[str]], path: str) -> None:
    present = {str(h).strip().lower() for h in headers if h is not None}
    missing = [c for c in REQUIRED_COLUMNS if c not in present]
    if missing:
        raise errors.InvalidConfig(f"{path}: missing columns {missing} (found {sorted(present)})")

def _to_exit(row_num: int, row: Dict) -> Optional[SafeExit]:
    """행 하나를 대피 지점으로 변환합니다. 실패하면 None."""
    if not row.get("id"):
        return None
    try:
        return SafeExit(
            id=str(row["id"]).strip(),
            name=str(row.get("name") or row["id"]).strip(),
            location={"lat": float(row["lat"]), "lng": float(row["lng"])},
            type=str(row.get("type") or "muster").strip().lower(),
        )
    except (ValueError, TypeError, PydanticValidationError) as e:
        log.warning(f"행 {row_num} 대피 지점 변환 오류 건너뜀: {row} error:{e}")
        return None

def _csv_rows(path: str) -> List[Dict]:
    with open(path, newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        _check_columns(reader.fieldnames or [], path)
        return [{k.strip().lower(): v for k, v in r.items() if k} for r in reader]

def _xlsx_rows(path: str) -> List[Dict]:
    wb = openpyxl.load_workbook(path, read_only=True, data_only=True)
    try:
        ws = wb.active
        rows = ws.iter_rows(values_only=True)
        headers = next(rows, None) or ()
        _check_columns(headers, path)
        keys = [str(h).strip().lower() if h is not None else None for h in headers]
        return [{k: v for k, v in zip(keys, row) if k} for row in rows]
    finally:
        wb.close()

def load_safe_exits(path: str) -> List[SafeExit]:
    """
    대피 지점 파일을 읽습니다.

    Raises:
        InvalidConfig: 지원하지 않는 형식이거나 필수 컬럼이 없는 경우
    """
    ext = os.path.splitext(path)[1].lower()
    if ext == ".csv":
        raw = _csv_rows(path)
    elif ext == ".xlsx":
        raw = _xlsx_rows(path)
    else:
        raise errors.InvalidConfig(f"unsupported safe exit file format: {ext}")

    exits: List[SafeExit] = []
    for row_num, row in enumerate(raw, start=2):
        ex = _to_exit(row_num, row)
        if ex is not None:
            exits.append(ex)

    log.info(f"대피 지점 로드됨 path:{path} count:{len(exits)}")
    return exits
