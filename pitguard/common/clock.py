"""
Time helpers for PitGuard.

Timestamps inside the engine are epoch milliseconds; compliance records
and query filters use ISO-8601 UTC strings.
"""

import time
from datetime import datetime, timezone

def now_ms() -> int:
    return int(time.time() * 1000)

def iso_from_ms(ms: int) -> str:
    """epoch ms → ISO-8601 (UTC, 밀리초, 'Z' 접미사)"""
    dt = datetime.fromtimestamp(ms // 1000, tz=timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{ms % 1000:03d}Z"
