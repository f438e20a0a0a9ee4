import time
from datetime import datetime, timezone

def now_ms() -> int:
    return int(time.time() * 1000)

def parse_timestamp_ms(ts) -> int:
    """
    Normalize timestamps to epoch milliseconds (int).
    Accepts:
    - int/float: treated as epoch ms (or seconds if suspiciously small)
    - ISO-8601 string: parsed via datetime.fromisoformat (supports trailing 'Z')
    Fallback: current time in ms.
    """
    try:
        if ts is None:
            return now_ms()
        if isinstance(ts, (int, float)):
            v = int(ts)
            # Heuristic: if looks like seconds (< 10^12), convert to ms.
            return v * 1000 if v > 0 and v < 10**12 else v
        if isinstance(ts, str):
            s = ts.strip()
            if not s:
                return now_ms()
            if s.endswith("Z"):
                s = s[:-1] + "+00:00"
            dt = datetime.fromisoformat(s)
            if dt.tzinfo is None:
                dt = dt.replace(tzinfo=timezone.utc)
            return int(dt.timestamp() * 1000)
    except (TypeError, ValueError):
        pass
    return now_ms()

def iso_from_ms(ms: int) -> str:
    """Epoch ms -> ISO-8601 UTC with a trailing 'Z' (the backend's wire format)."""
    dt = datetime.fromtimestamp(int(ms) / 1000.0, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")
