from __future__ import annotations

from typing import Any, Dict, List, Optional

from heptabet_platform.access.tiers import Tier, can_view, mask, parse_tier
from heptabet_platform.util.time import utcnow_iso


MATCH_STATUSES = ("Scheduled", "Live", "Finished")
RESULTS = ("Pending", "Won", "Lost", "Void")
SETTLED_RESULTS = frozenset({"Won", "Lost", "Void"})

# API field -> column
_EDITABLE = {
    "league": "league",
    "homeTeam": "home_team",
    "awayTeam": "away_team",
    "date": "match_date",
    "time": "match_time",
    "tip": "tip",
    "odds": "odds",
    "confidence": "confidence",
    "minTier": "min_tier",
    "status": "status",
    "result": "result",
    "tipsterId": "tipster_id",
    "analysis": "analysis",
    "score": "score",
}


def is_settled(row: Dict[str, Any]) -> bool:
    return str(row.get("result") or "") in SETTLED_RESULTS


def public_prediction(row: Any | Dict[str, Any]) -> Dict[str, Any]:
    d = dict(row)
    return {
        "id": d.get("prediction_id"),
        "league": d.get("league"),
        "homeTeam": d.get("home_team"),
        "awayTeam": d.get("away_team"),
        "date": d.get("match_date"),
        "time": d.get("match_time"),
        "tip": d.get("tip"),
        "odds": d.get("odds"),
        "confidence": d.get("confidence"),
        "minTier": d.get("min_tier"),
        "status": d.get("status"),
        "result": d.get("result"),
        "tipsterId": d.get("tipster_id"),
        "analysis": d.get("analysis"),
        "score": d.get("score"),
    }


def view_prediction(row: Dict[str, Any], viewer: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Public shape with the tip (and analysis) masked unless `viewer` may see it."""
    has_access = can_view(viewer, min_tier=row.get("min_tier"), settled=is_settled(row))
    return mask(public_prediction(row), has_access, field="tip", also_hide=("analysis",))


def _validate(fields: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(fields)
    if "min_tier" in out:
        t = parse_tier(out["min_tier"])
        if t is None:
            raise ValueError("invalid_tier")
        out["min_tier"] = t.value
    if "status" in out and out["status"] not in MATCH_STATUSES:
        raise ValueError("invalid_status")
    if "result" in out and out["result"] not in RESULTS:
        raise ValueError("invalid_result")
    if out.get("confidence") is not None:
        c = int(out["confidence"])
        if c < 1 or c > 10:
            raise ValueError("invalid_confidence")
        out["confidence"] = c
    if out.get("odds") is not None and float(out["odds"]) <= 1.0:
        raise ValueError("invalid_odds")
    for required in ("league", "home_team", "away_team", "match_date", "tip"):
        if required in out and not str(out[required] or "").strip():
            raise ValueError(f"{required}_blank")
    return out


def list_predictions(conn: Any, *, match_date: Optional[str] = None, limit: int = 200) -> List[Dict[str, Any]]:
    sql = "SELECT * FROM predictions"
    params: List[Any] = []
    if match_date:
        sql += " WHERE match_date=?"
        params.append(match_date)
    sql += " ORDER BY match_date DESC, match_time ASC, prediction_id ASC LIMIT ?"
    params.append(int(limit))
    return [dict(r) for r in conn.execute(sql, tuple(params)).fetchall()]


def get_prediction(conn: Any, prediction_id: int) -> Optional[Dict[str, Any]]:
    row = conn.execute("SELECT * FROM predictions WHERE prediction_id=?", (int(prediction_id),)).fetchone()
    return None if row is None else dict(row)


def create_prediction(conn: Any, payload: Dict[str, Any]) -> Dict[str, Any]:
    fields = {col: payload[api] for api, col in _EDITABLE.items() if api in payload and payload[api] is not None}
    fields.setdefault("min_tier", Tier.FREE.value)
    fields.setdefault("status", "Scheduled")
    fields.setdefault("result", "Pending")
    for required in ("league", "home_team", "away_team", "match_date", "tip"):
        fields.setdefault(required, "")
    fields = _validate(fields)

    now = utcnow_iso()
    fields["created_at"] = now
    fields["updated_at"] = now
    cols = list(fields.keys())
    row = conn.execute(
        f"INSERT INTO predictions ({', '.join(cols)}) VALUES ({','.join('?' for _ in cols)}) RETURNING prediction_id",
        tuple(fields[c] for c in cols),
    ).fetchall()[0]
    created = get_prediction(conn, int(row["prediction_id"]))
    assert created is not None
    return created


def update_prediction(conn: Any, prediction_id: int, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Partial update (typically status/result/score once the match is played)."""
    fields = {col: payload[api] for api, col in _EDITABLE.items() if api in payload}
    fields = _validate(fields)
    if fields:
        fields["updated_at"] = utcnow_iso()
        sets = ", ".join(f"{k}=?" for k in fields)
        conn.execute(
            f"UPDATE predictions SET {sets} WHERE prediction_id=?",
            tuple(fields.values()) + (int(prediction_id),),
        )
    return get_prediction(conn, prediction_id)


def delete_prediction(conn: Any, prediction_id: int) -> bool:
    cur = conn.execute("DELETE FROM predictions WHERE prediction_id=?", (int(prediction_id),))
    return cur.rowcount > 0
