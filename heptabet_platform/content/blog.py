from __future__ import annotations

from typing import Any, Dict, List, Optional

from heptabet_platform.access.tiers import Tier, can_view, mask, parse_tier
from heptabet_platform.util.time import iso_date, utcnow, utcnow_iso


def public_post(row: Any | Dict[str, Any]) -> Dict[str, Any]:
    d = dict(row)
    return {
        "id": d.get("post_id"),
        "title": d.get("title"),
        "excerpt": d.get("excerpt"),
        "content": d.get("content"),
        "author": d.get("author"),
        "date": d.get("post_date"),
        "imageUrl": d.get("image_url"),
        "tier": d.get("tier"),
    }


def view_post(row: Dict[str, Any], viewer: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    # Title and excerpt are teasers; only the body is gated.
    has_access = can_view(viewer, min_tier=row.get("tier"))
    return mask(public_post(row), has_access, field="content")


def list_posts(conn: Any, *, limit: int = 100) -> List[Dict[str, Any]]:
    rows = conn.execute(
        "SELECT * FROM blog_posts ORDER BY post_date DESC, post_id DESC LIMIT ?",
        (int(limit),),
    ).fetchall()
    return [dict(r) for r in rows]


def get_post(conn: Any, post_id: int) -> Optional[Dict[str, Any]]:
    row = conn.execute("SELECT * FROM blog_posts WHERE post_id=?", (int(post_id),)).fetchone()
    return None if row is None else dict(row)


def create_post(
    conn: Any,
    *,
    title: str,
    content: str,
    excerpt: Optional[str] = None,
    author: Optional[str] = None,
    post_date: Optional[str] = None,
    image_url: Optional[str] = None,
    tier: Any = Tier.FREE.value,
) -> Dict[str, Any]:
    title = (title or "").strip()
    if not title:
        raise ValueError("title_blank")
    if not (content or "").strip():
        raise ValueError("content_blank")
    t = parse_tier(tier)
    if t is None:
        raise ValueError("invalid_tier")

    now = utcnow_iso()
    row = conn.execute(
        """
        INSERT INTO blog_posts (title, excerpt, content, author, post_date, image_url, tier, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        RETURNING post_id
        """,
        (
            title,
            excerpt,
            content,
            author,
            (post_date or "").strip() or iso_date(utcnow()),
            image_url,
            t.value,
            now,
        ),
    ).fetchall()[0]
    created = get_post(conn, int(row["post_id"]))
    assert created is not None
    return created


def delete_post(conn: Any, post_id: int) -> bool:
    cur = conn.execute("DELETE FROM blog_posts WHERE post_id=?", (int(post_id),))
    return cur.rowcount > 0
