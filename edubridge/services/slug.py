import re
import unicodedata

from sqlalchemy.orm import Session

from edubridge.models.course import Course

SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
MAX_SLUG_LENGTH = 100


def generate_slug(text: str) -> str:
    normalized = unicodedata.normalize("NFKD", text or "").encode("ascii", "ignore").decode()
    slug = re.sub(r"[^a-z0-9]+", "-", normalized.lower()).strip("-")
    return slug[:MAX_SLUG_LENGTH].strip("-") or "course"


def is_valid_slug(slug: str) -> bool:
    return bool(slug) and len(slug) <= MAX_SLUG_LENGTH and bool(SLUG_PATTERN.match(slug))


def generate_unique_course_slug(db: Session, title: str, exclude_course_id: str | None = None) -> str:
    """Slug from ``title``, suffixed -1, -2, ... until no other course uses it."""
    base = generate_slug(title)
    candidate = base
    counter = 1
    while True:
        query = db.query(Course.id).filter(Course.slug == candidate)
        if exclude_course_id:
            query = query.filter(Course.id != exclude_course_id)
        if not query.first():
            return candidate
        candidate = f"{base}-{counter}"
        counter += 1
