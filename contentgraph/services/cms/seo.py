from typing import Any, Dict, Optional
import re
import unicodedata

from contentgraph.core.config import settings
from contentgraph.core.exceptions import EntryValidationError


def generate_slug(text: Any, max_length: int = 190, fallback: Optional[str] = "entry") -> str:
    """
    Convert text to a URL-safe slug.

    Diacritics are stripped ("José" -> "jose"), only [a-z0-9_-] survive, runs of
    whitespace/hyphens become a single hyphen and the result never starts or ends
    with a hyphen. The function is idempotent.
    """
    if text is None or not str(text).strip():
        return fallback or ""

    slug = unicodedata.normalize("NFKD", str(text))
    slug = "".join(ch for ch in slug if not unicodedata.combining(ch))
    slug = slug.lower().strip()
    slug = re.sub(r'[^\w\s-]', '', slug, flags=re.ASCII)
    slug = re.sub(r'\s+', '-', slug)
    slug = re.sub(r'-+', '-', slug)
    slug = slug.strip('-')

    if len(slug) > max_length:
        slug = slug[:max_length].rstrip('-')

    if not slug:
        return fallback or ""
    return slug


def normalize_seo_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Normalize SEO attributes of an entry payload:
    - seo_title / meta_description trimmed, meta_description cut to 160 chars
    - keywords accepted as list or "a,b,c", always returned as a list when present
    """
    out = dict(data)

    if isinstance(out.get('seo_title'), str):
        out['seo_title'] = out['seo_title'].strip()

    if isinstance(out.get('meta_description'), str):
        trimmed = out['meta_description'].strip()
        out['meta_description'] = trimmed[:settings.META_DESCRIPTION_MAX_LENGTH]

    keywords = out.get('keywords')
    if isinstance(keywords, str):
        out['keywords'] = [k.strip() for k in keywords.split(',') if k.strip()]
    elif isinstance(keywords, list):
        out['keywords'] = [str(k).strip() for k in keywords if str(k).strip()]
    elif 'keywords' in out:
        out['keywords'] = []

    return out


def validate_seo_lengths(seo_title: Optional[str], meta_description: Optional[str]) -> None:
    if isinstance(seo_title, str) and len(seo_title.strip()) > settings.SEO_TITLE_MAX_LENGTH:
        raise EntryValidationError(
            f"seo_title must be at most {settings.SEO_TITLE_MAX_LENGTH} characters",
            field="seo_title",
            rule="max_length",
            code="SEO_TITLE_TOO_LONG",
        )
    if isinstance(meta_description, str) and len(meta_description.strip()) > settings.META_DESCRIPTION_MAX_LENGTH:
        raise EntryValidationError(
            f"meta_description must be at most {settings.META_DESCRIPTION_MAX_LENGTH} characters",
            field="meta_description",
            rule="max_length",
            code="SEO_DESCRIPTION_TOO_LONG",
        )


def empty_seo_fields() -> Dict[str, Any]:
    """SEO attributes stored for entries of content types with seo disabled."""
    return {'seo_title': None, 'meta_description': None, 'keywords': []}
