"""
Head markup for record pages: title, description, Open Graph / Twitter tags,
JSON-LD and app deep links. Crawlers get this markup on its own; browsers get
it injected into the client app shell.
"""
import json
from dataclasses import dataclass

from django.conf import settings
from django.template.loader import render_to_string
from django.utils.safestring import mark_safe

MAX_DESCRIPTION = 160

_JSON_SCRIPT_ESCAPES = {ord(">"): "\\u003E", ord("<"): "\\u003C", ord("&"): "\\u0026"}


@dataclass(frozen=True)
class MetaConfig:
    site_name: str = "Preview"
    base_url: str = ""
    default_image: str = ""
    theme_color: str = "#FFAB31"
    ios_app_id: str = ""
    android_package: str = ""
    app_url_scheme: str = ""

    @classmethod
    def from_settings(cls):
        return cls(
            site_name=settings.SITE_NAME,
            base_url=settings.SITE_BASE_URL,
            default_image=settings.DEFAULT_SHARE_IMAGE,
            theme_color=settings.THEME_COLOR,
            ios_app_id=settings.IOS_APP_ID,
            android_package=settings.ANDROID_PACKAGE,
            app_url_scheme=settings.APP_URL_SCHEME,
        )


def _clean(value) -> str:
    return " ".join(str(value or "").split())


def _ld_json(data: dict):
    return mark_safe(json.dumps(data, ensure_ascii=False).translate(_JSON_SCRIPT_ESCAPES))


def render(record, canonical_url: str, config: MetaConfig | None = None) -> str:
    config = config or MetaConfig.from_settings()
    title = _clean(record.title) or "Untitled"
    description = _clean(record.description)
    short = description if len(description) <= MAX_DESCRIPTION else description[: MAX_DESCRIPTION - 1] + "…"

    image_url = record.preview_image_url or config.default_image
    video_url = record.preview_clip_url or ""
    keywords = ", ".join(_clean(k) for k in (record.extra or {}).get("keywords", []) if _clean(k))
    deep_link = f"{config.app_url_scheme}://record/{record.pk}" if config.app_url_scheme else ""

    json_ld = {
        "@context": "https://schema.org",
        "@type": "CreativeWork",
        "@id": canonical_url,
        "name": title,
        "description": description,
        "url": canonical_url,
        "image": [image_url] if image_url else [],
    }
    if record.created_at:
        json_ld["dateCreated"] = record.created_at.isoformat()
    if video_url:
        json_ld["video"] = {
            "@type": "VideoObject",
            "name": f"{title} Preview",
            "description": description,
            "thumbnailUrl": image_url,
            "contentUrl": video_url,
            "duration": "PT2.5S",
        }

    context = {
        "title": f"{title} - {config.site_name}",
        "raw_title": title,
        "description": description,
        "short_description": short,
        "canonical_url": canonical_url,
        "image_url": image_url,
        "video_url": video_url,
        "keywords": keywords,
        "deep_link": deep_link,
        "config": config,
        "json_ld": _ld_json(json_ld),
    }
    return render_to_string("previews/record_meta.html", context).strip()
