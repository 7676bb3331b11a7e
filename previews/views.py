import logging
import re

import requests
from django.conf import settings
from django.db import DatabaseError
from django.http import HttpResponse
from django.shortcuts import redirect
from django.utils import timezone
from django.views import View
from rest_framework import status, views
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from . import meta, tasks
from .health import HealthCheckConfig, check_page, record_page_url
from .models import HealthAlert, MediaRecord
from .serializers import CheckResultSerializer, RecordIdSerializer

logger = logging.getLogger(__name__)

CRAWLER_RE = re.compile(
    r"facebookexternalhit|twitterbot|linkedinbot|slackbot|discordbot|pinterest|telegrambot|whatsapp|googlebot|bingbot",
    re.IGNORECASE,
)

# Tags in the client shell that the rendered markup replaces.
_SHELL_DUPLICATES = [
    re.compile(r"<meta name=[\"']theme-color[\"'][^>]*>", re.IGNORECASE),
    re.compile(r"<meta property=[\"']og:[^\"']+[\"'][^>]*>", re.IGNORECASE),
    re.compile(r"<meta name=[\"']twitter:[^\"']+[\"'][^>]*>", re.IGNORECASE),
    re.compile(r"<meta name=[\"']description[\"'][^>]*>", re.IGNORECASE),
    re.compile(r"<meta name=[\"']keywords[\"'][^>]*>", re.IGNORECASE),
]
_SHELL_TITLE = re.compile(r"<title>[^<]*</title>", re.IGNORECASE)
_HEAD_OPEN = re.compile(r"<head[^>]*>", re.IGNORECASE)


def is_crawler(user_agent: str, method: str) -> bool:
    return method == "HEAD" or bool(CRAWLER_RE.search(user_agent or ""))


def inject_head(shell: str, head: str) -> str:
    for pattern in _SHELL_DUPLICATES:
        shell = pattern.sub("", shell)
    shell = _SHELL_TITLE.sub("", shell, count=1)
    return _HEAD_OPEN.sub(lambda m: f"{m.group(0)}\n  {head}\n", shell, count=1)


def fetch_shell() -> str:
    resp = requests.get(settings.SPA_INDEX_URL, timeout=10)
    resp.raise_for_status()
    return resp.text


class RecordPageView(View):
    """
    /record/<id>: crawlers get the head markup alone, browsers get the client
    shell with the markup injected. Unknown ids get the plain shell (uncached)
    so the client can show its own not-found state.
    """

    def get(self, request, record_id):
        try:
            record = MediaRecord.objects.filter(pk=record_id).first()
            if record is None:
                logger.info("Record %s not found, serving plain shell", record_id)
                resp = HttpResponse(fetch_shell())
                resp["Cache-Control"] = "no-cache, no-store, must-revalidate"
                return resp

            canonical = f"{settings.SITE_BASE_URL}{request.get_full_path()}"
            head = meta.render(record, canonical)
            if is_crawler(request.headers.get("User-Agent", ""), request.method):
                body = f"<!DOCTYPE html><html><head>{head}</head><body></body></html>"
            else:
                body = inject_head(fetch_shell(), head)

            resp = HttpResponse(body)
            resp["Cache-Control"] = settings.PAGE_CACHE_CONTROL
            return resp
        except (requests.RequestException, DatabaseError):
            logger.exception("Rendering record page %s failed", record_id)
            return redirect(f"{settings.SITE_BASE_URL}/")


class TestUrlView(views.APIView):
    """
    Manual, single-attempt check of a record's rendered page.
    GET /testUrl?id=<id>
    """
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request):
        ser = RecordIdSerializer(data=request.query_params)
        if not ser.is_valid():
            return Response({"error": "Missing id parameter"}, status=status.HTTP_400_BAD_REQUEST)
        record_id = ser.validated_data["id"]

        url = record_page_url(record_id)
        result = check_page(url, HealthCheckConfig.from_settings())
        return Response({
            "id": record_id,
            "url": url,
            "result": CheckResultSerializer(result.as_dict()).data,
            "timestamp": timezone.now().isoformat(),
        })


class TestUrlWithAlertView(views.APIView):
    """
    Same check as /testUrl, but a failure is stored as a HealthAlert (which
    in turn is dispatched by the alert trigger).
    GET /testUrlWithAlert?id=<id>
    """
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request):
        ser = RecordIdSerializer(data=request.query_params)
        if not ser.is_valid():
            return Response({"error": "Missing id parameter"}, status=status.HTTP_400_BAD_REQUEST)
        record_id = ser.validated_data["id"]

        url = record_page_url(record_id)
        result = check_page(url, HealthCheckConfig.from_settings())
        data = {
            "id": record_id,
            "url": url,
            "result": CheckResultSerializer(result.as_dict()).data,
            "alertCreated": False,
            "timestamp": timezone.now().isoformat(),
        }
        if result.success:
            data["message"] = "Test passed - no alert needed"
            return Response(data)

        try:
            alert = HealthAlert.objects.create(
                record_id=record_id,
                target_url=url,
                error=result.error or "",
                attempt_log=[{
                    "attempt": 1,
                    "timestamp": data["timestamp"],
                    "success": False,
                    "error": result.error,
                }],
                source=HealthAlert.Source.MANUAL_TEST,
            )
        except DatabaseError as exc:
            logger.exception("Could not store manual-test alert for record %s", record_id)
            data["alertError"] = str(exc)
            return Response(data)

        data.update(alertCreated=True, alertId=str(alert.pk), message="Test failed - alert created")
        return Response(data)


class BuildShareGifView(views.APIView):
    """
    Queue a share GIF build for one record; the worker sets share_gif_url and
    gif_ready on the record when done.
    POST /buildShareGif {"id": "<id>"}
    """
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request):
        ser = RecordIdSerializer(data=request.data)
        if not ser.is_valid():
            return Response({"error": "Missing id parameter"}, status=status.HTTP_400_BAD_REQUEST)
        record_id = ser.validated_data["id"]

        record = MediaRecord.objects.filter(pk=record_id).first()
        if record is None:
            return Response({"error": "Record not found"}, status=status.HTTP_404_NOT_FOUND)
        if not record.source_video_ref:
            return Response({"error": "Record has no source video"}, status=status.HTTP_400_BAD_REQUEST)

        tasks.build_share_gif.delay(record.pk)
        logger.info("Share GIF build queued for record %s", record.pk)
        return Response({"id": record.pk, "queued": True}, status=status.HTTP_202_ACCEPTED)


class TestEmailAlertView(views.APIView):
    """
    Store a synthetic alert so the dispatcher sends a real notification.
    GET /testEmailAlert
    """
    permission_classes = [AllowAny]
    authentication_classes = []

    record_id = "TEST_RECORD"

    def get(self, request):
        try:
            alert = HealthAlert.objects.create(
                record_id=self.record_id,
                target_url=record_page_url(self.record_id),
                error="Test error for email notification",
                source=HealthAlert.Source.SYNTHETIC,
            )
        except DatabaseError as exc:
            logger.exception("Could not store synthetic alert")
            return Response({"success": False, "error": str(exc)}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

        return Response({
            "success": True,
            "message": "Test email alert created",
            "alertId": str(alert.pk),
        })
