from django.urls import path
from .views import BuildShareGifView, RecordPageView, TestEmailAlertView, TestUrlView, TestUrlWithAlertView

urlpatterns = [
    path("testUrl", TestUrlView.as_view(), name="test_url"),
    path("testUrlWithAlert", TestUrlWithAlertView.as_view(), name="test_url_with_alert"),
    path("testEmailAlert", TestEmailAlertView.as_view(), name="test_email_alert"),
    path("buildShareGif", BuildShareGifView.as_view(), name="build_share_gif"),
    path("record/<str:record_id>", RecordPageView.as_view(), name="record_page"),
]
