from django.urls import path
from .views import CompressionStatusView, RetriggerView, StorageEventView

urlpatterns = [
    path("storage-events/", StorageEventView.as_view(), name="storage_event"),
    path("compressions/", CompressionStatusView.as_view(), name="compression_status"),
    path("compressions/retrigger/", RetriggerView.as_view(), name="compression_retrigger"),
]
