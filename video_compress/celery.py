import os
from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "video_compress.settings")

celery_app = Celery("video_compress")
celery_app.config_from_object("django.conf:settings", namespace="CELERY")
celery_app.autodiscover_tasks()
