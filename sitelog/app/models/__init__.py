"""Database models."""

from sitelog.app.models.client import Client
from sitelog.app.models.report import Report, ReportStatus
from sitelog.app.models.image import Image
from sitelog.app.models.worker import Worker
from sitelog.app.models.setting import Setting

__all__ = ["Client", "Report", "ReportStatus", "Image", "Worker", "Setting"]
