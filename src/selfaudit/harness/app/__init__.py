"""Model of the plugin application exercised by the runtime harness."""

from selfaudit.harness.app.automation import Automation
from selfaudit.harness.app.reports import HtmlFileRenderer, MissingPdfRenderer, PdfRendererMissing

__all__ = ["Automation", "HtmlFileRenderer", "MissingPdfRenderer", "PdfRendererMissing"]
