"""Client HTTP cho các hệ thống bên ngoài: DSpace REST, OCR service, Claude Messages API."""
from ingest_core.clients.dspace import DSpaceClient, DSpaceSession, StatusResult
from ingest_core.clients.llm import ClaudeClient
from ingest_core.clients.ocr import OcrClient

__all__ = ["DSpaceClient", "DSpaceSession", "StatusResult", "ClaudeClient", "OcrClient"]
