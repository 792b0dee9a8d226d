from loguru import logger
from azure.ai.documentintelligence import DocumentIntelligenceClient
from azure.core.credentials import AzureKeyCredential
from azure.core.exceptions import AzureError
from .errors import ExtractionError
from ..core.config import settings


class DocumentTextExtractor:
    """
    Extracts plain text from invoice documents with Azure Document Intelligence.

    Pages are joined with a blank line, lines within a page with a newline.
    Without AZ_DI_ENDPOINT / AZ_DI_API_KEY the bytes are decoded as UTF-8 text,
    which is enough for local runs with plain-text documents.
    """

    def __init__(self, client: DocumentIntelligenceClient | None = None, model_id: str | None = None):
        self.client = client
        self.model_id = model_id or settings.az_di_model

    @classmethod
    def from_settings(cls) -> "DocumentTextExtractor":
        if settings.az_di_endpoint and settings.az_di_api_key:
            logger.info(
                "Using Azure Document Intelligence for text extraction",
                endpoint=settings.az_di_endpoint[:50] + "..." if len(settings.az_di_endpoint) > 50 else settings.az_di_endpoint
            )
            client = DocumentIntelligenceClient(
                endpoint=settings.az_di_endpoint,
                credential=AzureKeyCredential(settings.az_di_api_key)
            )
            return cls(client=client)

        logger.warning(
            "Azure Document Intelligence not configured - decoding documents as plain text. "
            "Set AZ_DI_ENDPOINT and AZ_DI_API_KEY to use real OCR."
        )
        return cls(client=None)

    def extract_text(self, file_bytes: bytes) -> str:
        if not file_bytes:
            raise ExtractionError("Document is empty")

        if self.client is None:
            return self._decode_plain_text(file_bytes)

        logger.info(f"Starting OCR, document size {len(file_bytes)} bytes")

        try:
            poller = self.client.begin_analyze_document(
                self.model_id,
                body=file_bytes,
                content_type="application/octet-stream"
            )
            result = poller.result()
        except AzureError as e:
            logger.error(f"Azure DI extraction failed: {str(e)}")
            raise ExtractionError(f"Text extraction failed: {str(e)}") from e

        pages = getattr(result, "pages", None) or []
        if pages:
            text = "\n\n".join(
                "\n".join(line.content for line in (page.lines or []))
                for page in pages
            )
        else:
            text = getattr(result, "content", None) or ""

        logger.info("OCR finished", characters=len(text), pages=len(pages))
        return text

    @staticmethod
    def _decode_plain_text(file_bytes: bytes) -> str:
        try:
            text = file_bytes.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ExtractionError("Document is not plain text and OCR is not configured") from e

        logger.info("Decoded plain-text document", characters=len(text))
        return text
