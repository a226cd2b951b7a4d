"""
Memoized order documents.

Each (jobId, documentType) pair renders at most once. Concurrent requests for
the same pair wait on one render and then share its URL; the order itself is
only locked to read it and to record the finished URL. A failed render records
nothing, so the next request tries again.
"""

import logging
import os
from datetime import datetime, timedelta
from typing import Callable, Optional, Union

from .exceptions import DocumentNotAvailable, RenderFailure
from .order_store import KeyedLocks, OrderStore
from .pdf_generator import render_quote, render_shop_packet
from .schemas import DocumentType, Order

logger = logging.getLogger(__name__)

# (order, document_type, expires_at) -> PDF bytes
Renderer = Callable[[Order, DocumentType, Optional[datetime]], bytes]

SUBDIRS = {
    DocumentType.SHOP_PACKET: "shop-packets",
    DocumentType.QUOTE: "quotes",
}


class DocumentGenerator:

    def __init__(self, store: OrderStore, upload_dir: str, url_prefix: str = "/uploads",
                 company: Optional[dict] = None, quote_valid_days: int = 30,
                 renderer: Optional[Renderer] = None):
        self.store = store
        self.upload_dir = upload_dir
        self.url_prefix = url_prefix.rstrip("/")
        self.company = company or {}
        self.quote_valid_days = quote_valid_days
        self.renderer = renderer or self._render
        self._locks = KeyedLocks()

    def ensure_document(self, job_id: str, document_type: Union[DocumentType, str]) -> str:
        """
        URL of the order's document, rendering it on first request.

        Raises:
            OrderNotFound: unknown jobId
            DocumentNotAvailable: order has no lines, or its jobId is not a safe file name
            RenderFailure: backend failed; nothing recorded, safe to retry
        """
        doc_type = DocumentType.parse(document_type)

        existing = self._existing(job_id, doc_type)
        if existing:
            return existing

        with self._locks.hold((job_id, doc_type.value)):
            # Someone may have finished while we waited
            existing = self._existing(job_id, doc_type)
            if existing:
                return existing

            path = self._path(job_id, doc_type)
            order = self.store.get(job_id)
            expires_at = None
            if doc_type == DocumentType.QUOTE:
                expires_at = datetime.utcnow() + timedelta(days=self.quote_valid_days)

            try:
                data = self.renderer(order, doc_type, expires_at)
                self._write(path, data)
            except Exception as e:
                logger.error("Rendering %s for %s failed: %s", doc_type.value, job_id, e)
                raise RenderFailure(f"Could not generate {doc_type.value} for {job_id}") from e

            url = f"{self.url_prefix}/{SUBDIRS[doc_type]}/{job_id}.pdf"
            with self.store.locked(job_id) as locked_order:
                locked_order.documents[doc_type.value] = url
                if expires_at is not None:
                    locked_order.quote_expires_at = expires_at

            logger.info("Generated %s for %s at %s", doc_type.value, job_id, path)
            return url

    def _existing(self, job_id: str, doc_type: DocumentType) -> Optional[str]:
        order = self.store.get(job_id)
        if not order.lines:
            raise DocumentNotAvailable(f"Order {job_id} has no line items to document")
        return order.documents.get(doc_type.value)

    def _render(self, order: Order, doc_type: DocumentType, expires_at: Optional[datetime]) -> bytes:
        if doc_type == DocumentType.QUOTE:
            return render_quote(order, self.company, expires_at)
        return render_shop_packet(order, self.company)

    def _path(self, job_id: str, doc_type: DocumentType) -> str:
        directory = os.path.realpath(os.path.join(self.upload_dir, SUBDIRS[doc_type]))
        path = os.path.realpath(os.path.join(directory, f"{job_id}.pdf"))
        if os.path.dirname(path) != directory:
            logger.warning("Refusing document path outside %s for job %r", directory, job_id)
            raise DocumentNotAvailable(f"No document path for job id {job_id!r}")
        return path

    def _write(self, path: str, data: bytes) -> None:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        tmp = f"{path}.tmp"
        with open(tmp, "wb") as f:
            f.write(data)
        os.replace(tmp, path)
