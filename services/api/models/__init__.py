from .document import BytesPayload, Document, Payload
from .collection import DocumentCollection

__all__ = ["BytesPayload", "Document", "DocumentCollection", "Payload"]
