from fastapi import Depends

from modules.envelopes.dependencies import get_blob_store, get_envelope_repository
from modules.envelopes.repositories.envelope_repository import EnvelopeRepository
from modules.signing.services.pdf_signing_engine import PdfSigningEngine
from modules.storage import EncryptedBlobStore


def get_signing_engine(
    repository: EnvelopeRepository = Depends(get_envelope_repository),
    blob_store: EncryptedBlobStore = Depends(get_blob_store),
) -> PdfSigningEngine:
    return PdfSigningEngine(repository, blob_store)
