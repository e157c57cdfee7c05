# create_tables.py
from database import engine, Base
# Importa todos los modelos para que se registren con Base
from modules.auth.models import AdminUser, ApiKey  # noqa: F401
from modules.envelopes.models import (  # noqa: F401
    Recipient, Document, Envelope, SignaturePlaceholder, Signature,
    SignatureConsent, SignatureHash, SigningToken, FaceVerificationAttempt, NameVerificationAttempt, AuditLogEntry,
)
from modules.webhooks.models.webhook import Webhook  # noqa: F401


def create_tables(bind=None):
    """Crea todas las tablas en la base de datos"""
    print("🔍 Tablas a crear:", list(Base.metadata.tables.keys()))
    Base.metadata.create_all(bind=bind or engine)
    print("✅ Tablas creadas exitosamente!")


if __name__ == "__main__":
    create_tables()
