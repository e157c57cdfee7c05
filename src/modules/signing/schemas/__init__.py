from .signing_schemas import SignatureEntry

__all__ = ['SignatureEntry']
