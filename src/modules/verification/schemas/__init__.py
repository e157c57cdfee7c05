from .verification_schemas import DocumentNameVerificationResponse, FaceVerificationResponse

__all__ = ['DocumentNameVerificationResponse', 'FaceVerificationResponse']
