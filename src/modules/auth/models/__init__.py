from .admin_user import AdminUser
from .api_key import ApiKey

__all__ = ['AdminUser', 'ApiKey']
