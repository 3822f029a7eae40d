"""
Permissions for the rides API.
"""

import hmac

from django.conf import settings
from rest_framework.permissions import BasePermission, IsAdminUser


class HasApiKey(BasePermission):
    """
    Allow requests carrying the configured API key as a bearer token.

    Used by scheduled jobs that call the API without a user account.
    Disabled when RIDES_API_KEY is empty.
    """

    keyword = 'Bearer'

    def has_permission(self, request, view):
        api_key = getattr(settings, 'RIDES_API_KEY', '')
        if not api_key:
            return False

        header = request.META.get('HTTP_AUTHORIZATION', '')
        keyword, _, token = header.partition(' ')
        if keyword != self.keyword or not token:
            return False

        return hmac.compare_digest(token.encode(), api_key.encode())


IsApiKeyOrAdminUser = HasApiKey | IsAdminUser
