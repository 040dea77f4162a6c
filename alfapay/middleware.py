import logging

from django.conf import settings
from django.http import JsonResponse

logger = logging.getLogger(__name__)


class JsonExceptionMiddleware:
    """Turn uncaught exceptions under the API prefix into a JSON 500."""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        return self.get_response(request)

    def process_exception(self, request, exception):
        prefix = getattr(settings, "API_PREFIX", "/api/")
        if not request.path.startswith(prefix):
            return None
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        body = {"success": False, "message": "Server Error"}
        if settings.DEBUG:
            body["error"] = str(exception)
        return JsonResponse(body, status=500)
