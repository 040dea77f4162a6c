import json

from django.http import HttpResponse
from django.test import RequestFactory, SimpleTestCase, override_settings

from alfapay.middleware import JsonExceptionMiddleware


class JsonExceptionMiddlewareTests(SimpleTestCase):
    def setUp(self):
        self.middleware = JsonExceptionMiddleware(lambda request: HttpResponse("ok"))
        self.rf = RequestFactory()

    def test_api_errors_become_json(self):
        request = self.rf.post("/api/alfa/pay")
        with self.assertLogs("alfapay.middleware", level="ERROR") as cm:
            resp = self.middleware.process_exception(request, RuntimeError("boom"))
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(json.loads(resp.content), {"success": False, "message": "Server Error"})
        self.assertIn("/api/alfa/pay", cm.output[0])

    @override_settings(DEBUG=True)
    def test_debug_includes_error(self):
        with self.assertLogs("alfapay.middleware", level="ERROR"):
            resp = self.middleware.process_exception(self.rf.get("/api/alfa/test"), ValueError("bad"))
        self.assertEqual(json.loads(resp.content)["error"], "bad")

    def test_other_paths_untouched(self):
        self.assertIsNone(self.middleware.process_exception(self.rf.get("/admin/"), RuntimeError("boom")))

    def test_passes_responses_through(self):
        self.assertEqual(self.middleware(self.rf.get("/api/alfa/test")).content, b"ok")
