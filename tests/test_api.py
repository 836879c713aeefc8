import http.client
import json
import os
import tempfile
import threading
import unittest

from fake_renderer import PDF_PREAMBLE, read_recorded_args, write_fake_renderer
from test_payload import MULTIPART_TYPE, multipart_body
from wkhtmltox_server.config import ServerConfig
from wkhtmltox_server.server import PdfHTTPServer, split_target


class SplitTargetTests(unittest.TestCase):
    def test_keeps_first_value_and_blank_values(self) -> None:
        path, query = split_target("/pdf?orientation=&pagesize=A3&pagesize=A5")

        self.assertEqual(path, "/pdf")
        self.assertEqual(query, {"orientation": "", "pagesize": "A3"})

    def test_decodes_percent_escapes(self) -> None:
        _, query = split_target("/pdf?title=Annual%20Report&margintop=1.5cm")

        self.assertEqual(query["title"], "Annual Report")
        self.assertEqual(query["margintop"], "1.5cm")


class ApiTestCase(unittest.TestCase):
    renderer_body = "cat"
    renderer_exit_code = 0

    def setUp(self) -> None:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.renderer_path, self.args_path = write_fake_renderer(
            tmp.name, body=self.renderer_body, exit_code=self.renderer_exit_code
        )
        self.missing_renderer = os.path.join(tmp.name, "missing-wkhtmltopdf")
        self.start_server(ServerConfig(host="127.0.0.1", port=0, renderer_path=self.renderer_path))

    def start_server(self, config: ServerConfig) -> None:
        server = PdfHTTPServer(config)
        thread = threading.Thread(target=server.serve_forever, daemon=True)
        thread.start()
        self.addCleanup(server.server_close)
        self.addCleanup(server.shutdown)
        self.port = server.server_address[1]

    def request(self, method: str, target: str, body=None, headers=None):
        conn = http.client.HTTPConnection("127.0.0.1", self.port, timeout=15)
        try:
            conn.request(method, target, body=body, headers=headers or {})
            response = conn.getresponse()
            return response, response.read()
        finally:
            conn.close()


@unittest.skipUnless(os.name == "posix", "fake renderer is a POSIX shell script")
class PdfApiTests(ApiTestCase):
    def test_plain_body_renders_with_default_arguments(self) -> None:
        response, data = self.request("POST", "/pdf", body=b"<html>ok</html>")

        self.assertEqual(response.status, 200)
        self.assertEqual(response.getheader("Content-Type"), "application/pdf")
        self.assertEqual(data, PDF_PREAMBLE + b"<html>ok</html>")
        self.assertEqual(
            read_recorded_args(self.args_path),
            [
                "--encoding",
                "utf-8",
                "--orientation",
                "Portrait",
                "--page-size",
                "A4",
                "--include-in-outline",
                "-",
                "-",
            ],
        )

    def test_successful_render_is_logged(self) -> None:
        with self.assertLogs("wkhtmltox_server.server", level="INFO") as logs:
            response, data = self.request("POST", "/pdf", body=b"<html>ok</html>")

        self.assertEqual(response.status, 200)
        self.assertIn(f"done ({len(data)} bytes)", "\n".join(logs.output))

    def test_query_options_reach_renderer(self) -> None:
        response, _ = self.request(
            "POST",
            "/pdf?grayscale=1&orientation=L&imagedpi=150",
            body=b"<html>report</html>",
        )

        self.assertEqual(response.status, 200)
        args = read_recorded_args(self.args_path)
        self.assertIn("--grayscale", args)
        self.assertEqual(args[args.index("--orientation") + 1], "Landscape")
        self.assertEqual(args[args.index("--image-dpi") + 1], "150")

    def test_uploaded_file_renders(self) -> None:
        body = multipart_body([("htmlfile", "page.html", b"<html>uploaded</html>")])

        response, data = self.request("POST", "/pdf", body=body, headers={"Content-Type": MULTIPART_TYPE})

        self.assertEqual(response.status, 200)
        self.assertEqual(data, PDF_PREAMBLE + b"<html>uploaded</html>")

    def test_empty_body_is_rejected(self) -> None:
        response, data = self.request("POST", "/pdf")

        self.assertEqual(response.status, 400)
        self.assertEqual(json.loads(data)["error"], "missing_html")
        self.assertFalse(os.path.exists(self.args_path))

    def test_invalid_orientation_is_rejected(self) -> None:
        response, data = self.request("POST", "/pdf?orientation=X", body=b"<html>ok</html>")

        self.assertEqual(response.status, 400)
        self.assertIn(b"invalid orientation value provided", data)
        self.assertFalse(os.path.exists(self.args_path))

    def test_invalid_integer_is_rejected(self) -> None:
        response, data = self.request("POST", "/pdf?imagequality=high", body=b"<html>ok</html>")

        self.assertEqual(response.status, 400)
        self.assertIn(b"invalid imagequality value provided", data)
        self.assertFalse(os.path.exists(self.args_path))

    def test_out_of_range_integer_is_rejected(self) -> None:
        response, data = self.request("POST", "/pdf?imagedpi=99999999999999999999", body=b"<html>ok</html>")

        self.assertEqual(response.status, 400)
        self.assertIn(b"invalid imagedpi value provided", data)
        self.assertFalse(os.path.exists(self.args_path))

    def test_options_preflight(self) -> None:
        response, data = self.request("OPTIONS", "/pdf")

        self.assertEqual(response.status, 200)
        self.assertEqual(response.getheader("Access-Control-Allow-Methods"), "POST, OPTIONS")
        self.assertEqual(response.getheader("Access-Control-Allow-Headers"), "Content-Type")
        self.assertEqual(data, b"")

    def test_other_methods_are_not_allowed(self) -> None:
        for method in ("GET", "PUT", "DELETE", "PATCH"):
            with self.subTest(method=method):
                response, _ = self.request(method, "/pdf")

                self.assertEqual(response.status, 405)
                self.assertEqual(response.getheader("Allow"), "POST")

    def test_head_is_not_allowed_and_has_no_body(self) -> None:
        response, data = self.request("HEAD", "/pdf")

        self.assertEqual(response.status, 405)
        self.assertEqual(response.getheader("Allow"), "POST")
        self.assertEqual(data, b"")

    def test_unknown_path_is_not_found(self) -> None:
        response, _ = self.request("POST", "/render", body=b"<html>ok</html>")

        self.assertEqual(response.status, 404)

    def test_health_check(self) -> None:
        response, data = self.request("GET", "/healthz")

        self.assertEqual(response.status, 200)
        self.assertEqual(json.loads(data), {"status": "ok"})

    def test_oversized_body_is_rejected(self) -> None:
        self.start_server(
            ServerConfig(host="127.0.0.1", port=0, renderer_path=self.renderer_path, max_body_bytes=1024)
        )

        response, data = self.request("POST", "/pdf", body=b"x" * 2048)

        self.assertEqual(response.status, 413)
        self.assertEqual(json.loads(data)["error"], "payload_too_large")

    def test_missing_renderer_returns_500(self) -> None:
        self.start_server(ServerConfig(host="127.0.0.1", port=0, renderer_path=self.missing_renderer))

        with self.assertLogs("wkhtmltox_server.server", level="ERROR"):
            response, data = self.request("POST", "/pdf", body=b"<html>ok</html>")

        self.assertEqual(response.status, 500)
        self.assertEqual(json.loads(data)["error"], "renderer_unavailable")


@unittest.skipUnless(os.name == "posix", "fake renderer is a POSIX shell script")
class FailingRendererApiTests(ApiTestCase):
    renderer_body = "cat > /dev/null"
    renderer_exit_code = 3

    def test_non_zero_exit_still_answers_200(self) -> None:
        with self.assertLogs("wkhtmltox_server.server", level="WARNING") as logs:
            response, data = self.request("POST", "/pdf", body=b"<html>ok</html>")

        # The status line is sent before the renderer finishes.
        self.assertEqual(response.status, 200)
        self.assertEqual(data, PDF_PREAMBLE)
        self.assertIn("exited with status 3", "\n".join(logs.output))


if __name__ == "__main__":
    unittest.main()
