import io
import json
import unittest
import urllib.error
from unittest.mock import MagicMock, patch

from peca_ai.integrations.webhook_client import (
    DeliveryResult,
    WebhookError,
    WebhookNotifier,
    post_json,
    post_json_for_reply,
)
from peca_ai.observability import metrics_snapshot, reset_metrics_for_tests


_URLOPEN = "peca_ai.integrations.webhook_client.urllib.request.urlopen"


def _ok_response(status: int = 200):
    response = MagicMock()
    response.__enter__.return_value.status = status
    return response


class PostJsonTest(unittest.TestCase):
    def test_sends_json_body_with_request_id(self) -> None:
        with patch(_URLOPEN, return_value=_ok_response(202)) as urlopen:
            status = post_json("https://hooks.example.test/x", {"peca": "Freio"}, timeout=3, request_id="req-1")

        self.assertEqual(status, 202)
        sent = urlopen.call_args.args[0]
        self.assertEqual(sent.get_method(), "POST")
        self.assertEqual(sent.get_header("Content-type"), "application/json")
        self.assertEqual(sent.get_header("X-request-id"), "req-1")
        self.assertEqual(json.loads(sent.data.decode("utf-8")), {"peca": "Freio"})
        self.assertEqual(urlopen.call_args.kwargs["timeout"], 3)

    def test_http_error_keeps_status_code(self) -> None:
        failure = urllib.error.HTTPError(
            "https://hooks.example.test/x",
            503,
            "Service Unavailable",
            None,
            io.BytesIO(b"manutencao"),
        )
        with patch(_URLOPEN, side_effect=failure):
            with self.assertRaises(WebhookError) as ctx:
                post_json("https://hooks.example.test/x", {})
        self.assertEqual(ctx.exception.status_code, 503)
        self.assertIn("manutencao", str(ctx.exception))

    def test_timeout_is_a_webhook_error(self) -> None:
        with patch(_URLOPEN, side_effect=TimeoutError("timed out")):
            with self.assertRaises(WebhookError) as ctx:
                post_json("https://hooks.example.test/x", {})
        self.assertIsNone(ctx.exception.status_code)

    def test_reply_body_is_decoded(self) -> None:
        response = _ok_response(200)
        response.__enter__.return_value.read.return_value = '{"mensagem": "Troque o filtro"}'.encode("utf-8")
        with patch(_URLOPEN, return_value=response):
            reply = post_json_for_reply("https://hooks.example.test/x", {"mensagem": "oi"})
        self.assertEqual(reply, {"mensagem": "Troque o filtro"})

    def test_reply_must_be_a_json_object(self) -> None:
        for body in (b"[1, 2]", b"nao e json"):
            response = _ok_response(200)
            response.__enter__.return_value.read.return_value = body
            with patch(_URLOPEN, return_value=response):
                with self.assertRaises(WebhookError) as ctx:
                    post_json_for_reply("https://hooks.example.test/x", {})
            self.assertEqual(ctx.exception.status_code, 200)


class WebhookNotifierTest(unittest.TestCase):
    def setUp(self) -> None:
        reset_metrics_for_tests()

    def tearDown(self) -> None:
        reset_metrics_for_tests()

    def test_disabled_notifier_skips_delivery(self) -> None:
        notifier = WebhookNotifier.from_config({"WEBHOOK_URL": "https://hooks.example.test/x", "WEBHOOK_ENABLED": False})
        with patch(_URLOPEN) as urlopen:
            result = notifier.notify("budget_request_created", {"short_id": 1})
        urlopen.assert_not_called()
        self.assertEqual(result, DeliveryResult(delivered=False))
        self.assertEqual(metrics_snapshot()["webhook"], {"budget_request_created:skipped": 1})

    def test_missing_url_disables_notifier(self) -> None:
        self.assertFalse(WebhookNotifier("  ").enabled)

    def test_event_name_is_merged_into_body(self) -> None:
        notifier = WebhookNotifier("https://hooks.example.test/x")
        with patch(_URLOPEN, return_value=_ok_response()) as urlopen:
            result = notifier.notify("budget_response_received", {"short_id": 9, "total_price": 10.5})

        self.assertEqual(result.to_dict(), {"delivered": True, "status_code": 200})
        body = json.loads(urlopen.call_args.args[0].data.decode("utf-8"))
        self.assertEqual(body, {"event": "budget_response_received", "short_id": 9, "total_price": 10.5})
        self.assertEqual(metrics_snapshot()["webhook"], {"budget_response_received:delivered": 1})

    def test_failure_is_logged_and_never_raised(self) -> None:
        notifier = WebhookNotifier("https://hooks.example.test/x")
        failure = urllib.error.HTTPError("https://hooks.example.test/x", 500, "Internal Server Error", None, None)
        with patch(_URLOPEN, side_effect=failure):
            with self.assertLogs("peca_ai.integrations.webhook_client", level="WARNING") as logs:
                result = notifier.notify("budget_response_received", {"short_id": 9})

        self.assertEqual(result, DeliveryResult(delivered=False, status_code=500))
        self.assertIn("webhook_delivery_failed", logs.output[0])
        self.assertEqual(metrics_snapshot()["webhook"], {"budget_response_received:failed": 1})


if __name__ == "__main__":
    unittest.main()
