import json
import unittest
import urllib.error
from unittest.mock import MagicMock, patch

from peca_ai.db import close_db
from peca_ai.observability import metrics_snapshot
from peca_ai.ui_strings import error_message
from tests.helpers.app_factory import build_test_app
from tests.helpers.temp_db import TempDbSandbox


_URLOPEN = "peca_ai.integrations.webhook_client.urllib.request.urlopen"
_ASSISTANT_URL = "https://hooks.example.test/assistente"


def _reply(body: bytes, status: int = 200):
    response = MagicMock()
    response.__enter__.return_value.status = status
    response.__enter__.return_value.read.return_value = body
    return response


class AssistantApiTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="assistant_api")
        self.app = build_test_app(
            self._temp_db,
            ASSISTANT_ENABLED=True,
            ASSISTANT_WEBHOOK_URL=_ASSISTANT_URL,
            ASSISTANT_TIMEOUT_SECONDS=5,
        )
        self.client = self.app.test_client()
        self.headers = {"X-Tenant-Id": "tenant-assistente"}

    def tearDown(self) -> None:
        with self.app.app_context():
            close_db()
        self._temp_db.cleanup()

    def _ask(self, body):
        return self.client.post("/api/assistant", json=body, headers=self.headers)

    def test_relays_question_and_returns_answer(self) -> None:
        answer = {"mensagem": "Verifique as velas e os cabos de ignicao."}
        with patch(_URLOPEN, return_value=_reply(json.dumps(answer).encode("utf-8"))) as urlopen:
            response = self._ask({"mensagem": "  Motor falhando em marcha lenta  "})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json(), {"mensagem": answer["mensagem"], "answered": True})
        sent = urlopen.call_args.args[0]
        self.assertEqual(sent.full_url, _ASSISTANT_URL)
        self.assertEqual(json.loads(sent.data.decode("utf-8")), {"mensagem": "Motor falhando em marcha lenta"})
        self.assertEqual(urlopen.call_args.kwargs["timeout"], 5)
        self.assertEqual(metrics_snapshot()["webhook"].get("assistant_message:delivered"), 1)

    def test_unreachable_automation_gets_fallback_reply(self) -> None:
        with patch(_URLOPEN, side_effect=urllib.error.URLError("connection refused")):
            with self.assertLogs("peca_ai.application.assistant_service", level="WARNING") as logs:
                response = self._ask({"mensagem": "Barulho na suspensao"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.get_json(),
            {"mensagem": error_message("assistant_unavailable"), "answered": False},
        )
        self.assertTrue(any("assistant_reply_failed" in line for line in logs.output))

    def test_http_error_gets_fallback_reply(self) -> None:
        failure = urllib.error.HTTPError(_ASSISTANT_URL, 502, "Bad Gateway", None, None)
        with patch(_URLOPEN, side_effect=failure):
            response = self._ask({"mensagem": "Luz da injecao acesa"})
        self.assertEqual(response.get_json()["mensagem"], error_message("assistant_unavailable"))

    def test_answer_without_text_gets_no_answer_reply(self) -> None:
        for body in (b"{}", b'{"mensagem": "   "}', b""):
            with patch(_URLOPEN, return_value=_reply(body)):
                response = self._ask({"mensagem": "Oleo vazando"})
            self.assertEqual(
                response.get_json(),
                {"mensagem": error_message("assistant_no_answer"), "answered": False},
                body,
            )

    def test_non_json_answer_gets_fallback_reply(self) -> None:
        with patch(_URLOPEN, return_value=_reply(b"<html>erro</html>")):
            response = self._ask({"mensagem": "Freio baixo"})
        self.assertEqual(response.get_json()["mensagem"], error_message("assistant_unavailable"))

    def test_message_is_required(self) -> None:
        with patch(_URLOPEN) as urlopen:
            for body in ({}, {"mensagem": "   "}):
                response = self._ask(body)
                self.assertEqual(response.status_code, 400)
                self.assertEqual(response.get_json()["field"], "mensagem")
            urlopen.assert_not_called()

    def test_long_messages_are_rejected(self) -> None:
        with patch(_URLOPEN) as urlopen:
            response = self._ask({"mensagem": "a" * 2001})
            urlopen.assert_not_called()
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "assistant_message_too_long")
        self.assertEqual(response.get_json()["max_chars"], 2000)

    def test_disabled_assistant_answers_without_calling_out(self) -> None:
        self.app.config["ASSISTANT_ENABLED"] = False
        with patch(_URLOPEN) as urlopen:
            response = self._ask({"mensagem": "Pneu careca"})
            urlopen.assert_not_called()
        self.assertEqual(response.get_json()["answered"], False)


if __name__ == "__main__":
    unittest.main()
