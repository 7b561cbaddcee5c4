import io
import os
import unittest

from peca_ai.db import close_db
from tests.helpers.app_factory import build_test_app, create_supplier
from tests.helpers.temp_db import TempDbSandbox


_PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


class WorkshopSettingsApiTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="settings_api")
        self.app = build_test_app(self._temp_db, LOGO_MAX_BYTES=1024)
        self.client = self.app.test_client()
        self.headers = {"X-Tenant-Id": "tenant-perfil"}
        self.headers["X-CSRF-Token"] = self.client.get("/", headers=self.headers).get_json()["csrf_token"]

    def tearDown(self) -> None:
        with self.app.app_context():
            close_db()
        self._temp_db.cleanup()

    def _settings_body(self, **overrides):
        body = {
            "workshop_name": "Oficina do Joao",
            "workshop_address": "Rua das Flores, 100",
            "workshop_whatsapp": "11 95555-4444",
            "city": "Sao Paulo",
        }
        body.update(overrides)
        return body

    def test_defaults_before_first_save(self) -> None:
        settings = self.client.get("/api/settings", headers=self.headers).get_json()["settings"]
        self.assertEqual(settings["tenant_id"], "tenant-perfil")
        self.assertIsNone(settings["workshop_name"])
        self.assertEqual(settings["favorite_suppliers"], [])
        self.assertTrue(settings["notify_on_response"])

    def test_save_and_update(self) -> None:
        supplier_id = create_supplier(self.client, self.headers, "Autopecas Favorita")
        saved = self.client.put(
            "/api/settings",
            json=self._settings_body(favorite_suppliers=[supplier_id], notify_on_response=False),
            headers=self.headers,
        )
        self.assertEqual(saved.status_code, 200)
        settings = saved.get_json()["settings"]
        self.assertEqual(settings["workshop_name"], "Oficina do Joao")
        self.assertEqual(settings["favorite_suppliers"], [supplier_id])
        self.assertFalse(settings["notify_on_response"])

        updated = self.client.put("/api/settings", json=self._settings_body(city="Campinas"), headers=self.headers)
        self.assertEqual(updated.get_json()["settings"]["city"], "Campinas")
        self.assertEqual(updated.get_json()["settings"]["favorite_suppliers"], [])

    def test_required_fields_and_foreign_favorites(self) -> None:
        missing = self.client.put("/api/settings", json=self._settings_body(city=" "), headers=self.headers)
        self.assertEqual(missing.status_code, 400)
        self.assertEqual(missing.get_json()["field"], "city")

        bad_logo = self.client.put("/api/settings", json=self._settings_body(logo_url="ftp://x"), headers=self.headers)
        self.assertEqual(bad_logo.get_json()["field"], "logo_url")

        foreign = create_supplier(self.client, {"X-Tenant-Id": "tenant-outra"}, "Loja Alheia")
        response = self.client.put(
            "/api/settings",
            json=self._settings_body(favorite_suppliers=[foreign]),
            headers=self.headers,
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "suppliers_not_found")

    def test_logo_upload_is_served_from_media(self) -> None:
        response = self.client.post(
            "/api/settings/logo",
            data={"logo": (io.BytesIO(_PNG_BYTES), "minha logo.png", "image/png")},
            content_type="multipart/form-data",
            headers=self.headers,
        )
        self.assertEqual(response.status_code, 201, response.get_data(as_text=True))
        logo_url = response.get_json()["logo_url"]
        self.assertTrue(logo_url.startswith("/media/logos/tenant-perfil-"))
        self.assertTrue(logo_url.endswith(".png"))
        self.assertTrue(os.path.exists(os.path.join(self._temp_db.upload_dir, "logos", logo_url.rsplit("/", 1)[1])))

        settings = self.client.get("/api/settings", headers=self.headers).get_json()["settings"]
        self.assertEqual(settings["logo_url"], logo_url)

        served = self.client.get(logo_url)
        self.assertEqual(served.status_code, 200)
        self.assertEqual(served.data, _PNG_BYTES)
        served.close()

    def test_logo_rejections(self) -> None:
        no_file = self.client.post("/api/settings/logo", data={}, content_type="multipart/form-data", headers=self.headers)
        self.assertEqual(no_file.status_code, 400)
        self.assertEqual(no_file.get_json()["error"], "logo_required")

        wrong_type = self.client.post(
            "/api/settings/logo",
            data={"logo": (io.BytesIO(b"GIF89a"), "logo.gif", "image/gif")},
            content_type="multipart/form-data",
            headers=self.headers,
        )
        self.assertEqual(wrong_type.get_json()["error"], "logo_invalid_type")

        too_large = self.client.post(
            "/api/settings/logo",
            data={"logo": (io.BytesIO(b"\x00" * 2048), "logo.png", "image/png")},
            content_type="multipart/form-data",
            headers=self.headers,
        )
        self.assertEqual(too_large.status_code, 413)
        self.assertEqual(too_large.get_json()["max_bytes"], 1024)

    def test_logo_upload_requires_session_csrf_token(self) -> None:
        body = {"logo": (io.BytesIO(_PNG_BYTES), "logo.png", "image/png")}
        response = self.client.post(
            "/api/settings/logo",
            data=body,
            content_type="multipart/form-data",
            headers={"X-Tenant-Id": "tenant-perfil"},
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "csrf_invalid")
        settings = self.client.get("/api/settings", headers=self.headers).get_json()["settings"]
        self.assertIsNone(settings["logo_url"])

        token = self.headers["X-CSRF-Token"]
        with_field = self.client.post(
            "/api/settings/logo",
            data={"logo": (io.BytesIO(_PNG_BYTES), "logo.png", "image/png"), "csrf_token": token},
            content_type="multipart/form-data",
            headers={"X-Tenant-Id": "tenant-perfil"},
        )
        self.assertEqual(with_field.status_code, 201, with_field.get_data(as_text=True))

    def test_media_path_traversal_is_not_served(self) -> None:
        response = self.client.get("/media/logos/../peca_ai_test.db")
        self.assertEqual(response.status_code, 404)


if __name__ == "__main__":
    unittest.main()
