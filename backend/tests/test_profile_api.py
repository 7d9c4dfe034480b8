"""HTTP tests for the profile wizard and the gated physician dashboard."""

import pytest
from httpx import AsyncClient

from app.config import settings
from app.models.user import User

PDF_BYTES = b"%PDF-1.4\n%\xe2\xe3\xcf\xd3\n1 0 obj\n<< /Type /Catalog >>\nendobj\n%%EOF\n"
PDF = ("cv.pdf", PDF_BYTES, "application/pdf")


async def _fill_profile(client: AsyncClient, headers: dict, sections: dict) -> None:
    for section_id, data in sections.items():
        response = await client.patch(
            f"/api/profile/sections/{section_id}", headers=headers, json=data
        )
        assert response.status_code == 200, response.text


@pytest.mark.api
@pytest.mark.asyncio
class TestProgress:
    async def test_first_visit_creates_and_prefills(
        self, client: AsyncClient, test_user: User, auth_headers: dict
    ):
        response = await client.get("/api/profile/", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["progress"] == 0
        assert data["current_section"] == "personal_identifiers"
        assert data["required_total"] == 6
        assert data["can_submit"] is False
        personal = data["draft"]["personal_identifiers"]
        assert personal["legal_first_name"] == "Ada"
        assert personal["legal_middle_name"] == "King"
        assert personal["email"] == "ada@example.com"

    async def test_requires_authentication(self, client: AsyncClient):
        response = await client.get("/api/profile/")
        assert response.status_code == 401

    async def test_facility_users_have_no_profile_wizard(
        self, client: AsyncClient, facility_headers: dict
    ):
        response = await client.get("/api/profile/", headers=facility_headers)
        assert response.status_code == 403

    async def test_catalogs(self, client: AsyncClient):
        response = await client.get("/api/profile/sections")

        assert response.status_code == 200
        data = response.json()
        assert len(data["sections"]) == 7
        assert "CA" in data["states"]
        assert {c["key"] for c in data["document_categories"]} >= {"cv", "npdb_report"}


@pytest.mark.api
@pytest.mark.asyncio
class TestSectionEdits:
    async def test_camel_case_patch_is_saved(
        self, client: AsyncClient, test_user: User, auth_headers: dict
    ):
        response = await client.patch(
            "/api/profile/sections/professional_information",
            headers=auth_headers,
            json={
                "npiNumber": "1234567890",
                "specialty": "Emergency Medicine",
                "yearsExperience": 12,
                "boardCertified": False,
            },
        )
        assert response.status_code == 200
        assert response.json()["completion"]["professional_information"] is True
        assert response.json()["progress"] == 17

        reloaded = (await client.get("/api/profile/", headers=auth_headers)).json()
        assert reloaded["draft"]["professional_information"]["years_experience"] == "12"
        assert reloaded["progress"] == 17

    async def test_invalid_value_saved_with_field_error(
        self, client: AsyncClient, test_user: User, auth_headers: dict
    ):
        response = await client.patch(
            "/api/profile/sections/professional_information",
            headers=auth_headers,
            json={"npi_number": "123"},
        )
        assert response.status_code == 200
        section = next(
            s for s in response.json()["sections"] if s["id"] == "professional_information"
        )
        assert section["errors"]["npi_number"] == "NPI must be exactly 10 digits"
        assert section["is_complete"] is False

        reloaded = (await client.get("/api/profile/", headers=auth_headers)).json()
        assert reloaded["draft"]["professional_information"]["npi_number"] == "123"

    async def test_state_name_is_flagged_and_kept(
        self, client: AsyncClient, test_user: User, auth_headers: dict
    ):
        response = await client.patch(
            "/api/profile/sections/personal_identifiers",
            headers=auth_headers,
            json={"state": "Texas"},
        )
        assert response.status_code == 200
        section = next(
            s for s in response.json()["sections"] if s["id"] == "personal_identifiers"
        )
        assert section["errors"]["state"] == "Select a US state"

        reloaded = (await client.get("/api/profile/", headers=auth_headers)).json()
        assert reloaded["draft"]["personal_identifiers"]["state"] == "Texas"

    async def test_unreadable_yes_no_is_saved_as_unanswered(
        self, client: AsyncClient, test_user: User, auth_headers: dict
    ):
        response = await client.patch(
            "/api/profile/sections/professional_information",
            headers=auth_headers,
            json={"boardCertified": "maybe"},
        )
        assert response.status_code == 200
        assert response.json()["draft"]["professional_information"]["board_certified"] is None
        section = next(
            s for s in response.json()["sections"] if s["id"] == "professional_information"
        )
        assert section["errors"]["board_certified"] == "Please indicate board certification"

    async def test_wrong_payload_shape_is_refused(
        self, client: AsyncClient, test_user: User, auth_headers: dict
    ):
        response = await client.patch(
            "/api/profile/sections/licensure",
            headers=auth_headers,
            json={"licenses": "CA MD1"},
        )
        assert response.status_code == 422
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert error["details"]["errors"][0]["field"] == "licenses"

    async def test_unknown_section(self, client: AsyncClient, test_user: User, auth_headers: dict):
        response = await client.patch(
            "/api/profile/sections/hobbies", headers=auth_headers, json={"chess": True}
        )
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "RESOURCE_NOT_FOUND"

    async def test_sign_attestation_captures_device(
        self, client: AsyncClient, test_user: User, auth_headers: dict
    ):
        response = await client.post(
            "/api/profile/attestation/sign",
            headers={**auth_headers, "User-Agent": "pytest-browser"},
            json={"full_legal_name": "Ada Lovelace", "agreed": True},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["completion"]["digital_signature"] is True
        signature = data["draft"]["digital_signature"]
        assert signature["device_info"] == "pytest-browser"
        assert signature["timestamp"]


@pytest.mark.api
@pytest.mark.asyncio
class TestNavigation:
    async def test_next_previous_and_jump(
        self, client: AsyncClient, test_user: User, auth_headers: dict
    ):
        response = await client.post(
            "/api/profile/navigate", headers=auth_headers, json={"action": "next"}
        )
        assert response.json()["current_section"] == "professional_information"

        response = await client.post(
            "/api/profile/navigate",
            headers=auth_headers,
            json={"action": "jump", "section_id": "questionnaires"},
        )
        assert response.json()["current_section"] == "questionnaires"

        response = await client.post(
            "/api/profile/navigate", headers=auth_headers, json={"action": "previous"}
        )
        assert response.json()["current_section"] == "document_uploads"

        reloaded = (await client.get("/api/profile/", headers=auth_headers)).json()
        assert reloaded["current_section"] == "document_uploads"

    async def test_jump_needs_a_section(
        self, client: AsyncClient, test_user: User, auth_headers: dict
    ):
        response = await client.post(
            "/api/profile/navigate", headers=auth_headers, json={"action": "jump"}
        )
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "SECTION_REQUIRED"

        response = await client.post(
            "/api/profile/navigate",
            headers=auth_headers,
            json={"action": "jump", "section_id": "hobbies"},
        )
        assert response.status_code == 404


@pytest.mark.api
@pytest.mark.asyncio
class TestDocuments:
    async def test_upload_open_and_remove(
        self, client: AsyncClient, test_user: User, auth_headers: dict, document_bucket
    ):
        response = await client.post(
            "/api/profile/documents/cv", headers=auth_headers, files={"file": PDF}
        )
        assert response.status_code == 201
        document = response.json()["document"]
        assert document["url"] == f"/api/profile/documents/cv/{document['id']}"
        assert response.json()["progress"]["draft"]["document_uploads"]["cv"]["name"] == "cv.pdf"
        key = f"{test_user.id}/cv/{document['id']}_cv.pdf"
        assert document_bucket.objects[key]["content_type"] == "application/pdf"

        response = await client.get(document["url"], headers=auth_headers)
        assert response.status_code == 307
        assert response.headers["location"].startswith(f"https://s3.test/test-documents/{key}")

        response = await client.delete("/api/profile/documents/cv", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["draft"]["document_uploads"]["cv"] is None

        response = await client.get(document["url"], headers=auth_headers)
        assert response.status_code == 404

    async def test_board_certificates_accumulate(
        self, client: AsyncClient, test_user: User, auth_headers: dict
    ):
        for name in ("abem.pdf", "abim.pdf"):
            response = await client.post(
                "/api/profile/documents/board_certificates",
                headers=auth_headers,
                files={"file": (name, PDF_BYTES, "application/pdf")},
            )
            assert response.status_code == 201

        certificates = response.json()["progress"]["draft"]["document_uploads"]["board_certificates"]
        assert [c["name"] for c in certificates] == ["abem.pdf", "abim.pdf"]

        response = await client.delete(
            "/api/profile/documents/board_certificates",
            headers=auth_headers,
            params={"document_id": certificates[0]["id"]},
        )
        remaining = response.json()["draft"]["document_uploads"]["board_certificates"]
        assert [c["name"] for c in remaining] == ["abim.pdf"]

    async def test_disallowed_file_type(
        self, client: AsyncClient, test_user: User, auth_headers: dict
    ):
        response = await client.post(
            "/api/profile/documents/npdb_report",
            headers=auth_headers,
            files={"file": ("npdb.exe", b"MZ", "application/octet-stream")},
        )
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "UPLOAD_REJECTED"

    async def test_renamed_executable_is_refused(
        self, client: AsyncClient, test_user: User, auth_headers: dict, document_bucket
    ):
        executable = b"MZ\x90\x00\x03\x00\x00\x00\x04\x00\x00\x00\xff\xff\x00\x00" + b"\x00" * 48
        response = await client.post(
            "/api/profile/documents/cv",
            headers=auth_headers,
            files={"file": ("cv.pdf", executable, "application/pdf")},
        )
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "UPLOAD_REJECTED"
        assert document_bucket.objects == {}

        progress = (await client.get("/api/profile/", headers=auth_headers)).json()
        assert progress["draft"]["document_uploads"] is None

    async def test_oversized_upload_is_refused(
        self,
        client: AsyncClient,
        test_user: User,
        auth_headers: dict,
        monkeypatch,
        document_bucket,
    ):
        monkeypatch.setattr(settings, "max_upload_bytes", 1024)
        response = await client.post(
            "/api/profile/documents/cv",
            headers=auth_headers,
            files={"file": ("cv.pdf", PDF_BYTES + b"0" * 2048, "application/pdf")},
        )
        assert response.status_code == 422
        assert "limit" in response.json()["error"]["message"]
        assert document_bucket.objects == {}

    async def test_unknown_document(self, client: AsyncClient, test_user: User, auth_headers: dict):
        response = await client.get("/api/profile/documents/cv/nope", headers=auth_headers)
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "RESOURCE_NOT_FOUND"

    async def test_unknown_category(self, client: AsyncClient, test_user: User, auth_headers: dict):
        response = await client.post(
            "/api/profile/documents/passport", headers=auth_headers, files={"file": PDF}
        )
        assert response.status_code == 404
@pytest.mark.api
@pytest.mark.asyncio
class TestCompletion:
    async def test_incomplete_profile_cannot_be_submitted(
        self, client: AsyncClient, test_user: User, auth_headers: dict, valid_sections
    ):
        await _fill_profile(
            client, auth_headers,
            {k: v for k, v in valid_sections.items() if k != "licensure"},
        )
        response = await client.post("/api/profile/complete", headers=auth_headers)

        assert response.status_code == 422
        error = response.json()["error"]
        assert error["code"] == "PROFILE_INCOMPLETE"
        assert error["details"]["missing_sections"] == ["licensure"]

        status = (await client.get("/api/profile/status", headers=auth_headers)).json()
        assert status == {
            "is_complete": False,
            "completion_percentage": 83,
            "missing_sections": ["licensure"],
        }

    async def test_complete_profile_unlocks_dashboard(
        self, client: AsyncClient, test_user: User, auth_headers: dict, valid_sections
    ):
        response = await client.get("/api/physician/dashboard", headers=auth_headers)
        assert response.status_code == 403

        await _fill_profile(client, auth_headers, valid_sections)
        response = await client.post("/api/profile/complete", headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == {
            "is_complete": True,
            "completion_percentage": 100,
            "redirect_to": "/physician-dashboard",
        }

        me = (await client.get("/api/auth/me", headers=auth_headers)).json()
        assert me["profile_complete"] is True

        response = await client.get("/api/physician/dashboard", headers=auth_headers)
        assert response.status_code == 200
        dashboard = response.json()
        assert dashboard["name"] == "Ada Lovelace"
        assert dashboard["licensed_states"] == ["CA"]
        assert dashboard["document_count"] == 2

    async def test_losing_a_section_reopens_profile(
        self, client: AsyncClient, test_user: User, auth_headers: dict, valid_sections
    ):
        await _fill_profile(client, auth_headers, valid_sections)
        await client.post("/api/profile/complete", headers=auth_headers)

        await client.patch(
            "/api/profile/sections/licensure", headers=auth_headers, json={"licenses": []}
        )
        status = (await client.get("/api/profile/status", headers=auth_headers)).json()
        assert status["is_complete"] is False
        assert status["completion_percentage"] == 83

        response = await client.get("/api/physician/dashboard", headers=auth_headers)
        assert response.status_code == 403
