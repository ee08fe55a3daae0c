import io

from openpyxl import load_workbook

from planivo.models import Organization, User, UserRole, db

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _staff(email, **overrides):
    user = {
        "email": email,
        "full_name": "Api Staff",
        "role": "staff",
        "facility_name": "Central Clinic",
        "department_name": "Emergency",
    }
    user.update(overrides)
    return user


class TestBulkUsersImportEndpoint:
    """POST /api/bulk-users"""

    def test_requires_authentication(self, client, org_tree):
        response = client.post("/api/bulk-users", json={"users": [_staff("a@example.com")]})

        assert response.status_code == 401
        assert response.get_json() == {"error": "Unauthorized"}

    def test_invalid_token_is_unauthenticated(self, client, org_tree):
        response = client.post(
            "/api/bulk-users",
            json={"users": [_staff("a@example.com")]},
            headers={"Authorization": "Bearer not-a-real-token"},
        )

        assert response.status_code == 401

    def test_requires_admin_role(self, client, staff_user, auth_headers):
        response = client.post("/api/bulk-users", json={"users": [_staff("a@example.com")]}, headers=auth_headers(staff_user))

        assert response.status_code == 403
        assert response.get_json()["error"] == "Insufficient permissions. Admin role required."
        assert User.find_by_email("a@example.com") is None

    def test_imports_with_context_organization(self, client, admin_user, org_tree, auth_headers):
        payload = {
            "users": [
                _staff("one@example.com"),
                _staff("two@example.com", department_name="Emergncy"),
            ]
        }

        response = client.post("/api/bulk-users", json=payload, headers=auth_headers(admin_user))

        assert response.status_code == 200
        assert response.get_json() == {
            "success": 1,
            "failed": 1,
            "errors": [
                {
                    "row": 3,
                    "email": "two@example.com",
                    "error": 'Department "Emergncy" not found in facility "Central Clinic"',
                }
            ],
        }
        user = User.find_by_email("one@example.com")
        assert UserRole.query.filter_by(user_id=user.id).one().organization_id == org_tree.org.id

    def test_errors_report_normalized_email(self, client, admin_user, org_tree, auth_headers):
        payload = {"users": [_staff("  Mixed.Case@Example.COM ", department_name="Nowhere")]}

        response = client.post("/api/bulk-users", json=payload, headers=auth_headers(admin_user))

        assert response.status_code == 200
        assert response.get_json()["errors"][0]["email"] == "mixed.case@example.com"

    def test_explicit_organization_id(self, client, super_admin_user, org_tree, auth_headers):
        payload = {"users": [_staff("one@example.com")], "organizationId": str(org_tree.org.id)}

        response = client.post("/api/bulk-users", json=payload, headers=auth_headers(super_admin_user))

        assert response.status_code == 200
        assert response.get_json()["success"] == 1

    def test_cannot_provision_into_foreign_organization(self, client, admin_user, org_tree, auth_headers):
        rival = Organization(name="Rival Clinic", slug="rival-clinic")
        db.session.add(rival)
        db.session.commit()
        headers = auth_headers(admin_user)

        by_row = client.post(
            "/api/bulk-users",
            json={"users": [_staff("takeover@example.com", role="organization_admin", organization_name="Rival Clinic")]},
            headers=headers,
        )
        by_payload = client.post(
            "/api/bulk-users",
            json={"users": [_staff("takeover@example.com", role="organization_admin")], "organizationId": rival.id},
            headers=headers,
        )

        assert by_row.status_code == 200
        assert by_row.get_json() == {
            "success": 0,
            "failed": 1,
            "errors": [
                {
                    "row": 2,
                    "email": "takeover@example.com",
                    "error": 'Not permitted to add users to organization "Rival Clinic"',
                }
            ],
        }
        assert by_payload.status_code == 403
        assert by_payload.get_json() == {"error": "Insufficient permissions for the requested organization."}
        assert User.find_by_email("takeover@example.com") is None

    def test_validation_errors(self, client, admin_user, auth_headers):
        response = client.post(
            "/api/bulk-users",
            json={"users": [_staff("bad-email", role="wizard")]},
            headers=auth_headers(admin_user),
        )

        assert response.status_code == 400
        body = response.get_json()
        assert body["error"] == "Validation failed"
        assert "users.0.email: Invalid email format" in body["details"]
        assert any(detail.startswith("users.0.role:") for detail in body["details"])

    def test_non_json_body(self, client, admin_user, auth_headers):
        response = client.post("/api/bulk-users", data="users=1", headers=auth_headers(admin_user))

        assert response.status_code == 400
        assert response.get_json()["details"] == ["body: Expected JSON object"]

    def test_too_many_rows(self, client, admin_user, auth_headers):
        users = [_staff(f"user{index}@example.com") for index in range(101)]

        response = client.post("/api/bulk-users", json={"users": users}, headers=auth_headers(admin_user))

        assert response.status_code == 400
        assert response.get_json()["details"] == ["users: Maximum 100 users per upload"]
        assert User.query.count() == 1

    def test_rate_limit(self, app, client, admin_user, auth_headers):
        app.config["BULK_IMPORT_RATE_LIMIT_MAX"] = 2
        headers = auth_headers(admin_user)

        statuses = [client.post("/api/bulk-users", json={"users": []}, headers=headers).status_code for _ in range(3)]

        assert statuses == [400, 400, 429]
        response = client.post("/api/bulk-users", json={"users": [_staff("a@example.com")]}, headers=headers)
        assert response.status_code == 429
        assert response.get_json() == {"error": "Rate limit exceeded. Please try again later."}
        assert int(response.headers["Retry-After"]) > 0


class TestBulkUsersUploadEndpoint:
    """POST /api/bulk-users/upload"""

    def test_csv_upload(self, client, admin_user, org_tree, auth_headers):
        content = (
            "Email,Full Name,Role,Facility Name,Department Name\n"
            "upload@example.com,Uploaded Person,staff,Central Clinic,Radiology\n"
        ).encode("utf-8")

        response = client.post(
            "/api/bulk-users/upload",
            data={"file": (io.BytesIO(content), "people.csv")},
            headers=auth_headers(admin_user),
            content_type="multipart/form-data",
        )

        assert response.status_code == 200
        assert response.get_json()["success"] == 1
        assert User.find_by_email("upload@example.com") is not None

    def test_template_round_trip(self, client, admin_user, org_tree, auth_headers):
        headers = auth_headers(admin_user)
        template = client.get("/api/bulk-users/template", headers=headers)

        response = client.post(
            "/api/bulk-users/upload",
            data={"file": (io.BytesIO(template.data), "bulk-users-template.xlsx")},
            headers=headers,
            content_type="multipart/form-data",
        )

        assert response.status_code == 200
        # The example row names an existing hierarchy; its specialty does not exist and is dropped
        assert response.get_json() == {"success": 1, "failed": 0, "errors": []}
        assert User.find_by_email("staff@example.com") is not None

    def test_missing_file(self, client, admin_user, auth_headers):
        response = client.post(
            "/api/bulk-users/upload", data={}, headers=auth_headers(admin_user), content_type="multipart/form-data"
        )

        assert response.status_code == 400
        assert response.get_json()["details"] == ["file: File is required"]

    def test_unsupported_file(self, client, admin_user, auth_headers):
        response = client.post(
            "/api/bulk-users/upload",
            data={"file": (io.BytesIO(b"{}"), "people.json")},
            headers=auth_headers(admin_user),
            content_type="multipart/form-data",
        )

        assert response.status_code == 400
        assert response.get_json()["details"] == ["file: Unsupported file type; upload a .csv or .xlsx file"]

    def test_upload_requires_admin(self, client, staff_user, auth_headers):
        response = client.post(
            "/api/bulk-users/upload",
            data={"file": (io.BytesIO(b"email,full_name,role\n"), "people.csv")},
            headers=auth_headers(staff_user),
            content_type="multipart/form-data",
        )

        assert response.status_code == 403


class TestBulkUsersTemplateEndpoint:
    """GET /api/bulk-users/template"""

    def test_download(self, client, admin_user, org_tree, auth_headers):
        response = client.get("/api/bulk-users/template", headers=auth_headers(admin_user))

        assert response.status_code == 200
        assert response.mimetype == XLSX_MIMETYPE
        assert "bulk-users-template.xlsx" in response.headers["Content-Disposition"]
        worksheet = load_workbook(io.BytesIO(response.data)).active
        assert worksheet["A1"].value == "Email"
        assert worksheet["C2"].value == "General Hospital"

    def test_requires_admin(self, client, staff_user, auth_headers):
        response = client.get("/api/bulk-users/template", headers=auth_headers(staff_user))

        assert response.status_code == 403

    def test_requires_authentication(self, client):
        response = client.get("/api/bulk-users/template")

        assert response.status_code == 401
