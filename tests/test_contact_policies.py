"""Tests for the contact form and store policies."""


class TestContact:
    def test_sends_message(self, client, mailer):
        response = client.post(
            "/api/contact",
            json={"name": "Gill", "email": "gill@reefshop.com", "message": "Do you ship corals?\nThanks"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["message_id"] == mailer.sent_emails[0]["message_id"]

        sent = mailer.sent_emails[0]
        assert sent["reply_to"] == "gill@reefshop.com"
        assert sent["subject"] == "Contact Form: New Message from Gill"
        assert "Do you ship corals?<br>Thanks" in sent["html_body"]

    def test_missing_fields(self, client):
        response = client.post("/api/contact", json={"name": "Gill"})
        assert response.status_code == 400
        assert response.json()["message"] == "Name, email, and message are required fields"

    def test_invalid_email(self, client):
        response = client.post("/api/contact", json={"name": "Gill", "email": "gill@", "message": "hi"})
        assert response.status_code == 400

    def test_mail_failure(self, client, mailer):
        mailer.should_succeed = False
        response = client.post("/api/contact", json={"name": "Gill", "email": "gill@reefshop.com", "message": "hi"})
        assert response.status_code == 500


class TestPolicies:
    def test_defaults(self, client):
        data = client.get("/api/policies").json()
        assert data["shipping_policy"] == ""
        assert data["privacy_policy"] == ""

    def test_admin_update(self, client, admin, customer):
        _, admin_headers = admin
        _, headers = customer

        assert client.put("/api/policies", json={"refundPolicy": "30 days"}, headers=headers).status_code == 403

        response = client.put("/api/policies", json={"refundPolicy": "30 days"}, headers=admin_headers)
        assert response.status_code == 200
        client.put("/api/policies", json={"shippingPolicy": "Live arrival guaranteed"}, headers=admin_headers)

        data = client.get("/api/policies").json()
        assert data["refund_policy"] == "30 days"
        assert data["shipping_policy"] == "Live arrival guaranteed"
