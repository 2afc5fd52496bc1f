from fastapi.testclient import TestClient


def submit_manual(client: TestClient, pr_number=42):
    return client.post(
        "/api/v1/reviews/manual",
        json={"installation_id": "1001", "repository_name": "org/app", "pr_number": pr_number, "user_id": "octocat"},
    )


def test_manual_review_accepted(client: TestClient):
    response = submit_manual(client)
    assert response.status_code == 202
    data = response.json()
    assert data["success"] is True
    assert data["job_id"].startswith("pr-analysis-1001-org-app-42-")
    assert data["pr_data"]["pr_number"] == 42


def test_manual_review_validation(client: TestClient):
    response = client.post(
        "/api/v1/reviews/manual",
        json={"installation_id": "1001", "repository_name": "not-a-repo", "pr_number": 0, "user_id": "octocat"},
    )
    assert response.status_code == 422


def test_get_job(client: TestClient):
    job_id = submit_manual(client).json()["job_id"]

    response = client.get(f"/api/v1/jobs/{job_id}")
    assert response.status_code == 200
    payload = response.json()
    assert payload["id"] == job_id
    assert payload["repository_name"] == "org/app"
    assert payload["status"] in ("PENDING", "PROCESSING", "COMPLETED")
    assert payload["max_retries"] == 2


def test_get_job_not_found(client: TestClient):
    response = client.get("/api/v1/jobs/missing-job")
    assert response.status_code == 404


def test_jobs_for_pr_and_stats(client: TestClient, workflow):
    workflow.queue.stop()
    first = submit_manual(client).json()["job_id"]
    again = submit_manual(client).json()["job_id"]
    other = submit_manual(client, pr_number=7).json()["job_id"]
    assert first == again
    assert other != first

    response = client.get("/api/v1/jobs", params={"installation_id": "1001", "repository_name": "org/app", "pr_number": 42})
    assert response.status_code == 200
    assert [j["id"] for j in response.json()] == [first]

    stats = client.get("/api/v1/jobs/stats").json()
    assert stats["total"] == 2


def test_cancel_job(client: TestClient, workflow):
    workflow.queue.stop()
    job_id = submit_manual(client).json()["job_id"]

    response = client.post(f"/api/v1/jobs/{job_id}/cancel")
    assert response.status_code == 200
    assert response.json() == {"success": True, "job_id": job_id, "status": "FAILED"}

    again = client.post(f"/api/v1/jobs/{job_id}/cancel")
    assert again.status_code == 409

    job = client.get(f"/api/v1/jobs/{job_id}").json()
    assert job["error"] == "Job cancelled"


def test_cancel_job_not_found(client: TestClient):
    response = client.post("/api/v1/jobs/missing-job/cancel")
    assert response.status_code == 404
