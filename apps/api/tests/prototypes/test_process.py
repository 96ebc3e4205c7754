"""Tests for POST /process-prototype.

Storage is the in-memory FakeStorage from conftest; every assertion about
the record re-reads it through a fresh session.
"""

import uuid

from httpx import AsyncClient

PROTOTYPE_ID = uuid.UUID("00000000-0000-0000-0000-000000000100")
USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")

PNG = b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR"


def _trigger(client: AsyncClient, prototype_id=PROTOTYPE_ID):
    return client.post("/process-prototype", json={"prototypeId": str(prototype_id)})


class TestProcessZip:
    async def test_publishes_every_file_and_records_url(
        self, client, add_prototype, make_zip, storage, fetch_prototype, public_base
    ) -> None:
        await add_prototype(upload=make_zip({
            "index.html": "<html><head></head><body></body></html>",
            "assets/logo.png": PNG,
            "styles/main.css": "body{}",
        }))

        res = await _trigger(client)

        expected_url = f"{public_base}/{PROTOTYPE_ID}/index.html"
        assert res.status_code == 200
        assert res.json() == {"success": True, "deploymentUrl": expected_url}

        assert set(storage.published) == {
            f"{PROTOTYPE_ID}/index.html",
            f"{PROTOTYPE_ID}/assets/logo.png",
            f"{PROTOTYPE_ID}/styles/main.css",
        }
        assert storage.published[f"{PROTOTYPE_ID}/assets/logo.png"] == (PNG, "image/png")
        assert storage.published[f"{PROTOTYPE_ID}/styles/main.css"][1] == "text/css"

        record = await fetch_prototype()
        assert record.deployment_status == "deployed"
        assert record.deployment_url == expected_url

    async def test_zip_extension_is_case_insensitive(
        self, client, add_prototype, make_zip, storage
    ) -> None:
        await add_prototype(
            file_path=f"{USER_ID}/{PROTOTYPE_ID}.ZIP",
            upload=make_zip({"index.html": "<html></html>", "app.js": "1"}),
        )

        res = await _trigger(client)

        assert res.status_code == 200
        assert f"{PROTOTYPE_ID}/app.js" in storage.published

    async def test_buckets_checked_before_publishing(
        self, client, add_prototype, make_zip, storage
    ) -> None:
        await add_prototype(upload=make_zip({"index.html": "x"}))
        await _trigger(client)
        assert storage.bucket_checks == 1


class TestProcessHtml:
    async def test_single_file_published_as_index(
        self, client, add_prototype, storage, fetch_prototype, public_base
    ) -> None:
        html = b"<html><body>Hello</body></html>"
        await add_prototype(file_path=f"{USER_ID}/{PROTOTYPE_ID}.html", upload=html)

        res = await _trigger(client)

        assert res.status_code == 200
        assert storage.published == {f"{PROTOTYPE_ID}/index.html": (html, "text/html")}
        record = await fetch_prototype()
        assert record.deployment_status == "deployed"
        assert record.deployment_url == f"{public_base}/{PROTOTYPE_ID}/index.html"


class TestProcessFailures:
    async def test_unknown_prototype_is_404(self, client, seeded_user) -> None:
        res = await _trigger(client, uuid.uuid4())
        assert res.status_code == 404
        assert res.json()["error"] == "Prototype not found"

    async def test_missing_prototype_id_is_400(self, client) -> None:
        res = await client.post("/process-prototype", json={})
        assert res.status_code == 400
        assert res.json()["error"] == "prototypeId is required"

    async def test_no_file_path_marks_failed(
        self, client, add_prototype, fetch_prototype, storage
    ) -> None:
        await add_prototype(file_path=None)

        res = await _trigger(client)

        assert res.status_code == 400
        assert res.json()["error"] == "No file to process"
        assert (await fetch_prototype()).deployment_status == "failed"
        assert storage.published == {}

    async def test_download_failure_marks_failed(
        self, client, add_prototype, storage, fetch_prototype
    ) -> None:
        await add_prototype(upload=b"irrelevant")
        storage.fail_download = True

        res = await _trigger(client)

        assert res.status_code == 500
        assert res.json()["error"] == "Failed to download file"
        record = await fetch_prototype()
        assert record.deployment_status == "failed"
        assert record.deployment_url is None

    async def test_empty_download_marks_failed(
        self, client, add_prototype, fetch_prototype
    ) -> None:
        await add_prototype(upload=b"")

        res = await _trigger(client)

        assert res.status_code == 500
        assert (await fetch_prototype()).deployment_status == "failed"

    async def test_corrupt_zip_marks_failed(
        self, client, add_prototype, fetch_prototype
    ) -> None:
        await add_prototype(upload=b"this is not a zip archive")

        res = await _trigger(client)

        assert res.status_code == 500
        assert res.json()["error"] == "Failed to process ZIP file"
        assert (await fetch_prototype()).deployment_status == "failed"

    async def test_publish_failure_marks_failed(
        self, client, add_prototype, make_zip, storage, fetch_prototype
    ) -> None:
        await add_prototype(upload=make_zip({"index.html": "x", "app.js": "y"}))
        storage.fail_publish = {f"{PROTOTYPE_ID}/app.js"}

        res = await _trigger(client)

        assert res.status_code == 500
        assert res.json()["error"].startswith("Failed to publish")
        record = await fetch_prototype()
        assert record.deployment_status == "failed"
        assert record.deployment_url is None

    async def test_archive_without_root_index_marks_failed(
        self, client, add_prototype, make_zip, fetch_prototype
    ) -> None:
        await add_prototype(upload=make_zip({"site/index.html": "<html></html>"}))

        res = await _trigger(client)

        assert res.status_code == 500
        assert "index.html" in res.json()["error"]
        assert (await fetch_prototype()).deployment_status == "failed"

    async def test_unresolvable_url_marks_failed(
        self, client, add_prototype, make_zip, storage, fetch_prototype
    ) -> None:
        await add_prototype(upload=make_zip({"index.html": "x"}))
        storage.no_public_url = True

        res = await _trigger(client)

        assert res.status_code == 500
        assert res.json()["error"] == "Failed to get public URL"
        record = await fetch_prototype()
        assert record.deployment_status == "failed"
        assert record.deployment_url is None


class TestSingleFlight:
    async def test_already_deployed_is_409_and_untouched(
        self, client, add_prototype, fetch_prototype, storage
    ) -> None:
        await add_prototype(status="deployed", deployment_url="https://old.example/index.html")

        res = await _trigger(client)

        assert res.status_code == 409
        record = await fetch_prototype()
        assert record.deployment_status == "deployed"
        assert record.deployment_url == "https://old.example/index.html"
        assert storage.published == {}

    async def test_in_progress_is_409(self, client, add_prototype, fetch_prototype) -> None:
        await add_prototype(status="processing")

        res = await _trigger(client)

        assert res.status_code == 409
        assert (await fetch_prototype()).deployment_status == "processing"

    async def test_second_trigger_after_success_is_409(
        self, client, add_prototype, make_zip
    ) -> None:
        await add_prototype(upload=make_zip({"index.html": "x"}))

        first = await _trigger(client)
        second = await _trigger(client)

        assert first.status_code == 200
        assert second.status_code == 409


class TestRateLimit:
    async def test_429_after_exceeding_limit(self, client, seeded_user) -> None:
        statuses = [(await _trigger(client, uuid.uuid4())).status_code for _ in range(32)]
        assert 429 in statuses
        assert statuses[0] == 404
