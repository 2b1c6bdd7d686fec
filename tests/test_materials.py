"""
Tests for learning material uploads.
"""

import pytest


def material_form(data_structure, **overrides):
    form = {
        "title": "Atomic structure",
        "data_structure_id": str(data_structure.id),
        "type": "video",
        "description": "Intro lesson",
        "unit_id": "",
        "topic_id": "12",
        "status": "active",
    }
    form.update(overrides)
    return form


async def upload_material(client, headers, data_structure, filename="lesson.mp4", content_type="video/mp4", **overrides):
    return await client.post(
        "/api/materials",
        data=material_form(data_structure, **overrides),
        files={"file": (filename, b"0" * 2048, content_type)},
        headers=headers,
    )


@pytest.mark.asyncio()
async def test_create_material_uploads_to_bucket(client, admin_headers, data_structure, storage_calls):
    response = await upload_material(client, admin_headers, data_structure)
    assert response.status_code == 201, response.text
    material = response.json()

    assert material["type"] == "video"
    assert material["unit_id"] is None
    assert material["topic_id"] == 12
    assert material["mime_type"] == "video/mp4"
    assert material["size"] == 2048
    assert material["formatted_size"] == "2 KB"
    assert material["file_path"].startswith("materials_files/")
    assert material["file_url"].startswith("https://")

    upload = storage_calls["upload"][0]
    assert upload["folder"] == "materials_files"
    assert upload["resource_type"] == "video"


@pytest.mark.asyncio()
async def test_mime_type_from_extension(client, admin_headers, data_structure, storage_calls):
    response = await upload_material(
        client, admin_headers, data_structure,
        filename="workbook.pdf", content_type="application/octet-stream", type="ebook",
    )
    assert response.status_code == 201
    assert response.json()["mime_type"] == "application/pdf"
    assert storage_calls["upload"][0]["resource_type"] == "raw"


@pytest.mark.asyncio()
async def test_form_validation_messages(client, admin_headers, data_structure, storage_calls):
    response = await upload_material(client, admin_headers, data_structure, title="A")
    assert response.status_code == 400
    assert response.json()["detail"] == "Title must be at least 2 characters"

    response = await upload_material(client, admin_headers, data_structure, type="podcast")
    assert response.status_code == 400
    assert storage_calls["upload"] == []


@pytest.mark.asyncio()
async def test_rejects_unknown_extension(client, admin_headers, data_structure, storage_calls):
    response = await upload_material(
        client, admin_headers, data_structure, filename="setup.exe", content_type="application/x-msdownload"
    )
    assert response.status_code == 400
    assert response.json()["detail"].startswith("File type not allowed")
    assert storage_calls["upload"] == []


@pytest.mark.asyncio()
async def test_missing_data_structure(client, admin_headers, data_structure, storage_calls):
    response = await upload_material(client, admin_headers, data_structure, data_structure_id="999")
    assert response.status_code == 404
    assert response.json()["detail"] == "Data structure not found"
    assert storage_calls["upload"] == []


@pytest.mark.asyncio()
async def test_entity_admin_cannot_upload(client, entity_headers, data_structure, storage_calls):
    response = await upload_material(client, entity_headers, data_structure)
    assert response.status_code == 403


@pytest.mark.asyncio()
async def test_update_replaces_file_after_save(client, admin_headers, data_structure, storage_calls):
    material = (await upload_material(client, admin_headers, data_structure)).json()

    response = await client.put(
        f"/api/materials/{material['id']}",
        data=material_form(data_structure, title="Atomic structure (revised)", type="audio"),
        files={"file": ("narration.mp3", b"1" * 100, "audio/mpeg")},
        headers=admin_headers,
    )
    assert response.status_code == 200
    updated = response.json()
    assert updated["title"] == "Atomic structure (revised)"
    assert updated["type"] == "audio"
    assert updated["mime_type"] == "audio/mpeg"
    assert updated["size"] == 100
    assert updated["file_path"] != material["file_path"]
    assert storage_calls["destroy"] == [material["file_path"]]


@pytest.mark.asyncio()
async def test_update_without_file_keeps_object(client, admin_headers, data_structure, storage_calls):
    material = (await upload_material(client, admin_headers, data_structure)).json()

    response = await client.put(
        f"/api/materials/{material['id']}",
        data=material_form(data_structure, status="inactive"),
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert response.json()["status"] == "inactive"
    assert response.json()["file_path"] == material["file_path"]
    assert storage_calls["destroy"] == []


@pytest.mark.asyncio()
async def test_list_filters(client, admin_headers, data_structure, storage_calls):
    await upload_material(client, admin_headers, data_structure)
    await upload_material(
        client, admin_headers, data_structure,
        filename="worksheet.pdf", content_type="application/pdf", type="assignment", title="Bonding worksheet",
    )

    response = await client.get("/api/materials", params={"types": ["assignment"]}, headers=admin_headers)
    assert [m["title"] for m in response.json()] == ["Bonding worksheet"]

    response = await client.get("/api/materials", params={"search": "atomic"}, headers=admin_headers)
    assert [m["title"] for m in response.json()] == ["Atomic structure"]

    response = await client.get(
        "/api/materials", params={"data_structure_ids": [data_structure.id]}, headers=admin_headers
    )
    assert len(response.json()) == 2


@pytest.mark.asyncio()
async def test_bulk_delete_removes_files(client, admin_headers, data_structure, storage_calls):
    first = (await upload_material(client, admin_headers, data_structure)).json()
    second = (await upload_material(
        client, admin_headers, data_structure, filename="notes.pdf", content_type="application/pdf", type="ebook",
    )).json()

    response = await client.delete(
        "/api/materials", params={"ids": [first["id"], second["id"]]}, headers=admin_headers
    )
    assert response.json() == {"deleted": 2, "detail": "2 material(s) deleted successfully"}
    assert sorted(storage_calls["destroy"]) == sorted([first["file_path"], second["file_path"]])

    response = await client.get(f"/api/materials/{first['id']}", headers=admin_headers)
    assert response.status_code == 404


@pytest.mark.asyncio()
async def test_thumbnail_upload_and_replace(client, admin_headers, data_structure, storage_calls):
    response = await client.post(
        "/api/materials",
        data=material_form(data_structure),
        files={
            "file": ("lesson.mp4", b"0" * 2048, "video/mp4"),
            "thumbnail": ("cover.png", b"\x89PNG" + b"0" * 64, "image/png"),
        },
        headers=admin_headers,
    )
    assert response.status_code == 201, response.text
    material = response.json()
    assert material["thumbnail_url"].startswith("thumbnails/")
    assert "test-cloud" in material["thumbnail_public_url"]
    assert [call["folder"] for call in storage_calls["upload"]] == ["materials_files", "thumbnails"]

    response = await client.put(
        f"/api/materials/{material['id']}",
        data=material_form(data_structure),
        files={"thumbnail": ("poster.jpg", b"0" * 64, "image/jpeg")},
        headers=admin_headers,
    )
    assert response.status_code == 200
    updated = response.json()
    assert updated["thumbnail_url"] != material["thumbnail_url"]
    assert updated["file_path"] == material["file_path"]
    assert storage_calls["destroy"] == [material["thumbnail_url"]]


@pytest.mark.asyncio()
async def test_thumbnail_must_be_image(client, admin_headers, data_structure, storage_calls):
    response = await client.post(
        "/api/materials",
        data=material_form(data_structure),
        files={
            "file": ("lesson.mp4", b"0" * 2048, "video/mp4"),
            "thumbnail": ("cover.pdf", b"%PDF", "application/pdf"),
        },
        headers=admin_headers,
    )
    assert response.status_code == 400
    assert response.json()["detail"].startswith("File type not allowed")
    assert storage_calls["upload"] == []


@pytest.mark.asyncio()
async def test_material_without_thumbnail(client, admin_headers, data_structure, storage_calls):
    material = (await upload_material(client, admin_headers, data_structure)).json()
    assert material["thumbnail_url"] is None
    assert material["thumbnail_public_url"] is None


@pytest.mark.asyncio()
async def test_bulk_delete_removes_thumbnails(client, admin_headers, data_structure, storage_calls):
    material = (await client.post(
        "/api/materials",
        data=material_form(data_structure),
        files={
            "file": ("lesson.mp4", b"0" * 2048, "video/mp4"),
            "thumbnail": ("cover.png", b"\x89PNG", "image/png"),
        },
        headers=admin_headers,
    )).json()

    response = await client.delete("/api/materials", params={"ids": [material["id"]]}, headers=admin_headers)
    assert response.json()["deleted"] == 1
    assert sorted(storage_calls["destroy"]) == sorted([material["file_path"], material["thumbnail_url"]])
