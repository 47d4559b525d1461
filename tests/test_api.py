import pytest
from fastapi.testclient import TestClient

from contentgraph.core.dependencies import get_db
from contentgraph.main import app

API = "/api/v1/cms"


@pytest.fixture
def client(db, workspace):
    app.dependency_overrides[get_db] = lambda: db
    with TestClient(app) as test_client:
        test_client.headers.update({"X-Workspace-Id": workspace.id})
        yield test_client
    app.dependency_overrides.clear()


def _create_type(client, api_key, **extra):
    response = client.post(f"{API}/content-types/", json={"name": api_key.title(), "api_key": api_key, **extra})
    assert response.status_code == 201, response.text
    return response.json()


def _create_field(client, content_type_id, api_key, field_type, **extra):
    response = client.post(
        f"{API}/content-types/{content_type_id}/fields",
        json={"name": api_key, "api_key": api_key, "type": field_type, **extra},
    )
    assert response.status_code == 201, response.text
    return response.json()


def _create_entry(client, content_type_id, values, **extra):
    response = client.post(
        f"{API}/entries/{content_type_id}",
        json={"values": [{"api_key": k, "value": v} for k, v in values.items()], "is_published": True, **extra},
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
def schema(client):
    author = _create_type(client, "author")
    _create_field(client, author["id"], "name", "TEXT", is_required=True)
    article = _create_type(client, "article")
    _create_field(client, article["id"], "title", "TEXT", is_required=True)
    _create_field(client, article["id"], "authorName", "TEXT")
    author_field = _create_field(
        client, article["id"], "author", "RELATION",
        relation={"kind": "MANY_TO_ONE", "target_content_type_id": author["id"]},
        config={"denorm": {"targetFieldApiKey": "authorName"}},
    )
    return {"author": author, "article": article, "author_field": author_field}


def test_root(client):
    assert client.get("/").json() == {"message": "ContentGraph backend is running"}


def test_workspace_header_is_required(client):
    client.headers.pop("X-Workspace-Id")
    assert client.get(f"{API}/content-types/").status_code == 422


def test_unknown_workspace(client):
    response = client.get(f"{API}/content-types/", headers={"X-Workspace-Id": "nope"})
    assert response.status_code == 404


def test_content_type_crud(client):
    created = _create_type(client, "page", seo_enabled=False)
    assert created["seo_enabled"] is False

    assert [t["api_key"] for t in client.get(f"{API}/content-types/").json()] == ["page"]
    assert client.get(f"{API}/content-types/by-api-key/page").json()["id"] == created["id"]

    updated = client.put(f"{API}/content-types/{created['id']}", json={"name": "Landing page"})
    assert updated.json()["name"] == "Landing page"

    assert client.delete(f"{API}/content-types/{created['id']}").status_code == 200
    missing = client.get(f"{API}/content-types/{created['id']}")
    assert missing.status_code == 404
    assert missing.json()["code"] == "CONTENT_TYPE_NOT_FOUND"


def test_duplicate_content_type(client):
    _create_type(client, "page")
    response = client.post(f"{API}/content-types/", json={"name": "Page", "api_key": "page"})
    assert response.status_code == 422
    assert response.json()["code"] == "CONTENT_TYPE_API_KEY_DUPLICATE"


def test_fields_listed_and_reordered(client, schema):
    article_id = schema["article"]["id"]
    fields = client.get(f"{API}/content-types/{article_id}/fields").json()
    assert [f["api_key"] for f in fields] == ["title", "authorName", "author"]
    assert fields[2]["relation"]["kind"] == "MANY_TO_ONE"

    items = [{"id": f["id"], "position": len(fields) - i} for i, f in enumerate(fields)]
    response = client.put(f"{API}/content-types/{article_id}/fields/reorder", json={"items": items})
    assert response.status_code == 200
    assert [f["api_key"] for f in response.json()] == ["author", "authorName", "title"]


def test_entry_with_relations(client, schema):
    author = _create_entry(client, schema["author"]["id"], {"name": "John Doe"}, seo_title="John Doe")
    assert author["slug"] == "john-doe"

    article = _create_entry(client, schema["article"]["id"], {"title": "Hello", "author": [author["id"]]})
    assert article["values"] == {"title": "Hello", "authorName": "John Doe"}

    response = client.get(f"{API}/entries/{article['id']}", params={"include": "relations"})
    assert response.status_code == 200
    relations = response.json()["relations"]
    assert relations["author"]["id"] == author["id"]
    assert relations["author"]["slug"] == "john-doe"


def test_validation_error_payload(client, schema):
    response = client.post(f"{API}/entries/{schema['article']['id']}", json={"values": []})
    assert response.status_code == 422
    body = response.json()
    assert body["code"] == "VALIDATION_ERROR"
    assert body["field"] == "title"
    assert body["rule"] == "required"


def test_unknown_entry(client):
    response = client.get(f"{API}/entries/missing")
    assert response.status_code == 404
    assert response.json()["code"] == "ENTRY_NOT_FOUND"


def test_list_entries_paginated(client, schema):
    for name in ("Ann", "Bob", "Cid"):
        _create_entry(client, schema["author"]["id"], {"name": name}, seo_title=name)

    response = client.get(f"{API}/entries/", params={"content_type": "author", "page": 2, "page_size": 2})
    body = response.json()
    assert body["total"] == 3
    assert body["pages"] == 2
    assert body["page"] == 2
    assert len(body["items"]) == 1


def test_publish_and_unpublish(client, schema):
    entry = _create_entry(client, schema["author"]["id"], {"name": "Ann"}, is_published=False)
    assert entry["is_published"] is False

    published = client.post(f"{API}/entries/{entry['id']}/publish").json()
    assert published["is_published"] is True
    assert published["published_at"] is not None

    assert client.post(f"{API}/entries/{entry['id']}/unpublish").json()["published_at"] is None
    hidden = client.get(f"{API}/entries/{entry['id']}", params={"scope": "public"})
    assert hidden.status_code == 404


def test_relation_routes(client, schema):
    ann = _create_entry(client, schema["author"]["id"], {"name": "Ann"}, seo_title="Ann")
    bob = _create_entry(client, schema["author"]["id"], {"name": "Bob"}, seo_title="Bob")
    article = _create_entry(client, schema["article"]["id"], {"title": "Hello"})
    field_id = schema["author_field"]["id"]

    appended = client.post(
        f"{API}/relations/append",
        json={"field_id": field_id, "from_entry_id": article["id"], "to_entry_id": ann["id"]},
    )
    assert appended.status_code == 200
    client.post(
        f"{API}/relations/append",
        json={"field_id": field_id, "from_entry_id": article["id"], "to_entry_id": bob["id"]},
    )

    listed = client.get(f"{API}/relations/list", params={"field_id": field_id, "from_entry_id": article["id"]}).json()
    assert listed["total"] == 1
    assert listed["rows"][0]["to_entry_id"] == bob["id"]

    refreshed = client.get(f"{API}/entries/{article['id']}").json()
    assert refreshed["values"]["authorName"] == "Bob"

    cleared = client.post(
        f"{API}/relations/clear",
        json={"field_id": field_id, "from_entry_id": article["id"]},
    )
    assert cleared.json() == {"count": 1}


def test_m2m_route_rejects_ordered_field(client, schema):
    article = _create_entry(client, schema["article"]["id"], {"title": "Hello"})
    response = client.post(
        f"{API}/relations/m2m/attach",
        json={"field_id": schema["author_field"]["id"], "from_entry_id": article["id"], "to_entry_ids": []},
    )
    assert response.status_code == 422
