import brotli
import pytest
from fastapi.testclient import TestClient

from assetfs.served import get_media_type
from conftest import SITE_FILES
from server import create_app

PLAIN = {"Accept-Encoding": "identity"}


@pytest.fixture
def assets(site, generate):
    return generate([site], prefix=str(site))


def test_media_types():
    assert get_media_type("/static/app.js") == "application/javascript"
    assert get_media_type("/INDEX.HTML") == "text/html"
    assert get_media_type("/data/blob.bin") == "application/octet-stream"
    assert get_media_type("/static/site.css") == "text/css"


def test_serves_embedded_file(assets):
    client = TestClient(create_app(assets))
    response = client.get("/static/css/site.css", headers=PLAIN)
    assert response.status_code == 200
    assert response.content == SITE_FILES["static/css/site.css"]
    assert response.headers["content-type"].startswith("text/css")
    assert "content-encoding" not in response.headers


def test_brotli_passthrough(assets):
    client = TestClient(create_app(assets))
    response = client.get("/static/app.js", headers={"Accept-Encoding": "br"})
    assert response.status_code == 200
    assert response.headers["content-encoding"] == "br"
    assert response.content == SITE_FILES["static/app.js"]
    assert assets.registry.get("/static/app.js").compressed() == brotli.compress(
        SITE_FILES["static/app.js"], quality=11, lgwin=24)


def test_empty_file_is_sent_plain(assets):
    client = TestClient(create_app(assets))
    response = client.get("/static/empty.txt", headers={"Accept-Encoding": "br"})
    assert response.status_code == 200
    assert response.content == b""
    assert "content-encoding" not in response.headers


def test_directory_serves_index(assets):
    client = TestClient(create_app(assets))
    response = client.get("/", headers=PLAIN)
    assert response.status_code == 200
    assert response.content == SITE_FILES["index.html"]


def test_directory_without_index_is_not_found(assets):
    client = TestClient(create_app(assets))
    assert client.get("/static", headers=PLAIN).status_code == 404


def test_missing_file_is_not_found(assets):
    client = TestClient(create_app(assets))
    assert client.get("/nope.txt", headers=PLAIN).status_code == 404


def test_local_mode_reads_disk(assets, site):
    (site / "static" / "app.js").write_bytes(b"edited")
    client = TestClient(create_app(assets, use_local=True))
    response = client.get("/static/app.js", headers={"Accept-Encoding": "br"})
    assert response.status_code == 200
    assert response.content == b"edited"
    assert "content-encoding" not in response.headers


def test_scoped_app(assets):
    client = TestClient(create_app(assets, base="/static"))
    assert client.get("/app.js", headers=PLAIN).content == SITE_FILES["static/app.js"]
    assert client.get("/index.html", headers=PLAIN).status_code == 404


def test_scoped_app_rejects_parent_paths(assets):
    client = TestClient(create_app(assets, base="/static"))
    assert client.get("/..%2Findex.html", headers=PLAIN).status_code == 404
    assert client.get("/css%2F..%2F..%2Fdata%2Fblob.bin", headers=PLAIN).status_code == 404
    assert client.get("/..%2Fapp.js", headers=PLAIN).content == SITE_FILES["static/app.js"]


@pytest.mark.parametrize("accept", ["identity", "br"])
def test_corrupt_payload_is_not_served(assets, capsys, accept):
    assets.registry.get("/static/app.js").payload = "not*base64"
    client = TestClient(create_app(assets))
    response = client.get("/static/app.js", headers={"Accept-Encoding": accept})
    assert response.status_code == 404
    assert "Error reading asset: static/app.js" in capsys.readouterr().out
    assert client.get("/static/css/site.css", headers=PLAIN).status_code == 200
