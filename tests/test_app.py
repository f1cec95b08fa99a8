from concurrent.futures import ThreadPoolExecutor

import vis_ssr.charts.app as app_module
from vis_ssr.charts.app import MISSING_OPTIONS, create_app
from vis_ssr.charts.html_page import escape_options
from vis_ssr.config import Settings
from fastapi.testclient import TestClient

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


def stored(images_dir):
    return sorted(p.name for p in images_dir.iterdir())


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_app_creates_images_dir(settings):
    assert not settings.images_dir.exists()
    create_app(settings)
    assert settings.images_dir.is_dir()


def test_render_returns_url_to_png(client, images_dir, column_chart):
    r = client.post("/render", json=column_chart)
    assert r.status_code == 200
    body = r.json()
    assert set(body) == {"success", "resultObj"}
    assert body["success"] is True
    url = body["resultObj"]
    assert url.startswith("http://testserver/images/")
    assert url.endswith(".png")

    filename = url.rsplit("/", 1)[1]
    assert stored(images_dir) == [filename]

    img = client.get(url)
    assert img.status_code == 200
    assert img.headers["content-type"] == "image/png"
    assert img.content.startswith(PNG_SIGNATURE)


def test_render_identical_requests_get_distinct_files(client, images_dir, column_chart):
    first = client.post("/render", json=column_chart).json()["resultObj"]
    second = client.post("/render", json=column_chart).json()["resultObj"]
    assert first != second
    assert len(stored(images_dir)) == 2


def test_render_without_body_is_rejected(client, images_dir):
    r = client.post("/render")
    assert r.status_code == 400
    assert r.json() == {"success": False, "errorMessage": MISSING_OPTIONS}
    assert stored(images_dir) == []


def test_render_null_body_is_rejected(client, images_dir):
    r = client.post("/render", content="null", headers={"content-type": "application/json"})
    assert r.status_code == 400
    assert r.json()["success"] is False
    assert stored(images_dir) == []


def test_render_malformed_json_is_rejected(client, images_dir):
    r = client.post("/render", content="{not json", headers={"content-type": "application/json"})
    assert r.status_code == 400
    body = r.json()
    assert body["success"] is False
    assert "resultObj" not in body
    assert stored(images_dir) == []


def test_render_failure_returns_500_without_file(client, images_dir, column_chart, monkeypatch):
    def boom(options):
        raise RuntimeError("renderer crashed")

    monkeypatch.setattr(app_module, "render_png", boom)
    r = client.post("/render", json=column_chart)
    assert r.status_code == 500
    assert r.json() == {"success": False, "errorMessage": "Failed to render chart: renderer crashed"}
    assert stored(images_dir) == []


def test_render_unsupported_type_is_500(client, images_dir):
    r = client.post("/render", json={"type": "sunburst", "data": []})
    assert r.status_code == 500
    body = r.json()
    assert body["success"] is False
    assert body["errorMessage"].startswith("Failed to render chart: Unsupported chart type 'sunburst'")
    assert stored(images_dir) == []


def test_render_non_object_body_is_500(client):
    r = client.post("/render", json=[1, 2, 3])
    assert r.status_code == 500
    assert "JSON object" in r.json()["errorMessage"]


def test_render_write_failure_is_500(client, column_chart, monkeypatch):
    def disk_full(directory, ext, content):
        raise OSError("No space left on device")

    monkeypatch.setattr(app_module, "save_artifact", disk_full)
    r = client.post("/render", json=column_chart)
    assert r.status_code == 500
    assert r.json()["errorMessage"] == "Failed to render chart: No space left on device"


def test_render_html_page_embeds_escaped_options(client, images_dir):
    options = {
        "type": "line",
        "title": "</script><script>alert(1)</script>",
        "data": [{"time": "2024", "value": 1}, {"time": "2025", "value": 3}],
    }
    r = client.post("/render-html", json=options)
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["resultObj"].endswith(".html")
    assert len(stored(images_dir)) == 1

    page = client.get(body["resultObj"])
    assert page.status_code == 200
    assert page.headers["content-type"].startswith("text/html")
    assert f"var options = {escape_options(options)};" in page.text
    assert "<script>alert(1)" not in page.text
    assert "\\u003c/script\\u003e" in page.text


def test_render_html_accepts_any_chart_type(client):
    # the page is rendered client side, so unknown types are not rejected here
    r = client.post("/render-html", json={"type": "mind-map", "data": {"name": "root"}})
    assert r.status_code == 200
    assert r.json()["success"] is True


def test_render_html_without_body_is_rejected(client, images_dir):
    r = client.post("/render-html")
    assert r.status_code == 400
    assert r.json() == {"success": False, "errorMessage": MISSING_OPTIONS}
    assert stored(images_dir) == []


def test_render_html_failure_returns_500(client, images_dir, monkeypatch):
    def boom(options, runtime_src):
        raise ValueError("template error")

    monkeypatch.setattr(app_module, "build_chart_page", boom)
    r = client.post("/render-html", json={"type": "pie"})
    assert r.status_code == 500
    assert r.json() == {"success": False, "errorMessage": "Failed to render HTML chart: template error"}
    assert stored(images_dir) == []


def test_unknown_image_is_404(client):
    assert client.get("/images/does-not-exist.png").status_code == 404


def test_public_base_url_overrides_request_host(tmp_path, column_chart):
    settings = Settings(public_dir=tmp_path / "public", public_base_url="https://charts.example.com")
    with TestClient(create_app(settings)) as c:
        url = c.post("/render", json=column_chart).json()["resultObj"]
    assert url.startswith("https://charts.example.com/images/")


def test_custom_runtime_script_is_used(tmp_path):
    settings = Settings(public_dir=tmp_path / "public", runtime_script="/static/gpt-vis.js")
    with TestClient(create_app(settings)) as c:
        url = c.post("/render-html", json={"type": "pie"}).json()["resultObj"]
        page = c.get(url).text
    assert '<script src="/static/gpt-vis.js"></script>' in page


def test_concurrent_identical_renders_get_distinct_files(client, images_dir, column_chart):
    def post(_):
        return client.post("/render", json=column_chart)

    with ThreadPoolExecutor(max_workers=8) as pool:
        responses = list(pool.map(post, range(8)))

    assert all(r.status_code == 200 for r in responses)
    urls = {r.json()["resultObj"] for r in responses}
    assert len(urls) == 8
    assert len(stored(images_dir)) == 8


def test_non_json_body_is_rejected(client, images_dir):
    for path in ("/render", "/render-html"):
        r = client.post(path, content='{"type": "pie"}', headers={"content-type": "text/plain"})
        assert r.status_code == 400
        assert r.json() == {"success": False, "errorMessage": MISSING_OPTIONS}
    assert stored(images_dir) == []


def test_root_images_route_has_no_double_slash(tmp_path, column_chart):
    settings = Settings(public_dir=tmp_path / "public", images_route="/")
    with TestClient(create_app(settings)) as c:
        url = c.post("/render", json=column_chart).json()["resultObj"]
        assert url.startswith("http://testserver/")
        assert "//" not in url.split("://", 1)[1]
        assert c.get(url).status_code == 200
