import json

import requests
from google_play_scraper.exceptions import NotFoundError

from conftest import FakeResponse, FakeSession
from snapfolio import stores, utils
from snapfolio.figma import FIGMA_API_ROOT, export_design
from snapfolio.images import detect_image_format, fetch_image
from snapfolio.stores import ITUNES_LOOKUP_URL, export_listing
from snapfolio.targets import classify

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 1024
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 1024
DESIGN_URL = "https://www.figma.com/design/KEY1/Checkout"


def _document(page_name="Page 1"):
    return {
        "document": {
            "children": [
                {
                    "name": page_name,
                    "children": [
                        {"id": "1:1", "name": "Cart", "type": "FRAME"},
                        {"id": "1:2", "name": "Button", "type": "COMPONENT"},
                        {"id": "1:3", "name": "Label", "type": "TEXT"},
                    ],
                }
            ]
        }
    }


def test_image_format_detection():
    assert detect_image_format(PNG_BYTES) == "png"
    assert detect_image_format(JPEG_BYTES) == "jpg"
    assert detect_image_format(b"<html></html>") is None


def test_fetch_image_rejects_tiny_or_non_image_payloads(tmp_path):
    session = FakeSession(
        {
            "https://cdn/tiny": FakeResponse(content=b"\x89PNG"),
            "https://cdn/html": FakeResponse(content=b"<html>" * 200, headers={"Content-Type": "text/html"}),
            "https://cdn/ok": FakeResponse(content=JPEG_BYTES),
        }
    )
    assert fetch_image(session, "https://cdn/tiny", tmp_path / "a") is None
    assert fetch_image(session, "https://cdn/html", tmp_path / "b") is None
    saved = fetch_image(session, "https://cdn/ok", tmp_path / "c")
    assert saved == tmp_path / "c.jpg"
    assert saved.read_bytes() == JPEG_BYTES


def test_design_export_rasterizes_exportable_layers(tmp_path):
    session = FakeSession(
        {
            f"{FIGMA_API_ROOT}/files/KEY1": FakeResponse(json_data=_document()),
            f"{FIGMA_API_ROOT}/images/KEY1": FakeResponse(
                json_data={"images": {"1:1": "https://cdn/cart.png", "1:2": "https://cdn/button.png"}}
            ),
            "https://cdn/cart.png": FakeResponse(content=PNG_BYTES),
            "https://cdn/button.png": FakeResponse(content=PNG_BYTES),
        }
    )
    export = export_design(DESIGN_URL, "figd_token", tmp_path, session=session)

    assert export.success
    assert sorted(path.name.split("_")[2] for path in export.files) == ["Button", "Cart"]
    files_request, images_request = session.requests[:2]
    assert files_request[1]["headers"] == {"X-Figma-Token": "figd_token"}
    assert images_request[1]["params"] == {"ids": "1:1,1:2", "format": "png", "scale": 2}


def test_design_export_reports_missing_token_and_page(tmp_path):
    assert export_design(DESIGN_URL, None, tmp_path).error == "FIGMA_PERSONAL_TOKEN not configured"
    assert export_design("https://www.figma.com/community", "t", tmp_path).error.startswith("Could not extract")

    session = FakeSession({f"{FIGMA_API_ROOT}/files/KEY1": FakeResponse(json_data=_document("Cover"))})
    export = export_design(DESIGN_URL, "t", tmp_path, session=session)
    assert not export.success
    assert export.error == "Page 1 not found in this file"


def test_design_export_network_failure(tmp_path):
    session = FakeSession({f"{FIGMA_API_ROOT}/files/KEY1": requests.ConnectionError("offline")})
    export = export_design(DESIGN_URL, "t", tmp_path, session=session)
    assert not export.success
    assert "offline" in export.error


def test_design_export_reruns_keep_earlier_files(tmp_path, monkeypatch):
    monkeypatch.setattr(utils, "unix_timestamp", lambda: 1700000000)
    session = FakeSession(
        {
            f"{FIGMA_API_ROOT}/files/KEY1": FakeResponse(json_data=_document()),
            f"{FIGMA_API_ROOT}/images/KEY1": FakeResponse(json_data={"images": {"1:1": "https://cdn/cart.png"}}),
            "https://cdn/cart.png": FakeResponse(content=PNG_BYTES),
        }
    )
    first = export_design(DESIGN_URL, "t", tmp_path, session=session)
    second = export_design(DESIGN_URL, "t", tmp_path, session=session)

    assert first.success and second.success
    assert first.files[0] != second.files[0]
    assert first.files[0].exists() and second.files[0].exists()
    assert len(list(tmp_path.glob("Page_1_Cart_*.png"))) == 2


def test_design_layers_without_id_are_skipped(tmp_path):
    document = _document()
    document["document"]["children"][0]["children"].append({"name": "Orphan", "type": "FRAME"})
    session = FakeSession(
        {
            f"{FIGMA_API_ROOT}/files/KEY1": FakeResponse(json_data=document),
            f"{FIGMA_API_ROOT}/images/KEY1": FakeResponse(json_data={"images": {"1:1": "https://cdn/cart.png"}}),
            "https://cdn/cart.png": FakeResponse(content=PNG_BYTES),
        }
    )
    export = export_design(DESIGN_URL, "t", tmp_path, session=session)

    assert export.success
    assert session.requests[1][1]["params"]["ids"] == "1:1,1:2"
    assert [path.name.split("_")[2] for path in export.files] == ["Cart"]


def test_app_store_listing_export(tmp_path, monkeypatch):
    monkeypatch.setattr(utils, "unix_timestamp", lambda: 1700000000)
    record = {
        "trackName": "Example",
        "artistName": "Example Inc.",
        "description": "An app.",
        "screenshotUrls": ["https://cdn/s1.jpg", "https://cdn/s2.jpg"],
    }
    session = FakeSession(
        {
            ITUNES_LOOKUP_URL: FakeResponse(json_data={"results": [record]}),
            "https://cdn/s1.jpg": FakeResponse(content=JPEG_BYTES),
            "https://cdn/s2.jpg": FakeResponse(content=JPEG_BYTES),
        }
    )
    target = classify("https://apps.apple.com/us/app/example/id123456")
    export = export_listing(target, tmp_path, session=session)

    assert export.success
    assert [path.name for path in export.files] == ["screenshot_01_1700000000.jpg", "screenshot_02_1700000000.jpg"]
    info = json.loads((tmp_path / "info_1700000000.json").read_text(encoding="utf-8"))
    assert info["title"] == "Example"
    assert info["platform"] == "Apple Store"
    assert info["appId"] == "123456"
    assert session.requests[0][1]["params"] == {"id": "123456"}


def test_play_store_listing_export(tmp_path, monkeypatch):
    seen = {}

    def fake_app(app_id, **kwargs):
        seen["call"] = (app_id, kwargs)
        return {
            "title": "Example",
            "developer": "Example Ltd.",
            "description": "An Android app.",
            "screenshots": ["https://play-lh/a", "https://play-lh/b"],
        }

    monkeypatch.setattr(stores, "play_app", fake_app)
    session = FakeSession(
        {
            "https://play-lh/a": FakeResponse(content=PNG_BYTES),
            "https://play-lh/b": FakeResponse(content=JPEG_BYTES),
        }
    )
    target = classify("https://play.google.com/store/apps/details?id=com.example.app&hl=de")
    export = export_listing(target, tmp_path, session=session)

    assert export.success
    assert seen["call"] == ("com.example.app", {"lang": "en", "country": "us"})
    assert [path.suffix for path in export.files] == [".png", ".jpg"]
    assert export.info["platform"] == "Google Play"
    assert export.info["developer"] == "Example Ltd."
    assert len(list(tmp_path.glob("info_*.json"))) == 1


def test_listing_export_reruns_keep_earlier_files(tmp_path, monkeypatch):
    monkeypatch.setattr(utils, "unix_timestamp", lambda: 1700000000)
    record = {"trackName": "Example", "screenshotUrls": ["https://cdn/s1.jpg"]}
    session = FakeSession(
        {
            ITUNES_LOOKUP_URL: FakeResponse(json_data={"results": [record]}),
            "https://cdn/s1.jpg": FakeResponse(content=JPEG_BYTES),
        }
    )
    target = classify("https://apps.apple.com/us/app/example/id123456")
    first = export_listing(target, tmp_path, session=session)
    second = export_listing(target, tmp_path, session=session)

    assert first.success and second.success
    assert first.files[0] != second.files[0]
    assert first.files[0].exists() and second.files[0].exists()
    assert len(list(tmp_path.glob("screenshot_01_*.jpg"))) == 2
    assert len(list(tmp_path.glob("info_*.json"))) == 2


def test_listing_export_failures(tmp_path, monkeypatch):
    def missing(app_id, **kwargs):
        raise NotFoundError("App not found(404).")

    monkeypatch.setattr(stores, "play_app", missing)
    android = classify("https://play.google.com/store/apps/details?id=com.example")
    assert export_listing(android, tmp_path, session=FakeSession()).error == "App com.example not found"

    ios = classify("https://apps.apple.com/us/app/example/id9")
    empty = FakeSession({ITUNES_LOOKUP_URL: FakeResponse(json_data={"results": []})})
    assert export_listing(ios, tmp_path, session=empty).error == "App 9 not found"
    assert list(tmp_path.iterdir()) == []
