import re

import pytest

from snapfolio.errors import InvalidUrl
from snapfolio.models import StorePlatform, TargetKind
from snapfolio.targets import classify, design_file_key, store_app_id, validate_urls

SAFE_ID = re.compile(r"^[A-Za-z0-9_]+$")

SAMPLE_URLS = [
    "https://www.example.com/products/",
    "http://example.com",
    "https://docs.python.org/3/library/asyncio.html",
    "https://my-site.co.uk/about?ref=1#team",
    "http://127.0.0.1:8000/",
    "https://localhost/dashboard",
    "https://www.figma.com/file/AbC123xyz/Landing-Page?node-id=0%3A1",
    "https://www.figma.com/proto/KEY999",
    "https://play.google.com/store/apps/details?id=com.example.app&hl=en",
    "https://apps.apple.com/us/app/example/id1234567890",
    "https://apps.apple.com/us/app/example",
    "https://bücher.example/",
]


def test_web_url_example():
    target = classify("https://www.example.com/products/")
    assert target.kind is TargetKind.WEB
    assert target.project_id == "example"
    assert target.depth == 0


@pytest.mark.parametrize("url", SAMPLE_URLS)
def test_classification_is_deterministic(url):
    first = classify(url)
    second = classify(url)
    assert (first.kind, first.project_id) == (second.kind, second.project_id)


@pytest.mark.parametrize("url", SAMPLE_URLS)
def test_project_id_is_filesystem_safe(url):
    project_id = classify(url).project_id
    assert project_id
    assert SAFE_ID.match(project_id)


def test_hyphens_and_ip_hosts_are_sanitized():
    assert classify("https://my-site.co.uk/about").project_id == "my_site"
    assert classify("http://127.0.0.1:8000/").project_id == "127_0_0_1"


def test_design_urls():
    target = classify("https://www.figma.com/file/AbC123xyz/Landing-Page?node-id=0%3A1")
    assert target.kind is TargetKind.DESIGN
    assert target.project_id == "Landing_Page"
    assert classify("https://figma.com/proto/KEY999").project_id == "figma_KEY999"
    assert classify("https://www.figma.com/community").project_id == "figma_project"
    assert design_file_key("https://www.figma.com/design/Zz9/x") == "Zz9"


def test_design_domains_take_priority_over_web():
    assert classify("https://www.figjam.com/board/abc/Retro").kind is TargetKind.DESIGN


def test_store_urls():
    android = classify("https://play.google.com/store/apps/details?id=com.example.app&hl=en")
    assert android.kind is TargetKind.STORE
    assert android.platform is StorePlatform.ANDROID
    assert android.project_id == "playstore_com_example_app"

    ios = classify("https://apps.apple.com/us/app/example/id1234567890")
    assert ios.platform is StorePlatform.IOS
    assert ios.project_id == "appstore_1234567890"
    assert store_app_id(ios.url, StorePlatform.IOS) == "1234567890"

    assert classify("https://apps.apple.com/us/app/example").project_id == "appstore_app"


@pytest.mark.parametrize(
    "url",
    ["", "   ", "not a url", "ftp://example.com/file", "mailto:someone@example.com", "https://", "//example.com"],
)
def test_invalid_urls_raise(url):
    with pytest.raises(InvalidUrl):
        classify(url)


def test_validate_urls_splits_and_dedupes():
    targets, invalid = validate_urls(
        ["https://example.com", "ftp://nope", "https://example.com", "https://other.org/x"]
    )
    assert [t.url for t in targets] == ["https://example.com", "https://other.org/x"]
    assert invalid == [{"url": "ftp://nope", "reason": "Invalid protocol", "error": "InvalidUrl"}]


def test_child_targets_inherit_classification():
    seed = classify("https://www.example.com/")
    child = seed.child("https://www.example.com/about")
    assert child.depth == 1
    assert child.project_id == seed.project_id
    assert child.kind is seed.kind
