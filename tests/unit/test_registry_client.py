import io
from urllib.error import HTTPError, URLError

import pytest
from devbox.errors import ResolutionError
from devbox.REGISTRY import registry_client
from devbox.REGISTRY.image_reference import ImageReference
from devbox.REGISTRY.registry_client import RegistryClient


class FakeResponse(io.BytesIO):
    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()


def fake_urlopen(manifest_status=200, requests=None):
    def urlopen(request, timeout=None):
        url = request.full_url
        if requests is not None:
            requests.append(request)
        if url.startswith("https://auth.docker.io/token"):
            return FakeResponse(b'{"token": "abc"}')
        if manifest_status == 200:
            return FakeResponse(b"")
        raise HTTPError(url, manifest_status, "error", {}, None)
    return urlopen


def test_existing_image(monkeypatch):
    requests = []
    monkeypatch.setattr(registry_client, "urlopen", fake_urlopen(requests=requests))
    assert RegistryClient().image_exists(ImageReference.parse("rust:1.60"))

    manifest = requests[-1]
    assert manifest.get_method() == "HEAD"
    assert manifest.full_url == "https://registry-1.docker.io/v2/library/rust/manifests/1.60"
    assert manifest.get_header("Authorization") == "Bearer abc"


def test_missing_image(monkeypatch):
    monkeypatch.setattr(registry_client, "urlopen", fake_urlopen(manifest_status=404))
    client = RegistryClient()
    ref = ImageReference.parse("rust:0.0.0-nope")
    assert not client.image_exists(ref)
    with pytest.raises(ResolutionError, match="does not exist"):
        client.require_image(ref)


def test_registry_refusal(monkeypatch):
    monkeypatch.setattr(registry_client, "urlopen", fake_urlopen(manifest_status=500))
    with pytest.raises(ResolutionError, match="answered 500"):
        RegistryClient().image_exists(ImageReference.parse("rust:1.60"))


def test_unreachable_registry(monkeypatch):
    def urlopen(request, timeout=None):
        raise URLError("Name or service not known")

    monkeypatch.setattr(registry_client, "urlopen", urlopen)
    with pytest.raises(ResolutionError, match="cannot reach registry"):
        RegistryClient().image_exists(ImageReference.parse("ghcr.io/org/tool:1.0"))


def test_manifest_url_prefers_digest():
    digest = "sha256:" + "a" * 64
    ref = ImageReference.parse(f"rust:1.60@{digest}")
    assert RegistryClient().manifest_url(ref).endswith(f"/manifests/{digest}")
