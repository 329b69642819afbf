"""Tests for the client persona table."""

import pytest

from yinfo.core.clients import all_profiles, get_profile, ordered_profiles
from yinfo.models.enums import Capability, ClientType


class TestProfileTable:
    def test_every_client_type_has_a_profile(self):
        assert {p.client_type for p in all_profiles()} == set(ClientType)

    def test_priority_order(self):
        priorities = [p.priority for p in all_profiles()]
        assert priorities == sorted(priorities)
        assert len(set(priorities)) == len(priorities)

    def test_defaults_in_order(self):
        names = [p.name for p in ordered_profiles()]
        assert names == ["web", "ios", "android", "android_vr", "tv_embedded"]

    def test_web_requires_player(self):
        web = get_profile("web")
        assert web.requires_player
        assert web.has(Capability.SEARCH)

    def test_native_clients_return_plain_urls(self):
        for name in ("ios", "android", "android_vr"):
            profile = get_profile(name)
            assert profile.has(Capability.PLAIN_URLS)
            assert not profile.requires_player

    def test_search_capable(self):
        names = {p.name for p in all_profiles() if p.has(Capability.SEARCH)}
        assert names == {"web", "mweb"}

    def test_profiles_are_frozen(self):
        with pytest.raises(ValueError):
            get_profile("web").priority = 99


class TestLookup:
    def test_by_enum(self):
        assert get_profile(ClientType.ANDROID).name == "android"

    def test_case_insensitive(self):
        assert get_profile(" TV_Embedded ").client_type == ClientType.TV_EMBEDDED

    def test_unknown(self):
        with pytest.raises(ValueError, match="Unknown client"):
            get_profile("netscape")

    def test_explicit_order(self):
        names = [p.name for p in ordered_profiles(["android", "web", "android"])]
        assert names == ["android", "web"]


class TestRequestShape:
    def test_context(self):
        context = get_profile("android").context("de", "DE")
        client = context["client"]
        assert client["clientName"] == "ANDROID"
        assert client["hl"] == "de"
        assert client["gl"] == "DE"
        assert client["androidSdkVersion"] == 30
        assert "thirdParty" not in context

    def test_embedded_context(self):
        context = get_profile("tv_embedded").context()
        assert context["client"]["clientScreen"] == "EMBED"
        assert context["thirdParty"]["embedUrl"].startswith("https://www.youtube.com")

    def test_ios_device_model(self):
        assert get_profile("ios").context()["client"]["deviceModel"] == "iPhone16,2"

    def test_headers(self):
        profile = get_profile("mweb")
        headers = profile.headers()
        assert headers["X-YouTube-Client-Name"] == "2"
        assert headers["X-YouTube-Client-Version"] == profile.client_version
        assert headers["Origin"] == "https://m.youtube.com"
        assert headers["Content-Type"] == "application/json"
