"""Tests for platforms/base.py: PR refs, content decoding, capabilities."""

from __future__ import annotations

import base64

import pytest


@pytest.mark.unit
class TestExtractRefs:
    def test_github(self):
        from rulesync.platforms.base import extract_refs_from_pull_request

        refs = extract_refs_from_pull_request({"head": {"ref": "feat"}, "base": {"ref": "main"}})
        assert (refs.head, refs.base) == ("feat", "main")

    def test_bitbucket_cloud(self):
        from rulesync.platforms.base import extract_refs_from_pull_request

        refs = extract_refs_from_pull_request(
            {
                "source": {"branch": {"name": "feat"}},
                "destination": {"branch": {"name": "develop"}},
            }
        )
        assert (refs.head, refs.base) == ("feat", "develop")

    def test_azure_strips_refs_heads(self):
        from rulesync.platforms.base import extract_refs_from_pull_request

        refs = extract_refs_from_pull_request(
            {"sourceRefName": "refs/heads/feat/x", "targetRefName": "refs/heads/main"}
        )
        assert (refs.head, refs.base) == ("feat/x", "main")

    def test_gitlab(self):
        from rulesync.platforms.base import extract_refs_from_pull_request

        refs = extract_refs_from_pull_request({"source_branch": "a", "target_branch": "b"})
        assert (refs.head, refs.base) == ("a", "b")

    def test_bitbucket_server(self):
        from rulesync.platforms.base import extract_refs_from_pull_request

        refs = extract_refs_from_pull_request(
            {"fromRef": {"displayId": "a"}, "toRef": {"displayId": "b"}}
        )
        assert (refs.head, refs.base) == ("a", "b")

    def test_missing_payload(self):
        from rulesync.platforms.base import extract_refs_from_pull_request

        refs = extract_refs_from_pull_request(None)
        assert refs.head is None and refs.base is None


@pytest.mark.unit
class TestDecodeContent:
    def test_plain_content(self):
        from rulesync.platforms.base import decode_content
        from rulesync.platforms.models import FileContent

        assert decode_content(FileContent(content="hello")) == "hello"

    def test_base64_content(self):
        from rulesync.platforms.base import decode_content
        from rulesync.platforms.models import FileContent

        encoded = base64.b64encode("règle @kody-sync".encode()).decode()
        assert decode_content(FileContent(content=encoded, encoding="base64")) == "règle @kody-sync"

    def test_base64_with_line_breaks(self):
        from rulesync.platforms.base import decode_content
        from rulesync.platforms.models import FileContent

        encoded = base64.b64encode(b"x" * 100).decode()
        wrapped = "\n".join(encoded[i : i + 60] for i in range(0, len(encoded), 60))
        assert decode_content(FileContent(content=wrapped, encoding="BASE64")) == "x" * 100

    def test_empty(self):
        from rulesync.platforms.base import decode_content
        from rulesync.platforms.models import FileContent

        assert decode_content(None) is None
        assert decode_content(FileContent(content="")) is None


@pytest.mark.unit
class TestSupports:
    def test_capability_check(self):
        from rulesync.platforms.base import supports
        from rulesync.platforms.models import PlatformCapability

        class ReadOnly:
            capabilities = frozenset({PlatformCapability.READ_FILE})

        assert supports(ReadOnly(), PlatformCapability.READ_FILE)
        assert not supports(ReadOnly(), PlatformCapability.PULL_REQUESTS)
        assert not supports(object(), PlatformCapability.READ_FILE)
