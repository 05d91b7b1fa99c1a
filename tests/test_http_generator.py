"""Tests for HTTPMediaGenerator."""

import pytest
from unittest.mock import Mock, patch
import requests
from errors import GenerationFailure
from generation.http_generator import HTTPMediaGenerator
from schemas.context import Capability


def mock_response(status_code=200, payload=None):
    response = Mock()
    response.status_code = status_code
    response.json.return_value = payload if payload is not None else {}
    response.text = str(payload)
    return response


class TestHTTPMediaGenerator:
    """Test media generation over HTTP."""

    def setup_method(self):
        """Set up test fixtures."""
        self.base_url = "https://media.example.com/v1"
        self.generator = HTTPMediaGenerator(base_url=self.base_url, api_key="secret", timeout=5)

    def test_initialization_with_trailing_slash(self):
        """Test that trailing slash is removed from base URL."""
        generator = HTTPMediaGenerator(base_url="https://media.example.com/v1/")
        assert generator.base_url == self.base_url

    @pytest.mark.asyncio
    @patch('requests.post')
    async def test_image_success(self, mock_post):
        """Test successful image generation."""
        mock_post.return_value = mock_response(payload={"url": "https://cdn.example.com/cat.png"})

        artifact = await self.generator.generate(
            Capability.IMAGE, "a cat", "flux-dev", {"aspect_ratio": "1:1", "style": None}
        )

        assert artifact.url == "https://cdn.example.com/cat.png"
        assert artifact.media_type == "image"

        mock_post.assert_called_once()
        call_args = mock_post.call_args
        assert call_args[0][0] == f"{self.base_url}/images/generate"
        assert call_args[1]["json"] == {"model": "flux-dev", "prompt": "a cat", "aspect_ratio": "1:1"}
        assert call_args[1]["headers"]["Authorization"] == "Bearer secret"
        assert call_args[1]["timeout"] == 5

    @pytest.mark.asyncio
    @patch('requests.post')
    async def test_response_formats(self, mock_post):
        """Test the URL is found in each supported response shape."""
        payloads = [
            {"data": {"url": "https://cdn.example.com/a.mp3"}},
            {"data": [{"url": "https://cdn.example.com/b.mp3"}]},
            {"output": ["https://cdn.example.com/c.mp3"]},
        ]
        for payload in payloads:
            mock_post.return_value = mock_response(payload=payload)
            artifact = await self.generator.generate(Capability.TTS, "hello", "aura-2-thalia-en")
            assert artifact.url.startswith("https://cdn.example.com/")
            assert artifact.media_type == "audio"

    @pytest.mark.asyncio
    @patch('requests.post')
    async def test_endpoints_per_capability(self, mock_post):
        """Test each capability posts to its own endpoint."""
        mock_post.return_value = mock_response(payload={"url": "https://cdn.example.com/x"})

        await self.generator.generate(Capability.VIDEO, "sunset", "veo3_fast", {"duration": 8})
        await self.generator.generate(Capability.MUSIC, "lofi beat", "suno-v4")

        urls = [call[0][0] for call in mock_post.call_args_list]
        assert urls == [f"{self.base_url}/videos/generate", f"{self.base_url}/music/generate"]

    @pytest.mark.asyncio
    @patch('requests.post')
    async def test_auth_error(self, mock_post):
        """Test authentication failures raise GenerationFailure."""
        mock_post.return_value = mock_response(status_code=401)

        with pytest.raises(GenerationFailure) as exc_info:
            await self.generator.generate(Capability.IMAGE, "a cat", "flux-dev")
        assert "authentication" in str(exc_info.value)
        assert exc_info.value.capability == "image"

    @pytest.mark.asyncio
    @patch('requests.post')
    async def test_server_error(self, mock_post):
        """Test non-200 responses raise GenerationFailure."""
        mock_post.return_value = mock_response(status_code=500, payload={"error": "boom"})

        with pytest.raises(GenerationFailure):
            await self.generator.generate(Capability.IMAGE, "a cat", "flux-dev")

    @pytest.mark.asyncio
    @patch('requests.post')
    async def test_network_error(self, mock_post):
        """Test connection errors raise GenerationFailure."""
        mock_post.side_effect = requests.ConnectionError("Network error")

        with pytest.raises(GenerationFailure) as exc_info:
            await self.generator.generate(Capability.IMAGE, "a cat", "flux-dev")
        assert exc_info.value.model == "flux-dev"

    @pytest.mark.asyncio
    @patch('requests.post')
    async def test_missing_url(self, mock_post):
        """Test a response without a media URL is a failure."""
        mock_post.return_value = mock_response(payload={"status": "queued"})

        with pytest.raises(GenerationFailure):
            await self.generator.generate(Capability.IMAGE, "a cat", "flux-dev")

    @pytest.mark.asyncio
    async def test_unsupported_capability(self):
        """Test capabilities without an endpoint are rejected."""
        with pytest.raises(GenerationFailure):
            await self.generator.generate(Capability.PPT, "deck", "some-model")
