"""Shared fixtures: API config and sample payloads shaped like the Thoth API."""

import copy
from typing import Any

import pytest
import respx

from thoth_mcp_server import ApiConfig

BASE_URL = "https://thoth.test"
API_KEY = "test-api-key"
POST_ID = "123e4567-e89b-12d3-a456-426614174000"


def ok(data: Any) -> dict:
    return {"success": True, "data": data}


@pytest.fixture(autouse=True)
def _reset_global_respx_router():
    # Routes added via module-level ``respx.get(...)`` inside a
    # ``@respx.mock(...)`` router land on the global router and would
    # otherwise leak into later tests.
    yield
    respx.mock.clear()


def fail(error: str, code: str | None = None) -> dict:
    body = {"success": False, "error": error}
    if code:
        body["code"] = code
    return body


@pytest.fixture
def api_config() -> ApiConfig:
    return ApiConfig(api_key=API_KEY, base_url=BASE_URL)


@pytest.fixture
def make_post():
    def _make(**overrides: Any) -> dict:
        post = {
            "postId": POST_ID,
            "originalContent": "Test post content",
            "platformContents": {
                "twitter": {
                    "content": "Twitter version of the content",
                    "hashtags": ["#test", "#twitter"],
                },
                "linkedin": {
                    "content": "LinkedIn version of the content",
                    "hashtags": ["#professional", "#linkedin"],
                },
            },
            "status": "draft",
            "createdAt": "2024-01-01T00:00:00.000Z",
            "updatedAt": "2024-01-01T00:00:00.000Z",
        }
        post.update(overrides)
        return copy.deepcopy(post)

    return _make


@pytest.fixture
def make_posts_page():
    def _make(posts: list | None = None, page: int = 1, limit: int = 10, total: int | None = None) -> dict:
        if posts is None:
            posts = [
                {"id": "1", "title": "Post 1", "status": "draft", "createdAt": "2024-01-01T00:00:00.000Z"},
                {"id": "2", "title": "Post 2", "status": "draft", "createdAt": "2024-01-01T00:00:00.000Z"},
            ]
        return {
            "posts": posts,
            "pagination": {"page": page, "limit": limit, "total": len(posts) if total is None else total},
        }

    return _make


@pytest.fixture
def make_brand_style():
    def _make(**overrides: Any) -> dict:
        style = {
            "id": POST_ID,
            "name": "Test Brand Style",
            "contentMode": "balanced",
            "colors": {"primary1": "#FF5733", "primary2": "#C70039", "background1": "#FFFFFF"},
            "tone": {
                "voice": "professional",
                "style": "informative",
                "purpose": "educate",
                "audience": "developers",
                "keywords": ["tech", "innovation"],
            },
            "imageryStyle": {"tone": "modern", "image_type": "photography", "subject_focus": "product"},
            "isDefault": "false",
            "createdAt": "2024-01-01T00:00:00.000Z",
            "updatedAt": "2024-01-01T00:00:00.000Z",
        }
        style.update(overrides)
        return {k: v for k, v in style.items() if v is not None}

    return _make
