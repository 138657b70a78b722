#!/usr/bin/env python3
"""
Thoth MCP Server
Connects MCP clients (Claude Desktop, IDE agents, ...) to the Thoth content API
so an LLM can create, read, update and list posts and inspect brand styles.

Setup:
  1. pip install -e .
  2. Get your API key from your Thoth account settings
  3. Set THOTH_API_KEY (env or .env file) or pass --api-key
  4. Run `thoth-mcp` (stdio) or `thoth-mcp --remote` (streamable HTTP)
"""

import argparse
import asyncio
import logging
import math
import os
import re
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Literal, Mapping, Optional, Sequence, Type

import httpx
import uvicorn
from dotenv import load_dotenv
from mcp import types
from mcp.server.lowlevel import Server
from mcp.server.lowlevel.helper_types import ReadResourceContents
from mcp.server.stdio import stdio_server
from mcp.server.streamable_http_manager import StreamableHTTPSessionManager
from pydantic import AnyUrl, BaseModel, ConfigDict, Field, ValidationError, field_validator
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

logger = logging.getLogger(__name__)

# ─── Configuration ───────────────────────────────────────────────────────────

SERVER_NAME = "thoth-mcp"
SERVER_VERSION = "1.0.0"

DEFAULT_BASE_URL = "https://www.usethoth.com"
DEFAULT_PORT = 3001
DEFAULT_REMOTE_PORT = 8081

# Post generation runs an LLM upstream; no client-side timeout.
REQUEST_TIMEOUT: Optional[float] = None

HELP_EPILOG = """\
Environment Variables:
  THOTH_API_KEY           Thoth API key
  THOTH_BASE_URL          Base URL for Thoth API
  PORT                    Port for remote server mode
  LOG_LEVEL               Logging level (default: INFO)

Examples:
  # Run with stdio transport (local)
  thoth-mcp --api-key YOUR_API_KEY

  # Run with custom base URL
  thoth-mcp --api-key YOUR_API_KEY --base-url https://app.usethoth.com

  # Run as remote HTTP server (clients pass ?apiKey=... on /mcp)
  thoth-mcp --remote --port 8081

MCP Client Configuration:
  {
    "mcpServers": {
      "thoth": {
        "command": "thoth-mcp",
        "args": ["--api-key", "YOUR_API_KEY"]
      }
    }
  }
"""


class ThothError(Exception):
    """Base class for errors raised inside a tool or resource pipeline."""


class ConfigurationError(ThothError):
    pass


class ToolInputError(ThothError):
    """Tool arguments failed validation. ``errors`` holds (field path, message) pairs."""

    def __init__(self, errors: List[tuple]):
        self.errors = errors
        detail = "; ".join(f"{path}: {msg}" if path else msg for path, msg in errors)
        super().__init__(f"Invalid arguments: {detail}")


class NotFoundError(ThothError):
    pass


class ApiError(ThothError):
    def __init__(self, message: str, status: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.code = code


class UnknownToolError(ThothError):
    pass


class ResourceError(ThothError):
    pass


class ApiConfig(BaseModel):
    """Credentials and endpoint used for one server instance's API calls."""
    model_config = ConfigDict(frozen=True)

    api_key: str = Field(repr=False)
    base_url: str = DEFAULT_BASE_URL


class ServerConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    api_key: str = Field(default="", repr=False)
    base_url: str = DEFAULT_BASE_URL
    port: int = DEFAULT_PORT
    remote: bool = False

    def api_config(self) -> ApiConfig:
        return ApiConfig(api_key=self.api_key, base_url=self.base_url)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="thoth-mcp",
        description="Thoth MCP Server - Model Context Protocol server for Thoth content creation",
        epilog=HELP_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-k", "--api-key", help="Thoth API key (required unless --remote)")
    parser.add_argument("-u", "--base-url", help=f"Base URL for Thoth API (default: {DEFAULT_BASE_URL})")
    parser.add_argument(
        "-p", "--port", type=int,
        help=f"Port for remote server mode (default: {DEFAULT_PORT}, {DEFAULT_REMOTE_PORT} with --remote)",
    )
    parser.add_argument("-r", "--remote", action="store_true", help="Run as remote HTTP server instead of stdio")
    return parser


def resolve_startup_config(argv: Sequence[str], env: Mapping[str, str]) -> ServerConfig:
    """Build the process-wide config: CLI flag > environment variable > default.

    Raises:
        ConfigurationError: no API key resolved and not running in remote mode,
            or PORT is not an integer.
    """
    args = build_arg_parser().parse_args(list(argv))

    port = DEFAULT_REMOTE_PORT if args.remote else DEFAULT_PORT
    if env.get("PORT"):
        try:
            port = int(env["PORT"])
        except ValueError:
            raise ConfigurationError(f"PORT must be an integer, got {env['PORT']!r}") from None
    if args.port is not None:
        port = args.port

    api_key = args.api_key or env.get("THOTH_API_KEY", "")
    base_url = args.base_url or env.get("THOTH_BASE_URL") or DEFAULT_BASE_URL

    # Remote mode receives the key per request.
    if not api_key and not args.remote:
        raise ConfigurationError(
            "API key is required. Provide it via --api-key flag or THOTH_API_KEY environment variable"
        )

    return ServerConfig(api_key=api_key, base_url=base_url.rstrip("/"), port=port, remote=args.remote)


def resolve_request_config(query: Mapping[str, str], base: ServerConfig) -> ApiConfig:
    """Effective API config for one HTTP request: query parameter > startup value.

    A request without ``apiKey`` uses the key given at startup, if any.

    Raises:
        ConfigurationError: neither the query nor the startup config has a key
            (the HTTP layer answers 400).
    """
    api_key = query.get("apiKey") or base.api_key
    if not api_key:
        raise ConfigurationError("Missing apiKey query parameter")
    base_url = query.get("baseUrl") or base.base_url
    return ApiConfig(api_key=api_key, base_url=base_url.rstrip("/"))


# ─── HTTP Client ─────────────────────────────────────────────────────────────


def _get_headers(api_key: str) -> Dict[str, str]:
    """Return authentication headers for the Thoth API."""
    return {
        "Content-Type": "application/json",
        "X-API-Key": api_key,
    }


class ApiEnvelope(BaseModel):
    """The ``{success, data | error, code}`` wrapper every Thoth response uses."""
    model_config = ConfigDict(extra="ignore")

    success: bool = False
    data: Any = None
    error: Any = None
    code: Any = None

    @property
    def error_message(self) -> str:
        return str(self.error) if self.error else "Unknown error"


def _parse_envelope(response: httpx.Response) -> Optional[ApiEnvelope]:
    try:
        return ApiEnvelope.model_validate(response.json())
    except (ValueError, ValidationError):
        return None


async def _api_request(
    method: str,
    path: str,
    config: ApiConfig,
    *,
    params: Optional[Dict[str, Any]] = None,
    json: Optional[Dict[str, Any]] = None,
    not_found: Optional[str] = None,
) -> Any:
    """Make an authenticated request to the Thoth API and unwrap the envelope.

    Transport errors (connection refused, DNS, ...) propagate unchanged.

    Raises:
        NotFoundError: 404 and ``not_found`` was given.
        ApiError: any other non-2xx status, or a 2xx envelope with success=false.
    """
    logger.debug("%s %s", method, path)
    async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
        response = await client.request(
            method,
            f"{config.base_url}{path}",
            headers=_get_headers(config.api_key),
            params=params,
            json=json,
        )

    if not response.is_success:
        if response.status_code == 404 and not_found:
            raise NotFoundError(not_found)
        envelope = _parse_envelope(response)
        message = envelope.error_message if envelope else "Unknown error"
        raise ApiError(
            f"API request failed: {response.status_code} - {message}",
            status=response.status_code,
            code=envelope.code if envelope else None,
        )

    envelope = _parse_envelope(response)
    if envelope is None:
        raise ApiError("API error: Unknown error", status=response.status_code)
    if not envelope.success:
        raise ApiError(f"API error: {envelope.error_message}", status=response.status_code, code=envelope.code)
    return envelope.data


def _handle_error(e: Exception) -> str:
    """Consistent error text for tool and resource responses."""
    return f"Error: {str(e) or 'Unknown error occurred'}"


# ─── Formatting Helpers ──────────────────────────────────────────────────────


def _iso_to_str(value: Optional[str]) -> str:
    """Convert an ISO-8601 timestamp to a readable UTC string."""
    if not value:
        return "N/A"
    try:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return str(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def _capitalize(key: str) -> str:
    return key[:1].upper() + key[1:]


def _field_lines(group: Dict[str, Any], fields: Sequence[tuple]) -> List[str]:
    """Bullet lines for the present fields of a nested group; lists are comma-joined."""
    lines = []
    for key, label in fields:
        value = group.get(key)
        if isinstance(value, list):
            if value:
                lines.append(f"- **{label}:** {', '.join(str(v) for v in value)}")
        elif value:
            lines.append(f"- **{label}:** {value}")
    return lines


def _format_post(
    post: Dict[str, Any],
    heading: str,
    meta: List[str],
    *,
    published: bool = False,
    social_post_id: bool = False,
) -> str:
    """Shared body for the created/details/updated post reports."""
    lines = [f"# {heading}", ""] + meta + [
        "",
        "## Original Content",
        post.get("originalContent", ""),
        "",
        "## Platform-Specific Content",
    ]

    for platform, content in (post.get("platformContents") or {}).items():
        lines.extend(["", f"### {_capitalize(platform)}", content.get("content", "")])
        hashtags = content.get("hashtags")
        if hashtags:
            lines.extend(["", f"**Hashtags:** {' '.join(hashtags)}"])

    images = post.get("images")
    if images:
        lines.extend(["", "## Generated Images"])
        for image in images:
            lines.append(f"- ![Image]({image.get('url', '')})")
            lines.append(f"  - **Style:** {image.get('style', '')}")
            lines.append(f"  - **Prompt:** {image.get('prompt', '')}")

    if post.get("scheduledAt"):
        lines.extend(["", f"**Scheduled for:** {_iso_to_str(post['scheduledAt'])}"])
    if published and post.get("publishedAt"):
        lines.extend(["", f"**Published at:** {_iso_to_str(post['publishedAt'])}"])
    if social_post_id and post.get("socialPostId"):
        lines.extend(["", f"**Social Post ID:** {post['socialPostId']}"])

    return "\n".join(lines)


def format_create_post(post: Dict[str, Any]) -> str:
    return _format_post(
        post,
        "Post Created Successfully",
        [
            f"**Status:** {post.get('status', '?')}",
            f"**Created:** {_iso_to_str(post.get('createdAt'))}",
        ],
    )


def format_get_post(post: Dict[str, Any]) -> str:
    return _format_post(
        post,
        "Post Details",
        [
            f"**Post ID:** {post.get('postId', '?')}",
            f"**Status:** {post.get('status', '?')}",
            f"**Created:** {_iso_to_str(post.get('createdAt'))}",
            f"**Updated:** {_iso_to_str(post.get('updatedAt'))}",
        ],
        published=True,
        social_post_id=True,
    )


def format_update_post(post: Dict[str, Any]) -> str:
    return _format_post(
        post,
        "Post Updated Successfully",
        [
            f"**Status:** {post.get('status', '?')}",
            f"**Updated:** {_iso_to_str(post.get('updatedAt'))}",
        ],
        published=True,
    )


def format_post_preview(post: Dict[str, Any], platform: str) -> Optional[str]:
    """Render one platform's content as a standalone preview.

    Returns None when the post has no content for ``platform``.
    """
    content = (post.get("platformContents") or {}).get(platform)
    if content is None:
        return None

    lines = [f"# {_capitalize(platform)} Preview", "", content.get("content", "")]

    hashtags = content.get("hashtags")
    if hashtags:
        lines.extend(["", " ".join(hashtags)])

    images = post.get("images")
    if images:
        lines.extend(["", "## Images"])
        for image in images:
            lines.append(f"![Image]({image.get('url', '')})")

    return "\n".join(lines)


def format_get_all_posts(response: Dict[str, Any]) -> str:
    posts = response.get("posts") or []
    pagination = response.get("pagination") or {}
    page = pagination.get("page", 1)
    limit = pagination.get("limit") or 1
    total = pagination.get("total", 0)

    lines = [
        f"# Posts (Page {page} of {math.ceil(total / limit)})",
        "",
        f"**Total Posts:** {total}",
        f"**Showing:** {len(posts)} posts",
        "",
    ]

    if not posts:
        lines.append("No posts found.")
        return "\n".join(lines)

    lines.append("## Posts")
    for post in posts:
        lines.append("")
        lines.append(f"### {post.get('title') or 'Untitled'}")
        lines.append(f"- **Status:** {post.get('status', '?')}")
        lines.append(f"- **Created:** {_iso_to_str(post.get('createdAt'))}")
        if post.get("updatedAt"):
            lines.append(f"- **Updated:** {_iso_to_str(post['updatedAt'])}")

    return "\n".join(lines)


def format_get_brand_styles(brand_styles: List[Dict[str, Any]]) -> str:
    lines = ["# Brand Styles", "", f"**Total:** {len(brand_styles)}", ""]

    if not brand_styles:
        lines.append("No brand styles found.")
        return "\n".join(lines)

    lines.append("## Your Brand Styles")
    for style in brand_styles:
        lines.append("")
        lines.append(f"### {style.get('name', 'Unnamed')}")
        lines.append(f"- **ID:** {style.get('id', '?')}")
        lines.append(f"- **Content Mode:** {style.get('contentMode', '?')}")
        # isDefault is a string on the wire ("true"/"false")
        if style.get("isDefault") == "true":
            lines.append("- **Default:** Yes")

        tone = style.get("tone")
        if isinstance(tone, dict):
            lines.extend(_field_lines(tone, [("purpose", "Purpose"), ("audience", "Target Audience")]))
            voice_style = [v for v in (tone.get("voice"), tone.get("style")) if v]
            if voice_style:
                lines.append(f"- **Voice & Style:** {', '.join(voice_style)}")

        imagery = style.get("imageryStyle")
        if isinstance(imagery, dict):
            visual = [v for v in (imagery.get("image_type"), imagery.get("tone")) if v]
            if visual:
                lines.append(f"- **Visual Style:** {', '.join(visual)}")

        lines.append(f"- **Created:** {_iso_to_str(style.get('createdAt'))}")
        if style.get("updatedAt"):
            lines.append(f"- **Updated:** {_iso_to_str(style['updatedAt'])}")

    return "\n".join(lines)


def format_get_brand_style(brand_style: Dict[str, Any]) -> str:
    lines = [
        f"# Brand Style: {brand_style.get('name', 'Unnamed')}",
        "",
        f"**Content Mode:** {brand_style.get('contentMode', '?')}",
    ]
    if brand_style.get("isDefault") == "true":
        lines.append("**Default Style:** Yes")

    lines.append(f"**Created:** {_iso_to_str(brand_style.get('createdAt'))}")
    if brand_style.get("updatedAt"):
        lines.append(f"**Updated:** {_iso_to_str(brand_style['updatedAt'])}")

    identity = brand_style.get("brandIdentity")
    if isinstance(identity, dict):
        lines.extend(["", "## Brand Identity"])
        lines.extend(_field_lines(identity, [
            ("brand_name", "Brand Name"),
            ("tagline", "Tagline"),
            ("primary_colors", "Primary Colors"),
            ("secondary_colors", "Secondary Colors"),
        ]))

    colors = brand_style.get("colors")
    if isinstance(colors, dict):
        lines.extend(["", "## Brand Colors"])
        lines.extend(_field_lines(colors, [
            ("primary1", "Primary 1"),
            ("primary2", "Primary 2"),
            ("primary3", "Primary 3"),
            ("secondary1", "Secondary 1"),
            ("secondary2", "Secondary 2"),
            ("background1", "Background 1"),
            ("background2", "Background 2"),
        ]))

    tone = brand_style.get("tone")
    if isinstance(tone, dict):
        lines.extend(["", "## Brand Tone"])
        lines.extend(_field_lines(tone, [
            ("voice", "Voice"),
            ("style", "Style"),
            ("purpose", "Purpose"),
            ("audience", "Target Audience"),
            ("syntax", "Syntax"),
            ("emotion", "Emotions"),
            ("keywords", "Keywords"),
            ("language", "Language Style"),
            ("character", "Brand Character"),
        ]))

    imagery = brand_style.get("imageryStyle")
    if isinstance(imagery, str) and imagery:
        # Older brand styles store imagery as free-form text.
        lines.extend(["", "## Imagery Style", imagery])
    elif isinstance(imagery, dict):
        lines.extend(["", "## Imagery Style"])
        lines.extend(_field_lines(imagery, [
            ("tone", "Tone"),
            ("image_type", "Image Type"),
            ("subject_focus", "Subject Focus"),
            ("quality_assessment", "Quality"),
        ]))
        subgroups = [
            ("visual_mood", "Visual Mood", [
                ("energy_level", "Energy Level"),
                ("time_preference", "Time Preference"),
                ("emotional_keywords", "Emotional Keywords"),
            ]),
            ("artistic_style", "Artistic Style", [
                ("texture", "Texture"),
                ("detail_level", "Detail Level"),
            ]),
            ("brand_visual_elements", "Brand Visual Elements", [
                ("must_include_elements", "Must Include"),
                ("recurring_motifs", "Recurring Motifs"),
                ("avoid_elements", "Avoid"),
            ]),
        ]
        for key, title, fields in subgroups:
            group = imagery.get(key)
            if isinstance(group, dict):
                lines.extend(["", f"### {title}"])
                lines.extend(_field_lines(group, fields))

    medium = brand_style.get("mediumInfo")
    if isinstance(medium, dict):
        lines.extend(["", "## Medium Preferences"])
        lines.extend(_field_lines(medium, [("language", "Language"), ("text_density", "Text Density")]))

    return "\n".join(lines)


# ─── Input Models ────────────────────────────────────────────────────────────

Platform = Literal["twitter", "instagram", "linkedin", "facebook", "threads", "blog", "reddit"]
ContentLength = Literal["very-short", "short", "medium", "long"]
PostStatus = Literal["draft", "scheduled", "published", "archived"]

_UUID_RE = re.compile(r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$")
_DATETIME_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}(:\d{2}(\.\d+)?)?(Z|[+-]\d{2}:\d{2})$")


def _check_uuid(value: Optional[str], message: str) -> Optional[str]:
    if value is not None and not _UUID_RE.match(value):
        raise ValueError(message)
    return value


class CreatePostInput(BaseModel):
    """Input for creating a post."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    content: str = Field(
        ...,
        description="The idea or prompt for Thoth to generate platform-specific content from",
        min_length=1,
        max_length=10000,
    )
    platforms: List[Platform] = Field(
        ...,
        description="Target platforms for the content",
        min_length=1,
        max_length=7,
    )
    schedule_time: Optional[str] = Field(
        default=None,
        alias="scheduleTime",
        description="Optional ISO 8601 datetime to schedule the post (e.g., '2025-01-15T09:00:00Z')",
    )
    create_image: bool = Field(
        default=False, alias="createImage", strict=True, description="Whether to generate an image for the post"
    )
    length: ContentLength = Field(default="medium", description="Desired content length: very-short, short, medium, or long")
    create_hashtags: bool = Field(
        default=True, alias="createHashtags", strict=True, description="Whether to generate hashtags for the content"
    )
    post_to_social_networks: bool = Field(
        default=False,
        alias="postToSocialNetworks",
        strict=True,
        description="Whether to immediately post to connected social networks",
    )
    brand_style_id: Optional[str] = Field(
        default=None,
        alias="brandStyleId",
        description=(
            "Brand style ID to apply to the content (recommended for consistent brand voice and tone). "
            "Use get-brand-styles tool to see available styles"
        ),
    )

    @field_validator("schedule_time")
    @classmethod
    def _valid_datetime(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        if not _DATETIME_RE.match(v):
            raise ValueError("Invalid datetime format")
        try:
            datetime.fromisoformat(v.replace("Z", "+00:00"))
        except ValueError:
            raise ValueError("Invalid datetime format")
        return v

    @field_validator("brand_style_id")
    @classmethod
    def _valid_brand_style_id(cls, v: Optional[str]) -> Optional[str]:
        return _check_uuid(v, "Invalid brand style ID")


class GetPostInput(BaseModel):
    """Input for retrieving a single post."""
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True, extra="ignore")

    post_id: str = Field(..., alias="postId", description="The UUID of the post to retrieve")

    @field_validator("post_id")
    @classmethod
    def _valid_post_id(cls, v: str) -> str:
        return _check_uuid(v, "Invalid post ID format")


class GetAllPostsInput(BaseModel):
    """Input for listing posts."""
    model_config = ConfigDict(extra="ignore")

    page: int = Field(default=1, description="Page number for pagination", ge=1, strict=True)
    limit: int = Field(default=10, description="Number of posts per page (max 100)", ge=1, le=100, strict=True)
    status: Optional[PostStatus] = Field(default=None, description="Filter posts by status")


class PlatformContentInput(BaseModel):
    content: str
    hashtags: Optional[List[str]] = None


class UpdatePostInput(BaseModel):
    """Input for updating a post. Only the fields given are changed."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    post_id: str = Field(..., alias="postId", description="The UUID of the post to update")
    title: Optional[str] = Field(default=None, description="Updated title for the post")
    original_content: Optional[str] = Field(
        default=None, alias="originalContent", description="Updated original content"
    )
    platform_contents: Optional[Dict[Platform, PlatformContentInput]] = Field(
        default=None,
        alias="platformContents",
        description="Updated platform-specific content variations, keyed by platform",
    )
    status: Optional[PostStatus] = Field(default=None, description="Updated post status")

    @field_validator("post_id")
    @classmethod
    def _valid_post_id(cls, v: str) -> str:
        return _check_uuid(v, "Invalid post ID format")


class GetBrandStylesInput(BaseModel):
    """No parameters."""
    model_config = ConfigDict(extra="ignore")


class GetBrandStyleInput(BaseModel):
    """Input for retrieving a single brand style."""
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True, extra="ignore")

    brand_style_id: str = Field(
        ...,
        alias="brandStyleId",
        description="The unique identifier of the brand style to retrieve",
        min_length=1,
    )


def validate_input(model: Type[BaseModel], arguments: Optional[Dict[str, Any]]) -> BaseModel:
    """Parse raw tool arguments into ``model``.

    Raises:
        ToolInputError: with one (field path, message) pair per pydantic error.
    """
    try:
        return model.model_validate(arguments or {})
    except ValidationError as exc:
        raise ToolInputError([
            (".".join(str(part) for part in err["loc"]), err["msg"])
            for err in exc.errors()
        ]) from exc


# ─── API Client Functions ────────────────────────────────────────────────────


async def create_post(params: CreatePostInput, config: ApiConfig) -> Dict[str, Any]:
    return await _api_request(
        "POST",
        "/api/v1/posts",
        config,
        json=params.model_dump(by_alias=True, exclude_none=True),
    )


async def get_post(params: GetPostInput, config: ApiConfig) -> Dict[str, Any]:
    return await _api_request(
        "GET",
        f"/api/v1/posts/{params.post_id}",
        config,
        not_found=f"Post not found: {params.post_id}",
    )


async def get_all_posts(params: GetAllPostsInput, config: ApiConfig) -> Dict[str, Any]:
    query: Dict[str, Any] = {"page": params.page, "limit": params.limit}
    if params.status:
        query["status"] = params.status
    return await _api_request("GET", "/api/v1/posts", config, params=query)


async def update_post(params: UpdatePostInput, config: ApiConfig) -> Dict[str, Any]:
    return await _api_request(
        "PUT",
        f"/api/v1/posts/{params.post_id}",
        config,
        json=params.model_dump(by_alias=True, exclude_none=True, exclude={"post_id"}),
        not_found=f"Post not found: {params.post_id}",
    )


async def get_brand_styles(params: GetBrandStylesInput, config: ApiConfig) -> List[Dict[str, Any]]:
    return await _api_request("GET", "/api/v1/brand-styles", config)


async def get_brand_style(params: GetBrandStyleInput, config: ApiConfig) -> Dict[str, Any]:
    return await _api_request(
        "GET",
        f"/api/v1/brand-styles/{params.brand_style_id}",
        config,
        not_found=f"Brand style not found: {params.brand_style_id}",
    )


# ─── Tool Registry ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ToolDefinition:
    """One MCP tool: validator model, API call and formatter run in sequence."""

    name: str
    title: str
    description: str
    input_model: Type[BaseModel]
    call: Callable[[Any, ApiConfig], Awaitable[Any]]
    formatter: Callable[[Any], str]
    read_only: bool = True
    idempotent: bool = True

    def descriptor(self) -> types.Tool:
        return types.Tool(
            name=self.name,
            description=self.description,
            inputSchema=self.input_model.model_json_schema(by_alias=True),
            annotations=types.ToolAnnotations(
                title=self.title,
                readOnlyHint=self.read_only,
                destructiveHint=False,
                idempotentHint=self.idempotent,
                openWorldHint=True,
            ),
        )

    async def run(self, arguments: Optional[Dict[str, Any]], config: ApiConfig) -> str:
        params = validate_input(self.input_model, arguments)
        result = await self.call(params, config)
        return self.formatter(result)


TOOLS: List[ToolDefinition] = [
    ToolDefinition(
        name="create-post",
        title="Create Post",
        description=(
            "Create a new content post with platform-specific variations. Enhances the content for each "
            "platform, optionally generates images, and can schedule or publish to social networks."
        ),
        input_model=CreatePostInput,
        call=create_post,
        formatter=format_create_post,
        read_only=False,
        idempotent=False,
    ),
    ToolDefinition(
        name="get-post",
        title="Get Post",
        description=(
            "Retrieve a post by its ID. Returns the original content, platform-specific variations, "
            "generated images, and metadata."
        ),
        input_model=GetPostInput,
        call=get_post,
        formatter=format_get_post,
    ),
    ToolDefinition(
        name="get-all-posts",
        title="List Posts",
        description=(
            "Retrieve all posts with pagination and optional filtering by status. "
            "Returns a list of posts with their metadata."
        ),
        input_model=GetAllPostsInput,
        call=get_all_posts,
        formatter=format_get_all_posts,
    ),
    ToolDefinition(
        name="update-post",
        title="Update Post",
        description=(
            "Update an existing post. Can modify title, content, platform-specific variations, and status."
        ),
        input_model=UpdatePostInput,
        call=update_post,
        formatter=format_update_post,
        read_only=False,
    ),
    ToolDefinition(
        name="get-brand-styles",
        title="List Brand Styles",
        description=(
            "Retrieve all brand styles for the authenticated user. "
            "Returns a list of brand styles with their basic information."
        ),
        input_model=GetBrandStylesInput,
        call=get_brand_styles,
        formatter=format_get_brand_styles,
    ),
    ToolDefinition(
        name="get-brand-style",
        title="Get Brand Style",
        description=(
            "Retrieve a specific brand style by ID with full details including colors, tone, and imagery style."
        ),
        input_model=GetBrandStyleInput,
        call=get_brand_style,
        formatter=format_get_brand_style,
    ),
]

TOOLS_BY_NAME: Dict[str, ToolDefinition] = {tool.name: tool for tool in TOOLS}

RESOURCE_TEMPLATES = [
    types.ResourceTemplate(
        uriTemplate="post://{postId}",
        name="Post",
        description="Access post data by ID using URI format: post://{postId}",
        mimeType="text/markdown",
    ),
    types.ResourceTemplate(
        uriTemplate="preview://{postId}/{platform}",
        name="Post Preview",
        description="Get platform-specific preview using URI format: preview://{postId}/{platform}",
        mimeType="text/markdown",
    ),
]

EXAMPLE_RESOURCES = [
    types.Resource(
        uri="post://example-id",
        name="Post",
        description="Access post data by ID using URI format: post://{postId}",
        mimeType="text/markdown",
    ),
    types.Resource(
        uri="preview://example-id/twitter",
        name="Post Preview",
        description="Get platform-specific preview using URI format: preview://{postId}/{platform}",
        mimeType="text/markdown",
    ),
]


# ─── Dispatcher ──────────────────────────────────────────────────────────────


async def dispatch_tool(
    name: str, arguments: Optional[Dict[str, Any]], config: ApiConfig
) -> types.CallToolResult:
    """Run a tool call end to end. Never raises; failures come back with isError set."""
    logger.info("Tool call: %s", name)
    try:
        tool = TOOLS_BY_NAME.get(name)
        if tool is None:
            raise UnknownToolError(f"Unknown tool: {name}")
        text = await tool.run(arguments, config)
    except Exception as e:
        logger.warning("Tool %s failed: %s", name, e)
        return types.CallToolResult(
            content=[types.TextContent(type="text", text=_handle_error(e))],
            isError=True,
        )
    return types.CallToolResult(content=[types.TextContent(type="text", text=text)], isError=False)


def _resource_post(post_id: str) -> GetPostInput:
    if not _UUID_RE.match(post_id):
        raise ResourceError(f"Invalid post ID in resource URI: {post_id}")
    return GetPostInput(postId=post_id)


async def read_resource_text(uri: str, config: ApiConfig) -> str:
    """Resolve a ``post://`` or ``preview://`` URI to Markdown.

    Raises:
        ResourceError: malformed URI, unsupported scheme, or no content for the platform.
    """
    if uri.startswith("post://"):
        params = _resource_post(uri[len("post://"):])
        post = await get_post(params, config)
        return format_get_post(post)

    if uri.startswith("preview://"):
        parts = uri[len("preview://"):].split("/")
        if len(parts) != 2:
            raise ResourceError("Invalid preview URI format. Use: preview://{postId}/{platform}")
        post_id, platform = parts
        params = _resource_post(post_id)
        post = await get_post(params, config)
        preview = format_post_preview(post, platform)
        if preview is None:
            raise ResourceError(f"No content found for platform: {platform}")
        return preview

    raise ResourceError(f"Unsupported URI scheme: {uri}")


async def read_resource_contents(uri: str, config: ApiConfig) -> List[ReadResourceContents]:
    """Resource read that never raises; errors come back as plain text."""
    logger.info("Resource read: %s", uri)
    try:
        text = await read_resource_text(uri, config)
    except Exception as e:
        logger.warning("Resource read %s failed: %s", uri, e)
        return [ReadResourceContents(content=_handle_error(e), mime_type="text/plain")]
    return [ReadResourceContents(content=text, mime_type="text/markdown")]


def create_server(config: ApiConfig) -> Server:
    """Build an MCP server whose handlers are bound to ``config``.

    HTTP mode calls this once per request so credentials never cross requests.
    """
    server = Server(SERVER_NAME, version=SERVER_VERSION)

    @server.list_tools()
    async def list_tools() -> List[types.Tool]:
        return [tool.descriptor() for tool in TOOLS]

    @server.call_tool(validate_input=False)
    async def call_tool(name: str, arguments: Dict[str, Any]) -> types.CallToolResult:
        return await dispatch_tool(name, arguments, config)

    @server.list_resources()
    async def list_resources() -> List[types.Resource]:
        return EXAMPLE_RESOURCES

    @server.list_resource_templates()
    async def list_resource_templates() -> List[types.ResourceTemplate]:
        return RESOURCE_TEMPLATES

    @server.read_resource()
    async def read_resource(uri: AnyUrl) -> List[ReadResourceContents]:
        return await read_resource_contents(str(uri), config)

    return server


# ─── Transports ──────────────────────────────────────────────────────────────


async def run_stdio(config: ServerConfig) -> None:
    server = create_server(config.api_config())
    async with stdio_server() as (read_stream, write_stream):
        logger.info("Thoth MCP Server started (stdio mode), API: %s", config.base_url)
        await server.run(read_stream, write_stream, server.create_initialization_options())


async def _health(request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok", "server": SERVER_NAME})


class McpEndpoint:
    """ASGI endpoint for POST /mcp.

    Each request gets its own server and stateless session manager, bound to the
    config resolved from that request's query string. The manager's task group
    is torn down when the response completes or the connection drops.
    """

    def __init__(self, config: ServerConfig):
        self.config = config

    async def __call__(self, scope, receive, send) -> None:
        request = Request(scope, receive)
        try:
            api_config = resolve_request_config(request.query_params, self.config)
        except ConfigurationError as e:
            logger.warning("Rejected /mcp request: %s", e)
            response = JSONResponse({"error": str(e)}, status_code=400)
            await response(scope, receive, send)
            return

        session_manager = StreamableHTTPSessionManager(
            app=create_server(api_config),
            event_store=None,
            json_response=True,
            stateless=True,
        )
        async with session_manager.run():
            await session_manager.handle_request(scope, receive, send)


def create_http_app(config: ServerConfig) -> Starlette:
    return Starlette(
        debug=False,
        routes=[
            Route("/health", _health, methods=["GET"]),
            Route("/mcp", McpEndpoint(config), methods=["POST"]),
        ],
        middleware=[
            Middleware(
                CORSMiddleware,
                allow_origins=["*"],
                allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
                allow_headers=["*"],
                expose_headers=["Mcp-Session-Id", "mcp-protocol-version"],
            )
        ],
    )


# ─── Entry Point ─────────────────────────────────────────────────────────────


def _setup_logging(level: str) -> None:
    # stdout carries the stdio transport
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def main(argv: Optional[Sequence[str]] = None) -> None:
    load_dotenv()
    try:
        config = resolve_startup_config(sys.argv[1:] if argv is None else argv, os.environ)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        build_arg_parser().print_help(sys.stderr)
        sys.exit(1)

    _setup_logging(os.environ.get("LOG_LEVEL", "INFO"))

    if config.remote:
        logger.info("Thoth MCP Server starting (HTTP mode) on port %d, API: %s", config.port, config.base_url)
        uvicorn.run(create_http_app(config), host="0.0.0.0", port=config.port, log_level="info")
    else:
        asyncio.run(run_stdio(config))


if __name__ == "__main__":
    main()
