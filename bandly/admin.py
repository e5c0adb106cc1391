"""
Admin back-office: users, blog posts and AI prompt templates.

All endpoints live under /api/sidigi and are role-checked by the server.
The client only reacts: 401 raises AuthenticationError, 403 raises
AuthorizationError.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from bandly.api_client import BandlyAPIClient
from bandly.exceptions import ValidationError
from bandly.logging_config import get_logger

logger = get_logger(__name__)


USER_PLANS = ("free", "pro")
USER_ROLES = ("user", "admin")
USERS_PAGE_SIZE = 20


@dataclass
class AdminUser:
    id: int
    email: str
    plan: str = "free"
    role: str = "user"
    created_at: str = ""
    essay_count: int = 0
    last_login: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AdminUser":
        return cls(
            id=int(data.get("id", 0)),
            email=data.get("email", ""),
            plan=data.get("plan") or "free",
            role=data.get("role") or "user",
            created_at=data.get("createdAt", ""),
            essay_count=int(data.get("essayCount", 0)),
            last_login=data.get("lastLogin"),
        )


@dataclass
class Pagination:
    page: int = 1
    limit: int = USERS_PAGE_SIZE
    total: int = 0
    total_pages: int = 1

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Pagination":
        data = data or {}
        return cls(
            page=int(data.get("page", 1)),
            limit=int(data.get("limit", USERS_PAGE_SIZE)),
            total=int(data.get("total", 0)),
            total_pages=int(data.get("pages", 1)),
        )


@dataclass
class UserPage:
    users: List[AdminUser]
    pagination: Pagination


@dataclass
class BlogPost:
    title: str
    content: str
    slug: str = ""
    excerpt: str = ""
    category: str = "general"
    tags: List[str] = field(default_factory=list)
    read_time: str = "5 min"
    is_published: bool = False
    id: Optional[int] = None
    published_at: Optional[str] = None

    def __post_init__(self):
        if not self.slug:
            self.slug = slugify(self.title)
        self.tags = parse_tags(self.tags)

    def validate(self) -> None:
        if not self.title.strip():
            raise ValidationError("Title is required", field="title")

    def to_payload(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "slug": self.slug,
            "excerpt": self.excerpt,
            "content": self.content,
            "category": self.category,
            "tags": self.tags,
            "readTime": self.read_time,
            "isPublished": self.is_published,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BlogPost":
        return cls(
            id=data.get("id"),
            title=data.get("title", ""),
            content=data.get("content", ""),
            slug=data.get("slug", ""),
            excerpt=data.get("excerpt", ""),
            category=data.get("category") or "general",
            tags=data.get("tags") or [],
            read_time=data.get("readTime") or "5 min",
            is_published=bool(data.get("isPublished", False)),
            published_at=data.get("publishedAt"),
        )


@dataclass
class PromptTemplate:
    name: str
    prompt: str
    description: str = ""
    type: str = "scoring"
    is_active: bool = True
    id: Optional[int] = None
    created_at: str = ""
    updated_at: str = ""

    def validate(self) -> None:
        if not self.name.strip():
            raise ValidationError("Name is required", field="name")
        if not self.prompt.strip():
            raise ValidationError("Prompt is required", field="prompt")

    def to_payload(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "prompt": self.prompt,
            "type": self.type,
            "isActive": self.is_active,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PromptTemplate":
        return cls(
            id=data.get("id"),
            name=data.get("name", ""),
            prompt=data.get("prompt", ""),
            description=data.get("description", ""),
            type=data.get("type") or "scoring",
            is_active=bool(data.get("isActive", True)),
            created_at=data.get("createdAt", ""),
            updated_at=data.get("updatedAt", ""),
        )


def slugify(title: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", title.lower())
    return slug.strip("-")


def parse_tags(tags: Union[str, List[str], None]) -> List[str]:
    """Accept a list or a comma separated string"""
    if not tags:
        return []
    if isinstance(tags, str):
        tags = tags.split(",")
    return [t.strip() for t in tags if t and t.strip()]


def _items(data: Any, key: str) -> List[Dict[str, Any]]:
    """List endpoints answer either a bare list or {key: [...]}"""
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        return data.get(key) or []
    return []


class AdminConsole:
    """
    Usage:
        admin = AdminConsole(client)
        page = await admin.list_users(search="gmail")
    """

    def __init__(self, client: BandlyAPIClient):
        self.client = client

    # Users

    async def list_users(self, page: int = 1, search: Optional[str] = None,
                         role: Optional[str] = None) -> UserPage:
        data = await self.client.list_users(page=page, limit=USERS_PAGE_SIZE, search=search, role=role)
        return UserPage(
            users=[AdminUser.from_dict(u) for u in _items(data, "users")],
            pagination=Pagination.from_dict(data.get("pagination") if isinstance(data, dict) else None),
        )

    async def update_user(self, user_id: int, plan: Optional[str] = None,
                          role: Optional[str] = None) -> None:
        updates: Dict[str, Any] = {}
        if plan is not None:
            if plan not in USER_PLANS:
                raise ValidationError(f"Plan must be one of {', '.join(USER_PLANS)}", field="plan")
            updates["plan"] = plan
        if role is not None:
            if role not in USER_ROLES:
                raise ValidationError(f"Role must be one of {', '.join(USER_ROLES)}", field="role")
            updates["role"] = role
        if not updates:
            raise ValidationError("No changes to save")

        await self.client.update_user(user_id, updates)
        logger.info(f"Updated user {user_id}", extra={"updates": updates})

    async def delete_user(self, user_id: int) -> None:
        await self.client.delete_user(user_id)
        logger.info(f"Deleted user {user_id}")

    # Blog posts

    async def list_blog_posts(self) -> List[BlogPost]:
        data = await self.client.list_blog_posts()
        return [BlogPost.from_dict(p) for p in _items(data, "posts")]

    async def save_blog_post(self, post: BlogPost) -> None:
        """Create when the post has no id, update otherwise"""
        post.validate()
        if post.id is None:
            await self.client.create_blog_post(post.to_payload())
        else:
            await self.client.update_blog_post(post.id, post.to_payload())

    async def delete_blog_post(self, post_id: int) -> None:
        await self.client.delete_blog_post(post_id)

    # Prompt templates

    async def list_prompts(self) -> List[PromptTemplate]:
        data = await self.client.list_prompts()
        return [PromptTemplate.from_dict(p) for p in _items(data, "prompts")]

    async def save_prompt(self, prompt: PromptTemplate) -> None:
        prompt.validate()
        if prompt.id is None:
            await self.client.create_prompt(prompt.to_payload())
        else:
            await self.client.update_prompt(prompt.id, prompt.to_payload())

    async def delete_prompt(self, prompt_id: int) -> None:
        await self.client.delete_prompt(prompt_id)
