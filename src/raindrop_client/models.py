from typing import Generic, List, Optional, TypeVar
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator

T = TypeVar("T")


class WireModel(BaseModel):
    # Accept both wire aliases ("_id") and attribute names ("id") on input.
    model_config = ConfigDict(populate_by_name=True)


class CollectionRef(WireModel):
    id: int = Field(alias="$id")


class UserRef(WireModel):
    id: int = Field(alias="$id")


class Access(WireModel):
    level: Optional[int] = None
    draggable: Optional[bool] = None


class Collection(WireModel):
    id: int = Field(alias="_id")
    title: str = ""
    access: Optional[Access] = None
    color: Optional[str] = None
    count: Optional[int] = 0
    cover: Optional[List[str]] = None
    created: Optional[str] = None
    lastUpdate: Optional[str] = None
    parent: Optional[CollectionRef] = None
    expanded: Optional[bool] = None
    public: Optional[bool] = None
    sort: Optional[int] = None
    user: Optional[UserRef] = None
    view: Optional[str] = None

    @property
    def parent_id(self) -> Optional[int]:
        return self.parent.id if self.parent is not None else None

    @property
    def is_root(self) -> bool:
        """A collection without a parent lives at the root level."""
        return self.parent is None


class CollectionCreate(WireModel):
    """Create-collection payload. ``None`` means "leave the field out"."""

    title: Optional[str] = None
    view: Optional[str] = None
    sort: Optional[int] = None
    public: Optional[bool] = None
    cover: Optional[List[str]] = None
    parent: Optional[CollectionRef] = None


class Media(WireModel):
    link: str


class Raindrop(WireModel):
    id: Optional[int] = Field(default=None, alias="_id")
    link: str
    title: str = ""
    excerpt: str = ""
    html: str = ""
    type: Optional[str] = "link"  # link, article, image, video, document, audio
    cover: Optional[str] = None
    media: List[Media] = []
    tags: List[str] = []
    collection: Optional[CollectionRef] = None
    created: Optional[str] = None
    lastUpdate: Optional[str] = None
    order: Optional[int] = None

    @property
    def collection_id(self) -> Optional[int]:
        return self.collection.id if self.collection is not None else None


class RaindropCreate(WireModel):
    link: str
    title: Optional[str] = None
    excerpt: Optional[str] = None
    tags: Optional[List[str]] = None
    collection: Optional[CollectionRef] = None
    # Sent as {} to ask the server to fetch the page metadata itself.
    please_parse: Optional[dict] = Field(default=None, alias="pleaseParse")

    @field_validator("link")
    @classmethod
    def link_must_be_url(cls, value: str) -> str:
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"not an absolute http(s) URL: {value!r}")
        return value


class Tag(WireModel):
    id: str = Field(alias="_id")
    count: int = 0


class ResultEnvelope(WireModel):
    """Common response wrapper. ``result=False`` may arrive with HTTP 200 or 400."""

    result: bool = False
    error: Optional[str] = None
    errorMessage: Optional[str] = None
    status: Optional[int] = None


class ItemEnvelope(ResultEnvelope, Generic[T]):
    item: Optional[T] = None


class ItemsEnvelope(ResultEnvelope, Generic[T]):
    items: List[T] = []
    count: Optional[int] = None


class AccessToken(WireModel):
    """Credential returned by the token endpoint, owned by the caller."""

    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires: Optional[int] = None
    expires_in: Optional[int] = None
    token_type: Optional[str] = None
    result: Optional[bool] = None
    status: Optional[int] = None
    error: Optional[str] = None
    errorMessage: Optional[str] = None

    @property
    def ok(self) -> bool:
        return bool(self.access_token) and self.result is not False

    def authorization_header(self) -> dict:
        return {"Authorization": f"Bearer {self.access_token}"}


class AuthorizationRedirect(WireModel):
    """Outcome of the OAuth redirect: the code (or error) plus the page shown to the browser."""

    code: Optional[str] = None
    error: Optional[str] = None
    html: str
