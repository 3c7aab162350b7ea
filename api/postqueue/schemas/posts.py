from pydantic import AliasChoices, BaseModel, Field

from postqueue.schemas.entries import QueuedEntryOut


class PostRequest(BaseModel):
    title: str
    link: str | None = None
    hashtags: str | list[str] | None = None
    image_url: str | None = Field(default=None, validation_alias=AliasChoices("imageUrl", "image_url"))


class PostOut(BaseModel):
    tweet_id: str
    text: str


class PostEnvelope(BaseModel):
    success: bool = True
    message: str
    data: PostOut


class DispatchOut(BaseModel):
    success: bool
    message: str
    data: QueuedEntryOut | None = None
    claimed: bool = False
    post: PostOut | None = None
    post_error: str | None = None
