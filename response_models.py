from typing import Annotated, List, Literal, Union
from pydantic import BaseModel, Field, model_validator
from enum import Enum


PLACEHOLDER_IMAGE_URL = "https://placehold.co/600x400?text=No+Image"


class Presentation(str, Enum):
    """How the widget should render the reply."""
    NONE = "none"
    ACTION_BUTTONS = "actionButtons"
    CAROUSEL = "carousel"


class CarouselItem(BaseModel):
    """Catalog item view shown in the carousel."""
    kind: Literal["item"] = "item"
    id: str
    title: str
    price: str
    image_url: str
    url: str


class ActionButton(BaseModel):
    """Button whose payload is sent back as the next turn."""
    kind: Literal["action"] = "action"
    label: str
    payload: str


EnvelopeItem = Annotated[Union[CarouselItem, ActionButton], Field(discriminator="kind")]


class ResponseEnvelope(BaseModel):
    """Single response structure for every chat turn."""
    reply_text: str
    presentation: Presentation = Presentation.NONE
    items: List[EnvelopeItem] = []

    @model_validator(mode="after")
    def check_items_match_presentation(self):
        if self.presentation == Presentation.NONE and self.items:
            raise ValueError("plain replies carry no items")
        if self.presentation == Presentation.ACTION_BUTTONS:
            if not self.items or not all(isinstance(i, ActionButton) for i in self.items):
                raise ValueError("action replies need at least one button and only buttons")
        if self.presentation == Presentation.CAROUSEL:
            if not self.items or not all(isinstance(i, CarouselItem) for i in self.items):
                raise ValueError("carousel replies need at least one item and only items")
        return self

    @classmethod
    def message(cls, reply_text: str) -> "ResponseEnvelope":
        return cls(reply_text=reply_text, presentation=Presentation.NONE, items=[])

    @classmethod
    def actions(cls, reply_text: str, buttons: List[ActionButton]) -> "ResponseEnvelope":
        return cls(reply_text=reply_text, presentation=Presentation.ACTION_BUTTONS, items=list(buttons))

    @classmethod
    def carousel(cls, reply_text: str, candidates) -> "ResponseEnvelope":
        """Build a carousel from Candidate objects."""
        items = [
            CarouselItem(
                id=c.id,
                title=c.title,
                price=c.display_price,
                image_url=c.image_url or PLACEHOLDER_IMAGE_URL,
                url=c.detail_url,
            )
            for c in candidates
        ]
        return cls(reply_text=reply_text, presentation=Presentation.CAROUSEL, items=items)


class AdminSettingsResponse(BaseModel):
    """Masked view of the stored reasoning credential."""
    is_set: bool
    masked_key: str = ""


class StatusResponse(BaseModel):
    status: str
    message: str = ""


class TaggedProduct(BaseModel):
    id: str
    title: str
    image_url: str = ""


class DirectionProducts(BaseModel):
    direction: str
    tag: str
    description: str
    hits: int = 0
    products: List[TaggedProduct] = []
