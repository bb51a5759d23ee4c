"""
Shop page components.

A vendor's shop page is an ordered list of components. Each component type
has its own config model; configs are validated on write and stored with
unknown and unset keys dropped.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Type

from pydantic import BaseModel, Field, ValidationError

HEX_COLOR = r"^#[0-9A-Fa-f]{6}$"
URL = r"^https?://\S+$"


class ComponentType(str, Enum):
    HERO = "HERO"
    PRODUCT_GRID = "PRODUCT_GRID"
    IMAGE_GALLERY = "IMAGE_GALLERY"
    TEXT_BLOCK = "TEXT_BLOCK"
    FEATURED_COLLECTION = "FEATURED_COLLECTION"
    SPACER = "SPACER"
    TESTIMONIALS = "TESTIMONIALS"
    COUNTDOWN_TIMER = "COUNTDOWN_TIMER"
    NEWSLETTER_SIGNUP = "NEWSLETTER_SIGNUP"
    FAQ_ACCORDION = "FAQ_ACCORDION"
    BANNER_CAROUSEL = "BANNER_CAROUSEL"
    VIDEO_EMBED = "VIDEO_EMBED"
    MAP_LOCATION = "MAP_LOCATION"


class ComponentConfigError(Exception):
    pass


# ---------- Config models ----------

class HeroConfig(BaseModel):
    title: Optional[str] = Field(None, max_length=200)
    subtitle: Optional[str] = Field(None, max_length=500)
    background_image: Optional[str] = Field(None, pattern=URL)
    background_color: Optional[str] = Field(None, pattern=HEX_COLOR)
    text_color: Optional[str] = Field(None, pattern=HEX_COLOR)
    cta_text: Optional[str] = Field(None, max_length=50)
    cta_link: Optional[str] = Field(None, max_length=500)
    height: Optional[Literal["small", "medium", "large", "full"]] = None


class ProductGridConfig(BaseModel):
    title: Optional[str] = Field(None, max_length=200)
    columns: Optional[int] = Field(None, ge=1, le=6)
    limit: Optional[int] = Field(None, ge=1, le=50)
    category_id: Optional[str] = None
    show_price: Optional[bool] = None
    show_rating: Optional[bool] = None


class GalleryImage(BaseModel):
    url: str = Field(..., pattern=URL)
    alt: Optional[str] = Field(None, max_length=200)
    link: Optional[str] = Field(None, max_length=500)


class ImageGalleryConfig(BaseModel):
    images: Optional[List[GalleryImage]] = Field(None, max_length=20)
    layout: Optional[Literal["grid", "masonry", "carousel"]] = None
    columns: Optional[int] = Field(None, ge=1, le=6)


class TextBlockConfig(BaseModel):
    content: Optional[str] = Field(None, max_length=10000)
    alignment: Optional[Literal["left", "center", "right"]] = None
    background_color: Optional[str] = Field(None, pattern=HEX_COLOR)


class FeaturedCollectionConfig(BaseModel):
    title: Optional[str] = Field(None, max_length=200)
    product_ids: Optional[List[str]] = Field(None, max_length=20)
    layout: Optional[Literal["grid", "carousel"]] = None


class SpacerConfig(BaseModel):
    height: Optional[int] = Field(None, ge=8, le=200)


class Testimonial(BaseModel):
    name: str = Field(..., max_length=100)
    role: Optional[str] = Field(None, max_length=100)
    content: str = Field(..., max_length=1000)
    avatar: Optional[str] = Field(None, pattern=URL)
    rating: Optional[int] = Field(None, ge=1, le=5)


class TestimonialsConfig(BaseModel):
    testimonials: Optional[List[Testimonial]] = Field(None, max_length=10)
    layout: Optional[Literal["grid", "carousel"]] = None


class CountdownTimerConfig(BaseModel):
    title: Optional[str] = Field(None, max_length=200)
    end_date: Optional[datetime] = None
    expired_message: Optional[str] = Field(None, max_length=200)


class NewsletterSignupConfig(BaseModel):
    title: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = Field(None, max_length=500)
    button_text: Optional[str] = Field(None, max_length=50)
    background_color: Optional[str] = Field(None, pattern=HEX_COLOR)


class FaqItem(BaseModel):
    question: str = Field(..., max_length=500)
    answer: str = Field(..., max_length=2000)


class FaqAccordionConfig(BaseModel):
    title: Optional[str] = Field(None, max_length=200)
    items: Optional[List[FaqItem]] = Field(None, max_length=30)


class Banner(BaseModel):
    image: str = Field(..., pattern=URL)
    alt: Optional[str] = Field(None, max_length=200)
    link: Optional[str] = Field(None, max_length=500)
    title: Optional[str] = Field(None, max_length=200)


class BannerCarouselConfig(BaseModel):
    banners: Optional[List[Banner]] = Field(None, max_length=10)
    auto_play: Optional[bool] = None
    interval: Optional[int] = Field(None, ge=1000, le=30000)


class VideoEmbedConfig(BaseModel):
    url: Optional[str] = Field(None, pattern=URL)
    title: Optional[str] = Field(None, max_length=200)
    auto_play: Optional[bool] = None
    aspect_ratio: Optional[Literal["16:9", "4:3", "1:1"]] = None


class MapLocationConfig(BaseModel):
    title: Optional[str] = Field(None, max_length=200)
    address: Optional[str] = Field(None, max_length=500)
    embed_url: Optional[str] = Field(None, pattern=URL)
    height: Optional[int] = Field(None, ge=100, le=1000)
    show_directions: Optional[bool] = None


CONFIG_MODELS: Dict[ComponentType, Type[BaseModel]] = {
    ComponentType.HERO: HeroConfig,
    ComponentType.PRODUCT_GRID: ProductGridConfig,
    ComponentType.IMAGE_GALLERY: ImageGalleryConfig,
    ComponentType.TEXT_BLOCK: TextBlockConfig,
    ComponentType.FEATURED_COLLECTION: FeaturedCollectionConfig,
    ComponentType.SPACER: SpacerConfig,
    ComponentType.TESTIMONIALS: TestimonialsConfig,
    ComponentType.COUNTDOWN_TIMER: CountdownTimerConfig,
    ComponentType.NEWSLETTER_SIGNUP: NewsletterSignupConfig,
    ComponentType.FAQ_ACCORDION: FaqAccordionConfig,
    ComponentType.BANNER_CAROUSEL: BannerCarouselConfig,
    ComponentType.VIDEO_EMBED: VideoEmbedConfig,
    ComponentType.MAP_LOCATION: MapLocationConfig,
}

DEFAULT_CONFIGS: Dict[ComponentType, Dict[str, Any]] = {
    ComponentType.HERO: {
        "title": "Welcome to Our Shop",
        "subtitle": "Discover amazing products",
        "cta_text": "Shop Now",
        "cta_link": "#",
        "background_color": "#000000",
        "text_color": "#FFFFFF",
    },
    ComponentType.PRODUCT_GRID: {"title": "Our Products", "columns": 4, "limit": 8, "show_price": True},
    ComponentType.IMAGE_GALLERY: {"images": [], "layout": "grid", "columns": 3},
    ComponentType.TEXT_BLOCK: {"content": "", "alignment": "left"},
    ComponentType.FEATURED_COLLECTION: {"title": "Bộ sưu tập nổi bật", "product_ids": [], "layout": "grid"},
    ComponentType.SPACER: {"height": 48},
    ComponentType.TESTIMONIALS: {"testimonials": [], "layout": "grid"},
    ComponentType.COUNTDOWN_TIMER: {"title": "Flash Sale Ends In", "expired_message": "This sale has ended"},
    ComponentType.NEWSLETTER_SIGNUP: {"title": "Stay in touch", "button_text": "Subscribe"},
    ComponentType.FAQ_ACCORDION: {"title": "Frequently Asked Questions", "items": []},
    ComponentType.BANNER_CAROUSEL: {"banners": [], "auto_play": True, "interval": 5000},
    ComponentType.VIDEO_EMBED: {"title": "Featured Video", "aspect_ratio": "16:9", "auto_play": False},
    ComponentType.MAP_LOCATION: {"title": "Vị trí cửa hàng", "height": 400, "show_directions": True},
}


def parse_type(value: str) -> ComponentType:
    try:
        return ComponentType(value)
    except ValueError:
        raise ComponentConfigError(f"Invalid component type: {value}")


def default_config(component_type: ComponentType) -> Dict[str, Any]:
    return dict(DEFAULT_CONFIGS[component_type])


def validate_config(component_type: ComponentType, config: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Validated config with unknown and unset keys removed."""
    model = CONFIG_MODELS[component_type]
    try:
        parsed = model.model_validate(config or {})
    except ValidationError as e:
        first = e.errors()[0]
        where = ".".join(str(p) for p in first["loc"])
        raise ComponentConfigError(f"Invalid config: {where}: {first['msg']}" if where else f"Invalid config: {first['msg']}")
    return parsed.model_dump(mode="json", exclude_none=True)


def next_order(existing_orders: List[int]) -> int:
    return max(existing_orders, default=-1) + 1


def reorder_plan(current_ids: List[str], requested_ids: List[str]) -> Dict[str, int]:
    """Map each component id to its new position.

    `requested_ids` must be a permutation of the vendor's components.
    """
    if len(set(requested_ids)) != len(requested_ids):
        raise ComponentConfigError("Duplicate component ids")
    if set(requested_ids) != set(current_ids):
        raise ComponentConfigError("Some components not found or unauthorized")
    return {component_id: position for position, component_id in enumerate(requested_ids)}
