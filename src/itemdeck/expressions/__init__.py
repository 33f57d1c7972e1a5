"""Field-path and image-selector expression languages."""

from itemdeck.expressions.field_path import (
    FieldPath,
    get_field_value,
    get_images_value,
    get_number_value,
    get_string_value,
    parse_field_path,
)
from itemdeck.expressions.image_selector import (
    DEFAULT_PRIMARY_EXPRESSION,
    Selector,
    format_attribution,
    get_image_urls,
    get_logo_url,
    get_primary_image,
    get_primary_image_url,
    parse_selector,
    select_image,
    select_images,
)

__all__ = [
    "DEFAULT_PRIMARY_EXPRESSION",
    "FieldPath",
    "Selector",
    "format_attribution",
    "get_field_value",
    "get_image_urls",
    "get_images_value",
    "get_logo_url",
    "get_number_value",
    "get_primary_image",
    "get_primary_image_url",
    "get_string_value",
    "parse_field_path",
    "parse_selector",
    "select_image",
    "select_images",
]
