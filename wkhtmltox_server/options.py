"""Translation of request query parameters into wkhtmltopdf arguments."""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

ValidationError = Tuple[int, Dict[str, Any]]

DEFAULT_PAGE_SIZE = "A4"

# strconv.Atoi grammar: optional sign, ASCII digits only, 64-bit range.
_INTEGER_RE = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


class Orientation(enum.Enum):
    PORTRAIT = "Portrait"
    LANDSCAPE = "Landscape"


_ORIENTATIONS = {
    "": Orientation.PORTRAIT,
    "P": Orientation.PORTRAIT,
    "L": Orientation.LANDSCAPE,
}


class OptionError(ValueError):
    """Raised when a query parameter is present but unusable."""


@dataclass(frozen=True)
class RenderOptions:
    grayscale: bool = False
    low_quality: bool = False
    orientation: Orientation = Orientation.PORTRAIT
    enable_forms: bool = False
    include_images: bool = True
    include_javascript: bool = True
    page_size: str = DEFAULT_PAGE_SIZE
    title: Optional[str] = None
    image_dpi: Optional[int] = None
    image_quality: Optional[int] = None
    margin_left: Optional[str] = None
    margin_right: Optional[str] = None
    margin_top: Optional[str] = None
    margin_bottom: Optional[str] = None
    smart_shrinking: bool = True


def parse_bool_option(query: Mapping[str, str], key: str) -> bool:
    return query.get(key) == "1"


def parse_atoi(value: str) -> int:
    if not _INTEGER_RE.fullmatch(value):
        raise ValueError(f"invalid integer value: {value!r}")
    number = int(value)
    if not _INT64_MIN <= number <= _INT64_MAX:
        raise ValueError(f"integer value out of range: {value!r}")
    return number


def parse_int_option(query: Mapping[str, str], key: str) -> Optional[int]:
    value = query.get(key, "")
    if value == "":
        return None
    return parse_atoi(value)


def _optional_text(query: Mapping[str, str], key: str) -> Optional[str]:
    return query.get(key) or None


def _positive_int(query: Mapping[str, str], key: str) -> Optional[int]:
    try:
        value = parse_int_option(query, key)
    except ValueError as exc:
        raise OptionError(f"invalid {key} value provided") from exc
    if value is None or value <= 0:
        return None
    return value


def parse_render_options(query: Mapping[str, str]) -> RenderOptions:
    """Build RenderOptions from first-value query parameters.

    Raises OptionError with a client-facing message on the first bad value.
    Integer options that parse to zero or less are treated as unset.
    """
    image_dpi = _positive_int(query, "imagedpi")
    image_quality = _positive_int(query, "imagequality")

    orientation = _ORIENTATIONS.get(query.get("orientation", ""))
    if orientation is None:
        raise OptionError("invalid orientation value provided")

    return RenderOptions(
        grayscale=parse_bool_option(query, "grayscale"),
        low_quality=parse_bool_option(query, "lowquality"),
        orientation=orientation,
        enable_forms=parse_bool_option(query, "forms"),
        include_images=not parse_bool_option(query, "noimages"),
        include_javascript=not parse_bool_option(query, "nojavascript"),
        page_size=query.get("pagesize") or DEFAULT_PAGE_SIZE,
        title=_optional_text(query, "title"),
        image_dpi=image_dpi,
        image_quality=image_quality,
        margin_left=_optional_text(query, "marginleft"),
        margin_right=_optional_text(query, "marginright"),
        margin_top=_optional_text(query, "margintop"),
        margin_bottom=_optional_text(query, "marginbottom"),
        smart_shrinking=not parse_bool_option(query, "shrinking"),
    )


def validate_render_options(
    query: Mapping[str, str],
) -> Tuple[Optional[RenderOptions], Optional[ValidationError]]:
    try:
        return parse_render_options(query), None
    except OptionError as exc:
        return None, (400, {"error": "invalid_option", "detail": str(exc)})


def build_renderer_args(options: RenderOptions) -> List[str]:
    args = ["--encoding", "utf-8"]
    if options.grayscale:
        args.append("--grayscale")
    for flag, value in (
        ("--margin-left", options.margin_left),
        ("--margin-right", options.margin_right),
        ("--margin-top", options.margin_top),
        ("--margin-bottom", options.margin_bottom),
    ):
        if value:
            args.extend((flag, value))
    if options.low_quality:
        args.append("--lowquality")
    if options.enable_forms:
        args.append("--enable-forms")
    if not options.include_images:
        args.append("--no-images")
    if not options.smart_shrinking:
        args.append("--disable-smart-shrinking")
    if not options.include_javascript:
        args.append("--disable-javascript")
    args.extend(("--orientation", options.orientation.value))
    args.extend(("--page-size", options.page_size))
    if options.title:
        args.extend(("--title", options.title))
    if options.image_dpi is not None:
        args.extend(("--image-dpi", str(options.image_dpi)))
    if options.image_quality is not None:
        args.extend(("--image-quality", str(options.image_quality)))
    # Positional "-" "-" means stdin in, stdout out; flags must precede them.
    args.append("--include-in-outline")
    args.extend(("-", "-"))
    return args


def translate_request(query: Mapping[str, str]) -> Tuple[RenderOptions, List[str]]:
    options = parse_render_options(query)
    return options, build_renderer_args(options)
