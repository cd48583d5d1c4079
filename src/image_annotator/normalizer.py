"""
Turn the analysis service's JSON reply into a caption and a flat keyword list.

The reply is a tree of optional branches. Every node has its own schema below and is
validated on its own, so a malformed entry only loses that entry's keywords and a
malformed branch only loses that branch's.
"""

from collections.abc import Callable, Iterable, Iterator, Mapping
from typing import Any, TypeVar

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel


MAX_PARENT_DEPTH = 32
MONOCHROME_TOKEN = "Monochrome"
COLOR_IMAGE_TOKEN = "ColorImage"
CLIPART_TOKEN = "Clipart"
LINEDRAWING_TOKEN = "Linedrawing"
PEOPLE_CATEGORY = "people"

T = TypeVar("T")


class _Node(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class Caption(_Node):
    text: str | None = None
    confidence: float | None = None


class Landmark(_Node):
    name: str | None = None


class Category(_Node):
    """A scene category; its `detail` subtree is read separately."""

    name: str | None = None
    score: float | None = None


class Face(_Node):
    age: int | float | None = None
    gender: str | None = None


class ColorInfo(_Node):
    """Scalar color fields; `dominantColors` is read entry by entry."""

    dominant_color_foreground: str | None = None
    dominant_color_background: str | None = None
    accent_color: str | None = None
    is_bw_img: bool | None = Field(default=None, alias="isBWImg")


class ImageType(_Node):
    clip_art_type: int = 0
    line_drawing_type: int = 0


class DetectedObject(_Node):
    """One node of an object hierarchy; `parent` is followed separately."""

    name: str | None = Field(default=None, alias="object")
    confidence: float | None = None


class NamedEntry(_Node):
    name: str | None = None
    confidence: float | None = None


_CAPTION = TypeAdapter(Caption)
_STRING = TypeAdapter(str)
_CATEGORY = TypeAdapter(Category)
_LANDMARK = TypeAdapter(Landmark)
_FACE = TypeAdapter(Face)
_COLOR = TypeAdapter(ColorInfo)
_IMAGE_TYPE = TypeAdapter(ImageType)
_OBJECT = TypeAdapter(DetectedObject)
_NAMED = TypeAdapter(NamedEntry)


class KeywordSet:
    """
    Insertion-ordered keywords without case-insensitive duplicates.

    Examples:
        >>> kws = KeywordSet()
        >>> kws.extend(["Dog", "dog", " ", "grass"])
        >>> list(kws)
        ['Dog', 'grass']

    """

    def __init__(self) -> None:
        self._items: list[str] = []
        self._seen: set[str] = set()

    def add(self, value: object) -> bool:
        if value is None:
            return False
        keyword = str(value).strip()
        key = keyword.casefold()
        if not keyword or key in self._seen:
            return False
        self._seen.add(key)
        self._items.append(keyword)
        return True

    def extend(self, values: Iterable[object]) -> None:
        for value in values:
            self.add(value)

    def __contains__(self, value: object) -> bool:
        return isinstance(value, str) and value.strip().casefold() in self._seen

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)


class AnalysisResult(BaseModel):
    """Caption and keywords derived from one analysis reply."""

    model_config = ConfigDict(frozen=True)

    description: str = ""
    keywords: tuple[str, ...] = ()


def _branch(node: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    """Return the object under `key`, an empty mapping if absent; raise if not an object."""
    value = node.get(key)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        msg = f"{key} is {type(value).__name__}, expected an object"
        raise TypeError(msg)
    return value


def _array(node: Mapping[str, Any], key: str) -> list[Any]:
    """Return the array under `key`, an empty list if absent; raise if not an array."""
    items = node.get(key)
    if items is None:
        return []
    if not isinstance(items, list):
        msg = f"{key} is {type(items).__name__}, expected an array"
        raise TypeError(msg)
    return items


def _validated(
    node: Mapping[str, Any],
    key: str,
    adapter: TypeAdapter[T],
) -> Iterator[tuple[Any, T]]:
    """
    Validate the array under `key` entry by entry, yielding (raw entry, parsed entry).

    Entries that fail validation are logged and skipped; the rest are yielded in order.
    """
    for index, item in enumerate(_array(node, key)):
        try:
            parsed = adapter.validate_python(item)
        except ValidationError as exc:
            logger.warning(
                "analysis_entry_skipped",
                branch=key,
                index=index,
                error=str(exc.errors(include_url=False)),
            )
            continue
        yield item, parsed


def _entries(node: Mapping[str, Any], key: str, adapter: TypeAdapter[T]) -> Iterator[T]:
    """
    Validate the array under `key` entry by entry, skipping malformed entries.

    Examples:
        >>> list(_entries({"tags": ["a", 5, "b"]}, "tags", _STRING))
        ['a', 'b']

    """
    for _, parsed in _validated(node, key, adapter):
        yield parsed


def extract_caption(raw: Mapping[str, Any]) -> str:
    """Return the first caption text, or an empty string."""
    captions = _array(_branch(raw, "description"), "captions")
    if not captions:
        return ""
    return _CAPTION.validate_python(captions[0]).text or ""


def _category_keywords(raw: Mapping[str, Any]) -> Iterator[str | None]:
    for item, category in _validated(raw, "categories", _CATEGORY):
        yield category.name
        if category.name != PEOPLE_CATEGORY:
            continue
        try:
            landmarks = list(_entries(_branch(item, "detail"), "landmarks", _LANDMARK))
        except TypeError as exc:
            logger.warning("category_detail_skipped", category=category.name, error=str(exc))
            continue
        for landmark in landmarks:
            yield landmark.name


def _face_keywords(raw: Mapping[str, Any]) -> Iterator[str | None]:
    for face in _entries(raw, "faces", _FACE):
        if face.age is not None:
            yield str(face.age)
        yield face.gender


def _color_keywords(raw: Mapping[str, Any]) -> Iterator[str | None]:
    branch = _branch(raw, "color")
    if not branch:
        return
    color = _COLOR.validate_python(branch)
    yield color.dominant_color_foreground
    yield color.dominant_color_background
    yield color.accent_color
    if color.is_bw_img is not None:
        yield MONOCHROME_TOKEN if color.is_bw_img else COLOR_IMAGE_TOKEN
    yield from _entries(branch, "dominantColors", _STRING)


def _image_type_keywords(raw: Mapping[str, Any]) -> Iterator[str]:
    branch = _branch(raw, "imageType")
    if not branch:
        return
    image_type = _IMAGE_TYPE.validate_python(branch)
    if image_type.clip_art_type > 0:
        yield CLIPART_TOKEN
    if image_type.line_drawing_type > 0:
        yield LINEDRAWING_TOKEN


def object_lineage(node: object, max_depth: int = MAX_PARENT_DEPTH) -> list[str]:
    """
    Return an object's name followed by its ancestors' names, nearest first.

    Each node is validated as it is reached, so a malformed ancestor ends the walk without
    losing the names collected below it. At most `max_depth` ancestors are followed.

    Examples:
        >>> object_lineage(
        ...     {"object": "beagle", "parent": {"object": "dog", "parent": {"object": "mammal"}}}
        ... )
        ['beagle', 'dog', 'mammal']
        >>> object_lineage({"object": "beagle", "parent": "broken"})
        ['beagle']

    """
    names: list[str] = []
    current: object = node
    depth = 0
    while current is not None:
        try:
            detected = _OBJECT.validate_python(current)
        except ValidationError as exc:
            logger.warning(
                "object_node_skipped",
                depth=depth,
                error=str(exc.errors(include_url=False)),
            )
            break
        if detected.name:
            names.append(detected.name)
        current = current.get("parent") if isinstance(current, Mapping) else None
        if current is not None and depth >= max_depth:
            logger.warning("object_parent_chain_truncated", object=names[:1], max_depth=max_depth)
            break
        depth += 1
    return names


def _object_keywords(raw: Mapping[str, Any]) -> Iterator[str]:
    for item in _array(raw, "objects"):
        yield from object_lineage(item)


def _description_tag_keywords(raw: Mapping[str, Any]) -> Iterator[str]:
    yield from _entries(_branch(raw, "description"), "tags", _STRING)


def _tag_keywords(raw: Mapping[str, Any]) -> Iterator[str | None]:
    for tag in _entries(raw, "tags", _NAMED):
        yield tag.name


def _brand_keywords(raw: Mapping[str, Any]) -> Iterator[str | None]:
    for brand in _entries(raw, "brands", _NAMED):
        yield brand.name


KEYWORD_STEPS: tuple[tuple[str, Callable[[Mapping[str, Any]], Iterable[object]]], ...] = (
    ("categories", _category_keywords),
    ("faces", _face_keywords),
    ("color", _color_keywords),
    ("image_type", _image_type_keywords),
    ("objects", _object_keywords),
    ("description_tags", _description_tag_keywords),
    ("tags", _tag_keywords),
    ("brands", _brand_keywords),
)


def normalize(raw: object) -> AnalysisResult:
    """
    Build an AnalysisResult from a raw analysis reply. Never raises.

    Keyword sources are read in a fixed order (categories, faces, color, image type,
    objects, description tags, tags, brands). A source that fails to parse is logged and
    skipped; keywords already collected, and those from later sources, are kept.

    Examples:
        >>> normalize({"description": {"captions": [{"text": "a dog"}], "tags": ["Dog", "dog"]}})
        AnalysisResult(description='a dog', keywords=('Dog',))
        >>> normalize("not a document")
        AnalysisResult(description='', keywords=())

    """
    if not isinstance(raw, Mapping):
        logger.warning("analysis_payload_not_an_object", type=type(raw).__name__)
        return AnalysisResult()

    try:
        caption = extract_caption(raw)
    except Exception as exc:  # noqa: BLE001
        logger.warning("caption_extraction_failed", error=str(exc))
        caption = ""

    keywords = KeywordSet()
    for step, extractor in KEYWORD_STEPS:
        collected = len(keywords)
        try:
            # Keywords yielded before a failure stay in the set.
            for value in extractor(raw):
                keywords.add(value)
        except Exception as exc:  # noqa: BLE001
            logger.warning("normalization_step_failed", step=step, error=str(exc))
            continue
        logger.debug("normalization_step_done", step=step, added=len(keywords) - collected)

    result = AnalysisResult(description=caption, keywords=tuple(keywords))
    logger.debug("analysis_normalized", description=result.description, keywords=result.keywords)
    return result
