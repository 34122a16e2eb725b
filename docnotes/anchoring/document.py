"""In-memory rich-text document used by the live anchor tracker.

The model is deliberately small: an ordered list of blocks, each holding
text nodes that carry a set of marks. Positions follow the usual rich-text
editor convention where every block occupies one position before and one
after its content, so the first character of the document sits at 1.
"""

from __future__ import annotations

import html as html_lib
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, Iterable, Iterator, List, Optional, Tuple

from bs4 import (  # type: ignore
    BeautifulSoup,
    Comment,
    Declaration,
    Doctype,
    NavigableString,
    ProcessingInstruction,
    Tag,
)

ANNOTATION = "annotation"

BLOCK_TAGS = ["p", "h1", "h2", "h3", "h4", "h5", "h6", "li", "blockquote", "pre"]

# Structural wrappers: never a block themselves, but text loose inside one
# still becomes a paragraph of its own.
CONTAINER_TAGS = {
    "html", "body", "div", "section", "article", "main", "header", "footer",
    "aside", "nav", "ul", "ol", "dl", "dt", "dd", "table", "thead", "tbody",
    "tfoot", "tr", "td", "th", "figure", "figcaption",
}

SKIPPED_TAGS = {"head", "script", "style", "template"}

_IGNORED_STRINGS = (Comment, Declaration, Doctype, ProcessingInstruction)

FORMAT_TAGS: Dict[str, str] = {
    "strong": "bold",
    "b": "bold",
    "em": "italic",
    "i": "italic",
    "u": "underline",
    "s": "strike",
    "code": "code",
}

_FORMAT_RENDER: Dict[str, str] = {
    "bold": "strong",
    "italic": "em",
    "underline": "u",
    "strike": "s",
    "code": "code",
}

_ANNOTATION_ATTRIBUTES = (
    ("id", "data-comment-id"),
    ("label", "data-comment-number"),
    ("resolved", "data-resolved"),
)


@dataclass(frozen=True)
class Mark:
    """A tag attached to a run of text; ``attrs`` is kept hashable."""

    type: str
    attrs: Tuple[Tuple[str, Any], ...] = ()

    @classmethod
    def create(cls, type: str, **attrs: Any) -> "Mark":
        return cls(type=type, attrs=tuple(sorted(attrs.items())))

    @property
    def attributes(self) -> Dict[str, Any]:
        return dict(self.attrs)


def annotation_mark(annotation_id: str, label: int, resolved: bool = False) -> Mark:
    """Build the mark used to tag annotated text."""

    return Mark.create(ANNOTATION, id=annotation_id, label=label, resolved=resolved)


@dataclass(frozen=True)
class TextNode:
    text: str
    marks: FrozenSet[Mark] = frozenset()


@dataclass(frozen=True)
class Block:
    """A paragraph-like container of text nodes."""

    tag: str = "p"
    nodes: Tuple[TextNode, ...] = ()

    @property
    def text(self) -> str:
        return "".join(node.text for node in self.nodes)

    @property
    def length(self) -> int:
        return sum(len(node.text) for node in self.nodes)


_Char = Tuple[str, FrozenSet[Mark]]
Listener = Callable[["EditorDocument"], None]


def _chars(block: Block) -> List[_Char]:
    return [(char, node.marks) for node in block.nodes for char in node.text]


def _build(tag: str, chars: Iterable[_Char]) -> Block:
    """Rebuild a block, merging neighbouring characters with equal marks."""

    nodes: List[TextNode] = []
    buffer: List[str] = []
    current: Optional[FrozenSet[Mark]] = None
    for char, marks in chars:
        if current is not None and marks != current:
            nodes.append(TextNode("".join(buffer), current))
            buffer = []
        buffer.append(char)
        current = marks
    if buffer and current is not None:
        nodes.append(TextNode("".join(buffer), current))
    return Block(tag=tag, nodes=tuple(nodes))


def _inherited_marks(chars: List[_Char], offset: int) -> FrozenSet[Mark]:
    """Marks for text typed at ``offset``.

    Formatting follows the preceding character. Annotation marks are only
    kept when the text lands strictly inside the annotated run.
    """

    before = chars[offset - 1][1] if offset > 0 else None
    after = chars[offset][1] if offset < len(chars) else None

    source = before if before is not None else (after or frozenset())
    formatting = {mark for mark in source if mark.type != ANNOTATION}
    annotations = set()
    if before is not None and after is not None:
        annotations = {mark for mark in before if mark.type == ANNOTATION and mark in after}
    return frozenset(formatting | annotations)


def _with_mark(marks: FrozenSet[Mark], mark: Mark) -> FrozenSet[Mark]:
    if mark.type == ANNOTATION:
        annotation_id = mark.attributes.get("id")
        kept = {
            existing
            for existing in marks
            if existing.type != ANNOTATION or existing.attributes.get("id") != annotation_id
        }
    else:
        kept = {existing for existing in marks if existing.type != mark.type}
    return frozenset(kept | {mark})


class EditorDocument:
    """Mutable document with change notification and snapshot undo/redo."""

    def __init__(self, blocks: Iterable[Block] | None = None) -> None:
        self._blocks: Tuple[Block, ...] = tuple(blocks or ()) or (Block(),)
        self._undo: List[Tuple[Block, ...]] = []
        self._redo: List[Tuple[Block, ...]] = []
        self._listeners: List[Listener] = []

    # -- construction -------------------------------------------------

    @classmethod
    def from_text(cls, text: str, separator: str = "\n") -> "EditorDocument":
        lines = text.split(separator) if separator else [text]
        return cls(Block(nodes=(TextNode(line),) if line else ()) for line in lines)

    @classmethod
    def from_html(cls, markup: str) -> "EditorDocument":
        """Parse editor HTML, keeping annotation and formatting marks.

        Every run of inline content becomes a block: the text of a block
        element before and after a nested block, and text loose in the body
        or in a container such as a list or table cell. Only whitespace-only
        runs outside any block element are dropped.
        """

        walker = _BlockWalker()
        walker.walk(_make_soup(markup or ""))
        walker.flush()
        return cls(walker.blocks)

    # -- inspection ---------------------------------------------------

    @property
    def blocks(self) -> Tuple[Block, ...]:
        return self._blocks

    @property
    def size(self) -> int:
        return sum(block.length + 2 for block in self._blocks)

    def iter_text_nodes(self) -> Iterator[Tuple[int, TextNode]]:
        """Yield ``(position, node)`` for every text node in document order."""

        cursor = 0
        for block in self._blocks:
            position = cursor + 1
            for node in block.nodes:
                yield position, node
                position += len(node.text)
            cursor += block.length + 2

    def get_text(self, separator: str = "\n") -> str:
        return separator.join(block.text for block in self._blocks)

    def text_between(self, start: int, end: int, separator: str = "\n") -> str:
        if start > end:
            raise ValueError(f"Invalid range [{start}, {end})")
        first, first_offset = self._resolve(start)
        last, last_offset = self._resolve(end)
        pieces = []
        for index in range(first, last + 1):
            text = self._blocks[index].text
            lower = first_offset if index == first else 0
            upper = last_offset if index == last else len(text)
            pieces.append(text[lower:upper])
        return separator.join(pieces)

    def position_for_offset(self, offset: int, separator: str = "\n") -> int:
        """Map an offset into ``get_text(separator)`` to a document position.

        Offsets that fall on a separator map to the end of the block before
        it; offsets past the end clamp to the end of the last block.
        """

        remaining = max(offset, 0)
        cursor = 0
        for block in self._blocks:
            if remaining <= block.length:
                return cursor + 1 + remaining
            remaining -= block.length
            if remaining < len(separator):
                return cursor + 1 + block.length
            remaining -= len(separator)
            cursor += block.length + 2
        return self.size - 1

    def offset_for_position(self, position: int, separator: str = "\n") -> int:
        """Inverse of :meth:`position_for_offset` for text positions."""

        index, offset = self._resolve(position)
        before = sum(block.length + len(separator) for block in self._blocks[:index])
        return before + offset

    # -- editing ------------------------------------------------------

    def insert_text(self, position: int, text: str) -> bool:
        if not text:
            return False
        index, offset = self._resolve(position)
        block = self._blocks[index]
        chars = _chars(block)
        marks = _inherited_marks(chars, offset)

        lines = text.split("\n")
        head, tail = chars[:offset], chars[offset:]
        if len(lines) == 1:
            replacement = [_build(block.tag, head + [(char, marks) for char in text] + tail)]
        else:
            replacement = [_build(block.tag, head + [(char, marks) for char in lines[0]])]
            for line in lines[1:-1]:
                replacement.append(_build(block.tag, [(char, marks) for char in line]))
            replacement.append(_build(block.tag, [(char, marks) for char in lines[-1]] + tail))
        return self._commit(self._blocks[:index] + tuple(replacement) + self._blocks[index + 1:])

    def delete_range(self, start: int, end: int) -> bool:
        """Delete ``[start, end)``, joining blocks when the range crosses one."""

        if start > end:
            raise ValueError(f"Invalid range [{start}, {end})")
        first, first_offset = self._resolve(start)
        last, last_offset = self._resolve(end)
        if first == last:
            chars = _chars(self._blocks[first])
            merged = _build(self._blocks[first].tag, chars[:first_offset] + chars[last_offset:])
        else:
            head = _chars(self._blocks[first])[:first_offset]
            tail = _chars(self._blocks[last])[last_offset:]
            merged = _build(self._blocks[first].tag, head + tail)
        return self._commit(self._blocks[:first] + (merged,) + self._blocks[last + 1:])

    def split_block(self, position: int) -> bool:
        index, offset = self._resolve(position)
        block = self._blocks[index]
        chars = _chars(block)
        halves = (_build(block.tag, chars[:offset]), _build(block.tag, chars[offset:]))
        return self._commit(self._blocks[:index] + halves + self._blocks[index + 1:])

    def add_mark(self, start: int, end: int, mark: Mark) -> bool:
        return self._map_marks(start, end, lambda marks: _with_mark(marks, mark))

    def remove_annotation(self, annotation_id: str) -> bool:
        def strip(marks: FrozenSet[Mark]) -> FrozenSet[Mark]:
            return frozenset(
                mark
                for mark in marks
                if mark.type != ANNOTATION or mark.attributes.get("id") != annotation_id
            )

        return self._map_marks(0, self.size, strip)

    def undo(self) -> bool:
        if not self._undo:
            return False
        self._redo.append(self._blocks)
        self._blocks = self._undo.pop()
        self._notify()
        return True

    def redo(self) -> bool:
        if not self._redo:
            return False
        self._undo.append(self._blocks)
        self._blocks = self._redo.pop()
        self._notify()
        return True

    # -- notification -------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for change notifications; returns an unsubscriber."""

        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # -- rendering ----------------------------------------------------

    def to_html(self) -> str:
        parts = []
        for block in self._blocks:
            inner = "".join(_render_node(node) for node in block.nodes)
            parts.append(f"<{block.tag}>{inner}</{block.tag}>")
        return "".join(parts)

    # -- internals ----------------------------------------------------

    def _resolve(self, position: int) -> Tuple[int, int]:
        """Map a document position to ``(block index, character offset)``.

        Positions on structural tokens snap to the nearest text position and
        anything outside the document is clamped.
        """

        cursor = 0
        for index, block in enumerate(self._blocks):
            length = block.length
            if position <= cursor + length + 1:
                return index, max(0, min(position - cursor - 1, length))
            cursor += length + 2
        last = len(self._blocks) - 1
        return last, self._blocks[last].length

    def _map_marks(self, start: int, end: int, transform: Callable[[FrozenSet[Mark]], FrozenSet[Mark]]) -> bool:
        if start > end:
            raise ValueError(f"Invalid range [{start}, {end})")
        first, first_offset = self._resolve(start)
        last, last_offset = self._resolve(end)
        blocks = list(self._blocks)
        for index in range(first, last + 1):
            chars = _chars(blocks[index])
            lower = first_offset if index == first else 0
            upper = last_offset if index == last else len(chars)
            chars[lower:upper] = [(char, transform(marks)) for char, marks in chars[lower:upper]]
            blocks[index] = _build(blocks[index].tag, chars)
        return self._commit(tuple(blocks))

    def _commit(self, blocks: Tuple[Block, ...]) -> bool:
        if blocks == self._blocks:
            return False
        self._undo.append(self._blocks)
        self._redo.clear()
        self._blocks = blocks
        self._notify()
        return True

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)


def _make_soup(markup: str) -> BeautifulSoup:
    try:
        return BeautifulSoup(markup, "lxml")
    except Exception:
        # Fallback to html.parser if lxml isn't installed
        return BeautifulSoup(markup, "html.parser")


def _marks_for(element: Tag) -> FrozenSet[Mark]:
    if element.name == "mark" and element.has_attr("data-comment-id"):
        attrs = {
            name: element.get(html_name)
            for name, html_name in _ANNOTATION_ATTRIBUTES
            if element.has_attr(html_name)
        }
        return frozenset({Mark.create(ANNOTATION, **attrs)})
    if element.name in FORMAT_TAGS:
        return frozenset({Mark.create(FORMAT_TAGS[element.name])})
    return frozenset()


class _BlockWalker:
    """Flatten a parsed HTML tree into blocks of marked characters."""

    def __init__(self) -> None:
        self.blocks: List[Block] = []
        self._chars: List[_Char] = []
        self._tags: List[str] = []

    def walk(self, element: Tag, marks: FrozenSet[Mark] = frozenset(), preformatted: bool = False) -> None:
        for child in element.children:
            if isinstance(child, _IGNORED_STRINGS):
                continue
            if isinstance(child, NavigableString):
                text = str(child)
                if not preformatted:
                    text = text.replace("\n", " ")
                self._chars.extend((char, marks) for char in text)
            elif isinstance(child, Tag) and child.name not in SKIPPED_TAGS:
                if child.name in BLOCK_TAGS:
                    self._walk_block(child, marks, preformatted)
                elif child.name in CONTAINER_TAGS:
                    self.flush()
                    self.walk(child, marks, preformatted)
                    self.flush()
                else:
                    self.walk(child, _with_marks(marks, _marks_for(child)), preformatted)

    def _walk_block(self, element: Tag, marks: FrozenSet[Mark], preformatted: bool) -> None:
        self.flush()
        self._tags.append(element.name)
        before = len(self.blocks)
        self.walk(element, marks, preformatted or element.name == "pre")
        # A block element with no nested blocks is kept even when empty.
        self.flush(keep_empty=len(self.blocks) == before)
        self._tags.pop()

    def flush(self, keep_empty: bool = False) -> None:
        chars, self._chars = self._chars, []
        if keep_empty or any(not char.isspace() for char, _ in chars):
            self.blocks.append(_build(self._tags[-1] if self._tags else "p", chars))


def _with_marks(marks: FrozenSet[Mark], added: FrozenSet[Mark]) -> FrozenSet[Mark]:
    for mark in added:
        marks = _with_mark(marks, mark)
    return marks


def _render_node(node: TextNode) -> str:
    rendered = html_lib.escape(node.text, quote=False)
    formatting = sorted(mark.type for mark in node.marks if mark.type in _FORMAT_RENDER)
    for mark_type in formatting:
        tag = _FORMAT_RENDER[mark_type]
        rendered = f"<{tag}>{rendered}</{tag}>"

    annotations = sorted(
        (mark for mark in node.marks if mark.type == ANNOTATION),
        key=lambda mark: str(mark.attributes.get("id")),
    )
    for mark in annotations:
        attributes = mark.attributes
        rendered_attrs = ['class="comment-highlight"']
        for name, html_name in _ANNOTATION_ATTRIBUTES:
            if name not in attributes or attributes[name] is None:
                continue
            value = attributes[name]
            if isinstance(value, bool):
                value = "true" if value else "false"
            rendered_attrs.append(f'{html_name}="{html_lib.escape(str(value), quote=True)}"')
        rendered = f"<mark {' '.join(rendered_attrs)}>{rendered}</mark>"
    return rendered
