# SPDX-License-Identifier: MIT

"""Tree model helpers on top of lxml: parse, write, compare and edit elements."""

import copy
import logging

from lxml import etree

from .errors import ParseError

log = logging.getLogger(__name__)

TRUTHY = frozenset(('1', 'yes', 'true', 'enabled', 'on'))


def _parser():
    return etree.XMLParser(remove_blank_text=True, remove_comments=True,
                           remove_pis=True, strip_cdata=True)


def _clean(root):
    """Drop whitespace-only text and every tail."""
    for el in root.iter():
        if el.text is not None and not el.text.strip():
            el.text = None
        el.tail = None
    return root


def parse_bytes(data, name='<input>'):
    """Parse XML bytes into a root element."""
    try:
        root = etree.fromstring(data, _parser())
    except etree.XMLSyntaxError as e:
        raise ParseError(f"malformed XML in {name}: {e}") from e
    return _clean(root)


def parse_file(path):
    """Parse an XML file into a root element."""
    with open(path, 'rb') as file:
        data = file.read()
    return parse_bytes(data, str(path))


def to_bytes(root):
    """Serialize a tree with sorted attributes and self-closing empty elements."""
    out = copy.deepcopy(root)
    for el in out.iter():
        if el.attrib:
            items = sorted(el.attrib.items())
            el.attrib.clear()
            for key, value in items:
                el.set(key, value)
        if el.text == '':
            el.text = None
        el.tail = None
    return etree.tostring(out, pretty_print=True, xml_declaration=True, encoding='UTF-8')


def write_file(root, filename):
    """Write the tree to a file."""
    with open(filename, 'wb') as file:
        file.write(to_bytes(root))


def new_root(tag):
    return etree.Element(tag)


def clone(node):
    return copy.deepcopy(node)


def norm_text(text):
    """Trimmed text, or None when there is nothing left."""
    if text is None:
        return None
    text = text.strip()
    return text or None


def text_at(node, *path):
    """Raw text of the element reached by following nested tags, or None."""
    current = node
    for tag in path:
        current = current.find(tag)
        if current is None:
            return None
    return current.text


def text_of(node, *path, default=''):
    """Trimmed text at a path, or default when missing or blank."""
    value = norm_text(text_at(node, *path))
    return default if value is None else value


def child_at(node, *path):
    current = node
    for tag in path:
        current = current.find(tag)
        if current is None:
            return None
    return current


def is_truthy(value):
    if value is None:
        return False
    return value.strip().lower() in TRUTHY


def ensure_child(parent, tag):
    """Return the first child with this tag, creating it when missing."""
    child = parent.find(tag)
    if child is None:
        child = etree.SubElement(parent, tag)
    return child


def ensure_path(parent, *path):
    current = parent
    for tag in path:
        current = ensure_child(current, tag)
    return current


def add_text(parent, tag, value):
    """Append a new child carrying text."""
    child = etree.SubElement(parent, tag)
    child.text = value or None
    return child


def set_text(parent, tag, value):
    """Set the text of the first child with this tag, appending it if needed."""
    child = ensure_child(parent, tag)
    child.text = value or None
    return child


def upsert_child(parent, child):
    """Replace the first child sharing the tag of child, or append it."""
    existing = parent.find(child.tag)
    if existing is not None:
        parent.replace(existing, child)
    else:
        parent.append(child)
    return child


def remove_children(parent, tag):
    """Remove every direct child with this tag; return how many went."""
    removed = parent.findall(tag)
    for child in removed:
        parent.remove(child)
    return len(removed)


def retag_copy(node, tag):
    """Deep copy of node with a new tag."""
    out = copy.deepcopy(node)
    out.tag = tag
    return out


def structurally_equal(left, right):
    """Compare tag, attributes, normalized text and children recursively."""
    if left.tag != right.tag:
        return False
    if dict(left.attrib) != dict(right.attrib):
        return False
    if norm_text(left.text) != norm_text(right.text):
        return False
    if len(left) != len(right):
        return False
    return all(structurally_equal(a, b) for a, b in zip(left, right))
