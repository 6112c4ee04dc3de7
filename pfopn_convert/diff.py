# SPDX-License-Identifier: MIT

"""Structural diff between two configuration trees, plus its formatters."""

import json
from dataclasses import dataclass, field
from typing import Any

from .xmltree import norm_text


@dataclass(frozen=True)
class Identical:
    path: str
    type = 'identical'


@dataclass(frozen=True)
class Modified:
    path: str
    left: str
    right: str
    type = 'modified'


@dataclass(frozen=True)
class OnlyLeft:
    path: str
    node: Any = field(compare=False)
    type = 'only_left'


@dataclass(frozen=True)
class OnlyRight:
    path: str
    node: Any = field(compare=False)
    type = 'only_right'


@dataclass(frozen=True)
class Structural:
    path: str
    description: str
    type = 'structural'


@dataclass
class DiffOptions:
    ignore_paths: list = field(default_factory=list)
    key_fields: dict = field(default_factory=dict)
    include_identical: bool = False
    max_depth: int = -1


def should_ignore(path, ignore_paths):
    """True when path falls under any ignore prefix, root-qualified or not."""
    for prefix in ignore_paths:
        if path == prefix or path.startswith(prefix + '.') or path.startswith(prefix + '['):
            return True
        if path.endswith('.' + prefix) or ('.' + prefix + '.') in path or ('.' + prefix + '[') in path:
            return True
    return False


def _signature(node):
    attrs = dict(sorted(node.attrib.items()))
    return f"attributes={attrs}, text={norm_text(node.text)!r}"


def _group_children(left, right):
    order = []
    groups = {}
    for side, parent in ((0, left), (1, right)):
        for child in parent:
            if child.tag not in groups:
                groups[child.tag] = ([], [])
                order.append(child.tag)
            groups[child.tag][side].append(child)
    return [(tag, groups[tag][0], groups[tag][1]) for tag in order]


def _key_of(node, key_field):
    return norm_text(node.findtext(key_field))


class _Differ:

    def __init__(self, options):
        self.options = options
        self.out = []

    def emit(self, entry):
        if not should_ignore(entry.path, self.options.ignore_paths):
            self.out.append(entry)

    def node(self, left, right, path, depth):
        if should_ignore(path, self.options.ignore_paths):
            return
        start = len(self.out)
        if left.tag != right.tag:
            self.emit(Structural(path, f"tag mismatch: left='{left.tag}' right='{right.tag}'"))
        if dict(left.attrib) != dict(right.attrib) or norm_text(left.text) != norm_text(right.text):
            self.emit(Modified(path, _signature(left), _signature(right)))
        if self.options.max_depth < 0 or depth < self.options.max_depth:
            self.children(left, right, path, depth)
        if self.options.include_identical and len(self.out) == start:
            self.emit(Identical(path))

    def children(self, left, right, path, depth):
        for tag, lefts, rights in _group_children(left, right):
            key_field = self.options.key_fields.get(tag)
            if key_field is None:
                self.by_index(tag, lefts, rights, path, depth)
            else:
                self.by_key(tag, key_field, lefts, rights, path, depth)

    def by_index(self, tag, lefts, rights, path, depth):
        for i in range(max(len(lefts), len(rights))):
            child_path = f"{path}.{tag}[{i + 1}]"
            if i < len(lefts) and i < len(rights):
                self.node(lefts[i], rights[i], child_path, depth + 1)
            elif i < len(lefts):
                self.emit(OnlyLeft(child_path, lefts[i]))
            else:
                self.emit(OnlyRight(child_path, rights[i]))

    def by_key(self, tag, key_field, lefts, rights, path, depth):
        used = [False] * len(rights)
        for idx, left in enumerate(lefts):
            key = _key_of(left, key_field)
            child_path = f"{path}.{tag}[{key if key is not None else idx + 1}]"
            match = None
            if key is not None:
                for j, right in enumerate(rights):
                    if not used[j] and _key_of(right, key_field) == key:
                        match = j
                        break
            if match is None and idx < len(rights) and not used[idx]:
                match = idx
            if match is None:
                self.emit(OnlyLeft(child_path, left))
                continue
            used[match] = True
            self.node(left, rights[match], child_path, depth + 1)
        for j, right in enumerate(rights):
            if used[j]:
                continue
            key = _key_of(right, key_field)
            self.emit(OnlyRight(f"{path}.{tag}[{key if key is not None else j + 1}]", right))


def diff(left, right, options=None):
    """Diff two trees; the result only depends on the trees and options."""
    differ = _Differ(options or DiffOptions())
    differ.node(left, right, left.tag, 0)
    return differ.out


def count_by_type(entries):
    counts = {'identical': 0, 'modified': 0, 'only_left': 0, 'only_right': 0, 'structural': 0}
    for entry in entries:
        counts[entry.type] += 1
    return counts


def format_summary(entries):
    counts = count_by_type(entries)
    return ' '.join(f"{name}={value}" for name, value in counts.items())


def format_text(entries):
    lines = []
    for entry in entries:
        if isinstance(entry, Identical):
            lines.append(f"= {entry.path}")
        elif isinstance(entry, Modified):
            lines.append(f"~ {entry.path}")
            lines.append(f"  left:  {entry.left}")
            lines.append(f"  right: {entry.right}")
        elif isinstance(entry, OnlyLeft):
            lines.append(f"- {entry.path}")
        elif isinstance(entry, OnlyRight):
            lines.append(f"+ {entry.path}")
        else:
            lines.append(f"! {entry.path}: {entry.description}")
    return '\n'.join(lines)


def _as_dict(entry):
    data = {'type': entry.type, 'path': entry.path}
    if isinstance(entry, Modified):
        data['left'] = entry.left
        data['right'] = entry.right
    elif isinstance(entry, (OnlyLeft, OnlyRight)):
        data['tag'] = entry.node.tag
    elif isinstance(entry, Structural):
        data['description'] = entry.description
    return data


def format_json(entries):
    return json.dumps([_as_dict(e) for e in entries], indent=2)
