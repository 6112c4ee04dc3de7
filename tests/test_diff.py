# SPDX-License-Identifier: MIT

import json

from pfopn_convert.diff import (DiffOptions, Identical, Modified, OnlyLeft, OnlyRight, Structural,
                                count_by_type, diff, format_json, format_summary, format_text,
                                should_ignore)
from pfopn_convert.xmltree import parse_bytes


def _x(data):
    return parse_bytes(data.encode('utf-8'))


def test_identical_trees_have_no_entries(pfsense_source):
    assert diff(pfsense_source, pfsense_source) == []


def test_diff_is_deterministic(pfsense_source, opnsense_baseline):
    first = format_json(diff(pfsense_source, opnsense_baseline))
    second = format_json(diff(pfsense_source, opnsense_baseline))
    assert first == second


def test_modified_text():
    entries = diff(_x("<r><a>1</a></r>"), _x("<r><a>2</a></r>"))
    assert entries == [Modified('r.a[1]', "attributes={}, text='1'", "attributes={}, text='2'")]


def test_modified_attributes():
    entries = diff(_x('<r><a k="1"/></r>'), _x('<r><a k="2"/></r>'))
    assert len(entries) == 1
    assert entries[0].type == 'modified'
    assert "'k': '1'" in entries[0].left


def test_only_left_and_only_right():
    entries = diff(_x("<r><a/><a/><b/></r>"), _x("<r><a/><c/></r>"))
    assert [(e.type, e.path) for e in entries] == [
        ('only_left', 'r.a[2]'),
        ('only_left', 'r.b[1]'),
        ('only_right', 'r.c[1]'),
    ]
    assert entries[0].node.tag == 'a'


def test_tag_mismatch_still_compares_children():
    entries = diff(_x("<a><x>1</x></a>"), _x("<b><x>2</x></b>"))
    assert entries[0] == Structural('a', "tag mismatch: left='a' right='b'")
    assert isinstance(entries[1], Modified)
    assert entries[1].path == 'a.x[1]'


def test_groups_follow_first_appearance():
    entries = diff(_x("<r><b>1</b><a>1</a></r>"), _x("<r><c/><a>2</a><b>2</b></r>"))
    assert [e.path for e in entries] == ['r.b[1]', 'r.a[1]', 'r.c[1]']


class TestKeyedMatching:

    LEFT = ("<r><item><name>a</name><v>1</v></item>"
            "<item><name>b</name><v>2</v></item></r>")
    RIGHT = ("<r><item><name>b</name><v>3</v></item>"
             "<item><name>a</name><v>1</v></item></r>")

    def test_reordered_items_match_by_key(self):
        entries = diff(_x(self.LEFT), _x(self.RIGHT), DiffOptions(key_fields={'item': 'name'}))
        assert [(e.type, e.path) for e in entries] == [('modified', 'r.item[b].v[1]')]

    def test_without_key_items_match_by_position(self):
        entries = diff(_x(self.LEFT), _x(self.RIGHT))
        assert {e.path for e in entries} >= {'r.item[1].name[1]', 'r.item[2].name[1]'}

    def test_missing_key_falls_back_to_position(self):
        left = "<r><item><v>1</v></item></r>"
        right = "<r><item><v>2</v></item></r>"
        entries = diff(_x(left), _x(right), DiffOptions(key_fields={'item': 'name'}))
        assert [e.path for e in entries] == ['r.item[1].v[1]']

    def test_key_miss_takes_unused_position(self):
        left = "<r><item><name>a</name></item><item><name>b</name></item></r>"
        right = "<r><item><name>b</name></item><item><name>c</name></item></r>"
        entries = diff(_x(left), _x(right), DiffOptions(key_fields={'item': 'name'}))
        assert [(e.type, e.path) for e in entries] == [
            ('modified', 'r.item[a].name[1]'),
            ('modified', 'r.item[b].name[1]'),
        ]

    def test_leftover_right_items(self):
        left = "<r><item><name>a</name></item></r>"
        right = "<r><item><name>a</name></item><item><name>c</name></item></r>"
        entries = diff(_x(left), _x(right), DiffOptions(key_fields={'item': 'name'}))
        assert [(e.type, e.path) for e in entries] == [('only_right', 'r.item[c]')]


class TestIgnoreAndDepth:

    def test_should_ignore_prefixes(self):
        assert should_ignore('opnsense.system[1].hostname[1]', ['system'])
        assert should_ignore('opnsense.system[1]', ['opnsense.system'])
        assert should_ignore('opnsense.system', ['opnsense.system'])
        assert not should_ignore('opnsense.systems[1]', ['system'])

    def test_ignored_subtree_produces_nothing(self):
        left = "<r><system><hostname>a</hostname></system><x>1</x></r>"
        right = "<r><system><hostname>b</hostname></system><x>2</x></r>"
        entries = diff(_x(left), _x(right), DiffOptions(ignore_paths=['system']))
        assert [e.path for e in entries] == ['r.x[1]']

    def test_max_depth_stops_descent(self):
        left = "<r><a><b>1</b></a></r>"
        right = "<r><a><b>2</b></a></r>"
        assert diff(_x(left), _x(right), DiffOptions(max_depth=1)) == []
        assert len(diff(_x(left), _x(right), DiffOptions(max_depth=2))) == 1

    def test_include_identical(self):
        entries = diff(_x("<r><a>1</a><b>1</b></r>"), _x("<r><a>1</a><b>2</b></r>"),
                       DiffOptions(include_identical=True))
        assert Identical('r.a[1]') in entries
        assert Identical('r') not in entries
        assert any(isinstance(e, Modified) and e.path == 'r.b[1]' for e in entries)


class TestFormatters:

    def entries(self):
        return diff(_x("<r><a>1</a><b/></r>"), _x("<q><a>2</a><c/></q>"))

    def test_summary(self):
        assert format_summary(self.entries()) == (
            "identical=0 modified=1 only_left=1 only_right=1 structural=1")
        assert count_by_type([]) == {'identical': 0, 'modified': 0, 'only_left': 0,
                                     'only_right': 0, 'structural': 0}

    def test_text(self):
        lines = format_text(self.entries()).splitlines()
        assert lines[0] == "! r: tag mismatch: left='r' right='q'"
        assert lines[1] == "~ r.a[1]"
        assert lines[2] == "  left:  attributes={}, text='1'"
        assert "- r.b[1]" in lines
        assert "+ r.c[1]" in lines

    def test_json(self):
        data = json.loads(format_json(self.entries()))
        assert [d['type'] for d in data] == ['structural', 'modified', 'only_left', 'only_right']
        assert data[2]['tag'] == 'b'
        assert data[1]['right'] == "attributes={}, text='2'"

    def test_entry_types(self):
        kinds = {type(e) for e in self.entries()}
        assert kinds == {Structural, Modified, OnlyLeft, OnlyRight}
