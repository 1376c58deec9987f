import io

from bibliodesk.opening import (
    BatchOpenOrchestrator,
    OpenConfig,
    OutcomeKind,
    PybtexParsingEngine,
)
from bibliodesk.opening.engine import group_tree_is_valid, read_metadata, split_meta_value

from conftest import RecordingUI

SAMPLE = """% This file was created with JabRef 2.10.
% Encoding: UTF-8

@Article{knuth1984,
  author = {Donald E. Knuth},
  title = {Literate Programming},
  journal = {The Computer Journal},
  year = {1984},
}

@Book{lamport1994,
  author = {Leslie Lamport},
  title = {LaTeX: A Document Preparation System},
  year = {1994},
}

@comment{jabref-meta: groupstree:
0 AllEntriesGroup:;
1 ExplicitGroup:Classics\\;0\\;knuth1984\\;;
}
"""


def test_pybtex_engine_maps_entries_and_metadata():
    result = PybtexParsingEngine().parse(io.StringIO(SAMPLE))

    assert not result.invalid_format
    assert [entry.key for entry in result.entries] == ["knuth1984", "lamport1994"]
    assert result.entry_types == {"article", "book"}
    knuth = result.entries[0]
    assert knuth.get("title") == "Literate Programming"
    assert "Knuth" in knuth.get("author")
    assert "groupstree" in result.metadata.values
    assert result.metadata.group_tree_valid
    assert result.duplicate_keys == []


def test_pybtex_engine_reports_unparseable_input_as_invalid_format():
    result = PybtexParsingEngine().parse(io.StringIO("@article{broken,\n  title = {unterminated\n"))
    assert result.invalid_format


def test_group_tree_validation():
    assert group_tree_is_valid(None)
    assert group_tree_is_valid("0 AllEntriesGroup:;1 ExplicitGroup:A\\;0\\;;2 ExplicitGroup:B\\;0\\;;")
    assert not group_tree_is_valid("1 ExplicitGroup:A\\;0\\;;")
    assert not group_tree_is_valid("0 AllEntriesGroup:;2 ExplicitGroup:A\\;0\\;;")
    assert not group_tree_is_valid("0 AllEntriesGroup:;garbage")


def test_split_meta_value_honours_escapes():
    assert split_meta_value("a;b\\;c;;") == ["a", "b;c"]


def test_read_metadata_flags_broken_group_tree():
    meta = read_metadata("@comment{jabref-meta: groupstree:\n0 AllEntriesGroup:;\nbogus;\n}\n")
    assert not meta.group_tree_valid


def test_open_real_file_through_pipeline(tmp_path):
    path = tmp_path / "refs.bib"
    path.write_text(SAMPLE, encoding="utf-8")
    ui = RecordingUI()
    with BatchOpenOrchestrator(engine=PybtexParsingEngine(), ui=ui, config=OpenConfig()) as orchestrator:
        (outcome,) = orchestrator.open([path])

    assert outcome.kind == OutcomeKind.OPENED
    assert outcome.database.entry_count == 2
    assert outcome.database.encoding == "UTF-8"
    assert outcome.warnings == []


def test_repeated_keys_keep_file_order():
    text = "@misc{a, title={1}}\n@misc{a, title={2}}\n@misc{b, title={3}}\n"
    result = PybtexParsingEngine().parse(io.StringIO(text))

    assert [entry.get("title") for entry in result.entries] == ["1", "2", "3"]
    assert [entry.key for entry in result.entries] == ["a", "a", "b"]
    assert result.duplicate_keys == ["a"]
    assert result.warnings == ["Duplicate BibTeX key: a"]
