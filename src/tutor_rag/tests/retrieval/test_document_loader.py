import json

import pytest

from tutor_rag.common.schemas import Subject
from tutor_rag.retrieval.document_loader import (
    load_curriculum_documents,
    load_curriculum_file,
    parse_curriculum_records,
)


RECORDS = [
    {
        "id": "frac-1",
        "content": "A fraction has a numerator and a denominator.",
        "subject": "mathematics",
        "title": "Fractions",
        "tags": "fractions, basics",
    },
    {
        "id": "rome-1",
        "content": "Rome was founded on seven hills.",
        "metadata": {"subject": "History", "title": "Rome", "source": "pack", "difficulty": "easy"},
    },
]


def test_parse_records_supports_flat_and_nested_metadata():
    docs = parse_curriculum_records(RECORDS)

    assert [d.id for d in docs] == ["frac-1", "rome-1"]
    assert docs[0].metadata.subject is Subject.MATHEMATICS
    assert docs[0].metadata.tags == ("fractions", "basics")
    assert docs[1].metadata.subject is Subject.HISTORY
    assert docs[1].metadata.difficulty == "easy"


@pytest.mark.parametrize(
    "records, message",
    [
        ([{"id": "x", "content": "c", "title": "t"}], "subject"),
        ([{"id": "x", "content": "c", "title": "t", "subject": "ASTROLOGY"}], "Unknown subject"),
        (["not a mapping"], "mapping"),
        ([RECORDS[0], RECORDS[0]], "duplicate"),
    ],
)
def test_parse_records_rejects_bad_input(records, message):
    with pytest.raises(ValueError, match=message):
        parse_curriculum_records(records)


def test_load_json_and_yaml_files(tmp_path):
    json_path = tmp_path / "maths.json"
    json_path.write_text(json.dumps({"documents": [RECORDS[0]]}), encoding="utf-8")
    yaml_path = tmp_path / "history.yaml"
    yaml_path.write_text(
        "- id: rome-1\n"
        "  content: Rome was founded on seven hills.\n"
        "  subject: HISTORY\n"
        "  title: Rome\n",
        encoding="utf-8",
    )

    assert [d.id for d in load_curriculum_file(json_path)] == ["frac-1"]
    assert [d.id for d in load_curriculum_file(yaml_path)] == ["rome-1"]

    # Directory loads are name ordered and skip unrelated files.
    (tmp_path / "notes.txt").write_text("ignored", encoding="utf-8")
    assert [d.id for d in load_curriculum_documents(tmp_path)] == ["rome-1", "frac-1"]


def test_duplicate_ids_across_files(tmp_path):
    for name in ("a.json", "b.json"):
        (tmp_path / name).write_text(json.dumps([RECORDS[0]]), encoding="utf-8")

    with pytest.raises(ValueError, match="duplicate"):
        load_curriculum_documents(tmp_path)


def test_missing_and_unsupported_files(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_curriculum_file(tmp_path / "missing.json")

    bad = tmp_path / "pack.csv"
    bad.write_text("id,content", encoding="utf-8")
    with pytest.raises(ValueError):
        load_curriculum_file(bad)

    scalar = tmp_path / "scalar.json"
    scalar.write_text("42", encoding="utf-8")
    with pytest.raises(ValueError):
        load_curriculum_file(scalar)


def test_sample_pack_loads():
    from pathlib import Path

    sample = Path(__file__).resolve().parents[4] / "data" / "sample_curriculum.json"
    docs = load_curriculum_documents(sample)

    assert len(docs) == 3
    assert len({d.id for d in docs}) == 3
