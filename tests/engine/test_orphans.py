"""Orphan detection tests."""

from __future__ import annotations

from datetime import datetime, timezone

from internal_links.engine.orphans import link_counts, scan_orphans

from .conftest import make_document


def link(slug: str, text: str = "recipe") -> str:
    return f'<a href="/recipes/{slug}" class="c">{text}</a>'


def test_document_without_incoming_links_is_orphan(engine_config):
    documents = [
        make_document("x", "Lonely Soup", slug="lonely-soup"),
        make_document("y", "Popular Stew", slug="popular-stew", intro=f"Make {link('other')} first."),
    ]
    records = {record.document_id: record for record in scan_orphans(documents, engine_config)}

    assert records["x"].is_orphan is True
    assert records["x"].incoming_links_count == 0


def test_link_counts_follow_internal_anchors(engine_config):
    documents = [
        make_document("a", "Apple Pie", slug="apple-pie", intro=f"{link('lemon-tart')} {link('lemon-tart')}"),
        make_document("b", "Lemon Tart", slug="lemon-tart", story=link("missing-recipe")),
        make_document(
            "c",
            "Cheesecake",
            slug="cheesecake",
            instructions=[{"instruction": f"Top with {link('lemon-tart', 'curd')}."}],
        ),
    ]
    counts = link_counts(documents, engine_config)

    assert counts["b"] == {"incoming": 3, "outgoing": 1}
    assert counts["a"] == {"incoming": 0, "outgoing": 2}
    assert counts["c"] == {"incoming": 0, "outgoing": 1}


def test_threshold_decides_orphan_status(engine_config):
    engine_config.raw["orphan_threshold"] = 2
    documents = [
        make_document("a", "Apple Pie", slug="apple-pie", intro=link("lemon-tart")),
        make_document("b", "Lemon Tart", slug="lemon-tart", intro=link("lemon-tart")),
    ]
    records = {record.document_id: record for record in scan_orphans(documents, engine_config)}

    assert records["b"].incoming_links_count == 2
    assert records["b"].is_orphan is False
    assert records["a"].is_orphan is True


def test_records_sorted_by_incoming_with_one_timestamp(engine_config):
    scanned_at = datetime(2024, 5, 1, tzinfo=timezone.utc)
    documents = [
        make_document("a", "Apple Pie", slug="apple-pie", intro=link("lemon-tart")),
        make_document("b", "Lemon Tart", slug="lemon-tart"),
        make_document("c", "Cheesecake", slug="cheesecake"),
    ]
    records = scan_orphans(documents, engine_config, scanned_at=scanned_at)

    assert [record.document_id for record in records] == ["a", "c", "b"]
    assert {record.scanned_at for record in records} == {scanned_at}
    assert records[0].to_dict()["scanned_at"] == "2024-05-01T00:00:00+00:00"


def test_adding_a_link_never_lowers_incoming_count(engine_config):
    before = [
        make_document("a", "Apple Pie", slug="apple-pie", intro=link("lemon-tart")),
        make_document("b", "Lemon Tart", slug="lemon-tart"),
        make_document("c", "Cheesecake", slug="cheesecake"),
    ]
    after = [
        before[0],
        before[1],
        make_document("c", "Cheesecake", slug="cheesecake", story=link("lemon-tart")),
    ]
    counts_before = link_counts(before, engine_config)
    counts_after = link_counts(after, engine_config)

    for document_id in counts_before:
        assert counts_after[document_id]["incoming"] >= counts_before[document_id]["incoming"]
    assert counts_after["b"]["incoming"] == counts_before["b"]["incoming"] + 1
