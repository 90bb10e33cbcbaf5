from __future__ import annotations

import json

from noteharvest.cli.load_library import main as load_library_main


def _dir_args(stores) -> list[str]:
    return [
        "--catalog-dir",
        str(stores.catalog_dir),
        "--annotation-dir",
        str(stores.annotation_dir),
        "--sync-db",
        str(stores.sync_db),
        "--cache-dir",
        str(stores.cache_dir),
    ]


def test_load_cli_prints_summary(stores, capsys: object) -> None:
    stores.add_catalog([{"id": "b1", "title": "Moby Dick", "author": "Herman Melville"}])
    stores.add_annotations([{"asset_id": "b1", "quote": "Call me Ishmael.", "modified": 700_000_000}])

    exit_code = load_library_main(_dir_args(stores))
    payload = json.loads(capsys.readouterr().out)

    assert exit_code == 0
    assert payload["processed"] == 1
    assert payload["errors"] == []
    assert payload["books"][0]["title"] == "Moby Dick"
    assert payload["books"][0]["annotation_count"] == 1
    assert (stores.cache_dir / "books_cache.json").exists()


def test_load_cli_streams_one_line_per_result(stores, capsys: object) -> None:
    stores.add_catalog(
        [
            {"id": "b1", "title": "One", "author": "A"},
            {"id": "b2", "title": "Two", "author": "B"},
        ]
    )

    exit_code = load_library_main([*_dir_args(stores), "--stream"])
    lines = [json.loads(line) for line in capsys.readouterr().out.splitlines()]

    assert exit_code == 0
    assert [line["type"] for line in lines] == ["book", "book", "completed"]
    assert lines[-1]["total"] == 2


def test_load_cli_reports_partial_failure(stores, capsys: object) -> None:
    stores.add_catalog([{"id": "b1", "title": "One", "author": "A"}], name="1.sqlite")
    stores.add_corrupt_catalog(name="2.sqlite")

    exit_code = load_library_main([*_dir_args(stores), "--refresh"])
    payload = json.loads(capsys.readouterr().out)

    assert exit_code == 1
    assert [book["id"] for book in payload["books"]] == ["b1"]
    assert len(payload["errors"]) == 1
    assert payload["errors"][0]["fatal"] is False


def test_load_cli_fails_on_missing_store(stores, capsys: object) -> None:
    args = _dir_args(stores)
    args[args.index("--annotation-dir") + 1] = str(stores.root / "missing")

    exit_code = load_library_main(args)
    payload = json.loads(capsys.readouterr().out)

    assert exit_code == 2
    assert payload["books"] == []
    assert payload["errors"][0]["fatal"] is True


def test_load_cli_rejects_invalid_environment(stores, monkeypatch, capsys: object) -> None:
    monkeypatch.setenv("NOTEHARVEST_CHANNEL_SIZE", "0")

    exit_code = load_library_main(_dir_args(stores))

    assert exit_code == 2
    assert capsys.readouterr().out == ""


def test_load_cli_clear_cache_forces_rescan(stores, capsys: object) -> None:
    stores.add_catalog([{"id": "b1", "title": "One", "author": "A"}])
    assert load_library_main(_dir_args(stores)) == 0
    capsys.readouterr()

    stores.add_catalog([{"id": "b2", "title": "Two", "author": "B"}], name="BKLibrary-2.sqlite")
    assert load_library_main([*_dir_args(stores), "--clear-cache"]) == 0
    payload = json.loads(capsys.readouterr().out)

    assert sorted(book["id"] for book in payload["books"]) == ["b1", "b2"]
