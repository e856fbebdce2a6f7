from __future__ import annotations

import logging

from booru_harvester.storage import DiskStorageService


def test_save_writes_id_and_extension(tmp_path, fake_api, make_post) -> None:
    post = make_post(id=77, file_ext="png", file_url="/data/x.png")
    fake_api.files["/data/x.png"] = b"payload"
    storage = DiskStorageService(fake_api, tmp_path / "out")

    assert storage.save(post)

    target = tmp_path / "out" / "77.png"
    assert target.read_bytes() == b"payload"
    assert not (tmp_path / "out" / "77.png.part").exists()


def test_save_without_file_url_warns(tmp_path, fake_api, make_post, caplog) -> None:
    storage = DiskStorageService(fake_api, tmp_path)

    with caplog.at_level(logging.WARNING, logger="booru_harvester.storage"):
        assert not storage.save(make_post(id=5, file_url=""))

    assert "Saving post failed: 5" in caplog.text
    assert list(tmp_path.iterdir()) == []


def test_save_skips_existing_file(tmp_path, fake_api, make_post) -> None:
    (tmp_path / "8.jpg").write_bytes(b"old")
    post = make_post(id=8, file_ext="jpg", file_url="/data/8.jpg")
    fake_api.files["/data/8.jpg"] = b"new"

    assert not DiskStorageService(fake_api, tmp_path).save(post)
    assert (tmp_path / "8.jpg").read_bytes() == b"old"


def test_download_failure_leaves_no_file(tmp_path, fake_api, make_post, caplog) -> None:
    post = make_post(id=9, file_url="/data/missing.jpg")

    with caplog.at_level(logging.WARNING, logger="booru_harvester.storage"):
        assert not DiskStorageService(fake_api, tmp_path).save(post)

    assert list(tmp_path.iterdir()) == []
    assert "404" in caplog.text


def test_write_failure_is_logged(tmp_path, fake_api, make_post, caplog) -> None:
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("x")
    post = make_post(id=3, file_url="/data/3.jpg")
    fake_api.files["/data/3.jpg"] = b"data"

    with caplog.at_level(logging.WARNING, logger="booru_harvester.storage"):
        assert not DiskStorageService(fake_api, blocker).save(post)

    assert "Saving post failed: 3" in caplog.text
