"""Tests for the on-disk storage buckets."""
import pytest

from vastis import storage
from vastis.config import STORAGE_DIR


class TestUpload:

    def test_stored_under_path_leaf_and_timestamp(self, png_bytes):
        url = storage.upload_file(storage.PROFILE_IMAGES, "doctors/7", "Me.PNG", png_bytes)
        assert url.startswith("http://testserver/storage/profile-images/doctors/7/7-")
        assert url.endswith(".png")

        rel = url.split("profile-images/", 1)[1]
        assert (STORAGE_DIR / storage.PROFILE_IMAGES / rel).read_bytes() == png_bytes

    def test_pdf_allowed_other_types_rejected(self):
        assert storage.upload_file(storage.MEDICAL_RECORDS, "patients/1/lab", "report.pdf", b"%PDF-1.4")
        with pytest.raises(ValueError, match="images and PDF"):
            storage.upload_file(storage.MEDICAL_RECORDS, "patients/1/lab", "notes.txt", b"hello")
        with pytest.raises(ValueError, match="images and PDF"):
            storage.upload_file(storage.MEDICAL_RECORDS, "patients/1/lab", "x.png", b"x", content_type="text/html")

    def test_size_limit(self):
        too_big = b"\0" * (5 * 1024 * 1024 + 1)
        with pytest.raises(ValueError, match="too large"):
            storage.upload_file(storage.GYM_IMAGES, "gyms/1", "big.jpg", too_big)

    def test_unknown_bucket_and_traversal(self, png_bytes):
        with pytest.raises(ValueError, match="Unknown storage bucket"):
            storage.upload_file("avatars", "x", "a.png", png_bytes)
        with pytest.raises(ValueError, match="Invalid storage path"):
            storage.upload_file(storage.GYM_IMAGES, "../etc", "a.png", png_bytes)

    def test_same_millisecond_does_not_overwrite(self, png_bytes, monkeypatch):
        monkeypatch.setattr(storage.time, "time", lambda: 1700000000.0)
        first = storage.upload_file(storage.GYM_IMAGES, "gyms/3", "a.png", png_bytes)
        second = storage.upload_file(storage.GYM_IMAGES, "gyms/3", "b.png", b"other")
        assert first != second
        assert storage.local_path(storage.GYM_IMAGES, first.split("gym-images/", 1)[1]).read_bytes() == png_bytes


class TestDelete:

    def test_delete_by_url_and_by_path(self, png_bytes):
        url = storage.upload_file(storage.GYM_IMAGES, "gyms/3", "front.jpg", png_bytes)
        assert storage.delete_file(storage.GYM_IMAGES, url)
        assert not storage.delete_file(storage.GYM_IMAGES, url)

        url = storage.upload_file(storage.GYM_IMAGES, "gyms/3", "back.jpg", png_bytes)
        rel = url.split("gym-images/", 1)[1]
        assert storage.delete_file(storage.GYM_IMAGES, rel)

    def test_url_of_another_bucket(self, png_bytes):
        url = storage.upload_file(storage.PROFILE_IMAGES, "doctors/1", "me.png", png_bytes)
        with pytest.raises(ValueError, match="not in bucket gym-images"):
            storage.delete_file(storage.GYM_IMAGES, url)
        assert storage.delete_file(storage.PROFILE_IMAGES, url)


class TestStagedUpload:

    def test_kept_when_block_succeeds(self, png_bytes):
        with storage.staged_upload(storage.GYM_IMAGES, "gyms/8", "hall.png", png_bytes) as url:
            pass
        assert storage.local_path(storage.GYM_IMAGES, url.split("gym-images/", 1)[1]).exists()

    def test_removed_when_block_fails(self, png_bytes):
        with pytest.raises(RuntimeError):
            with storage.staged_upload(storage.GYM_IMAGES, "gyms/9", "hall.png", png_bytes) as url:
                raise RuntimeError("row not saved")
        assert not storage.local_path(storage.GYM_IMAGES, url.split("gym-images/", 1)[1]).exists()
