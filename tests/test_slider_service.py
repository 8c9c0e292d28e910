from datetime import datetime, timezone

import pytest
from sqlalchemy.exc import OperationalError

from pustok.entities import Slider
from pustok.errors import AssetWriteError, SliderNotFound
from pustok.models import ErrorCode, SliderForm
from pustok.service import SliderService

from conftest import jpeg_upload, png_upload, stored_files

FOLDER = "uploads/sliders"


def sale_form(**overrides) -> SliderForm:
    data = {
        "title1": "Sale",
        "title2": "50% Off",
        "description": "Big sale",
        "redirect_url_text": "Shop now",
    }
    data.update(overrides)
    return SliderForm(**data)


def create_slider(service: SliderService, **overrides) -> Slider:
    result = service.create(sale_form(**overrides), png_upload())
    assert result.success, result.errors
    return service.get_by_id(result.entity_id)


def test_create_persists_slider_with_stored_image(slider_service, assets):
    result = slider_service.create(sale_form(), png_upload(size=500 * 1024))

    assert result.success
    assert result.errors == []
    slider = slider_service.get_by_id(result.entity_id)
    assert slider.title1 == "Sale"
    assert slider.is_active is True
    assert slider.image_url and slider.image_url.endswith(".png")
    assert assets.exists(FOLDER, slider.image_url)
    assert slider.created_at is not None
    assert slider.modified_at == slider.created_at


def test_create_rejects_oversized_jpeg_without_writes(slider_service, assets):
    result = slider_service.create(sale_form(), jpeg_upload(size=3 * 1024 * 1024))

    assert not result.success
    assert len(result.errors) == 1
    assert result.errors[0].field == "image_file"
    assert result.errors[0].message == "File size must be less than 2MB"
    assert slider_service.get_all() == []
    assert stored_files(assets, FOLDER) == []


def test_create_requires_an_image(slider_service):
    result = slider_service.create(sale_form(), None)
    assert [(e.field, e.message) for e in result.errors] == [("image_file", "Please provide a file")]
    assert slider_service.get_all() == []


def test_create_reports_asset_write_failure(slider_service, monkeypatch):
    def fail(upload, folder):
        raise AssetWriteError("disk full")

    monkeypatch.setattr(slider_service.assets, "save", fail)
    result = slider_service.create(sale_form(), png_upload())

    assert result.errors[0].code is ErrorCode.UNEXPECTED
    assert "disk full" not in result.errors[0].message
    assert slider_service.get_all() == []


def test_create_removes_asset_when_commit_fails(slider_service, assets, monkeypatch):
    def fail():
        raise OperationalError("INSERT", {}, Exception("db down"))

    monkeypatch.setattr(slider_service.sliders.session, "commit", fail)
    with pytest.raises(OperationalError):
        slider_service.create(sale_form(), png_upload())
    assert stored_files(assets, FOLDER) == []


def test_update_replaces_image_and_removes_old_file(slider_service, assets):
    slider = create_slider(slider_service)
    old_ref = slider.image_url
    old_modified = slider.modified_at

    result = slider_service.update(slider.id, sale_form(title1="Mega sale"), jpeg_upload())

    assert result.success
    assert slider.title1 == "Mega sale"
    assert slider.image_url != old_ref
    assert slider.image_url.endswith(".jpg")
    assert not assets.exists(FOLDER, old_ref)
    assert assets.exists(FOLDER, slider.image_url)
    assert slider.modified_at > old_modified


def test_update_without_image_keeps_asset(slider_service, assets):
    slider = create_slider(slider_service)
    ref = slider.image_url

    result = slider_service.update(slider.id, sale_form(description="Even bigger sale"))

    assert result.success
    assert slider.description == "Even bigger sale"
    assert slider.image_url == ref
    assert assets.exists(FOLDER, ref)


def test_update_with_invalid_image_mutates_nothing(slider_service, assets):
    slider = create_slider(slider_service)
    before = (slider.title1, slider.image_url, slider.modified_at)
    bad = png_upload()
    bad.content_type = "image/gif"

    result = slider_service.update(slider.id, sale_form(title1="Changed"), bad)

    assert [(e.field, e.message) for e in result.errors] == [("image_file", "Content type must be png or jpeg")]
    assert (slider.title1, slider.image_url, slider.modified_at) == before
    assert stored_files(assets, FOLDER) == [before[1]]


def test_update_missing_slider_reports_not_found(slider_service):
    result = slider_service.update(404, sale_form())
    assert result.errors[0].code is ErrorCode.NOT_FOUND
    assert result.errors[0].message == "Slider not found."


def test_update_never_touches_protected_fields(slider_service):
    slider = create_slider(slider_service)
    slider_id, created_at = slider.id, slider.created_at
    payload = SliderForm.model_validate(
        {
            "id": 999,
            "is_active": False,
            "created_at": datetime(1999, 1, 1, tzinfo=timezone.utc),
            "title1": "New",
            "title2": "Titles",
            "description": "Updated",
            "redirect_url_text": "Go",
        }
    )

    assert slider_service.update(slider_id, payload).success
    assert slider.id == slider_id
    assert slider.created_at == created_at
    assert slider.is_active is True
    assert slider_service.get_single(Slider.id == 999) is None


def test_soft_delete_toggles_and_restores(slider_service):
    slider = create_slider(slider_service)

    assert slider_service.soft_delete(slider.id).is_active is False
    assert slider_service.soft_delete(slider.id).is_active is True


def test_soft_delete_missing_slider_raises(slider_service):
    with pytest.raises(SliderNotFound):
        slider_service.soft_delete(12345)


def test_hard_delete_requires_deactivation(slider_service, assets):
    slider = create_slider(slider_service)
    before = (slider.is_active, slider.modified_at, slider.image_url)

    result = slider_service.delete(slider.id)

    assert result.errors[0].code is ErrorCode.POLICY
    assert "deactivated" in result.errors[0].message
    unchanged = slider_service.get_by_id(slider.id)
    assert (unchanged.is_active, unchanged.modified_at, unchanged.image_url) == before
    assert assets.exists(FOLDER, slider.image_url)


def test_hard_delete_removes_row_and_asset(slider_service, assets):
    slider = create_slider(slider_service)
    slider_id, ref = slider.id, slider.image_url
    slider_service.soft_delete(slider_id)

    result = slider_service.delete(slider_id)

    assert result.success
    with pytest.raises(SliderNotFound):
        slider_service.get_by_id(slider_id)
    assert not assets.exists(FOLDER, ref)


def test_hard_delete_missing_slider_raises(slider_service):
    with pytest.raises(SliderNotFound):
        slider_service.delete(77)


def test_queries(slider_service):
    first = create_slider(slider_service, title1="Spring")
    second = create_slider(slider_service, title1="Winter", title2="Clearance")
    slider_service.soft_delete(second.id)

    assert [s.id for s in slider_service.get_all()] == [first.id, second.id]
    assert [s.id for s in slider_service.get_all(Slider.is_active.is_(True))] == [first.id]
    assert slider_service.get_single(Slider.title1 == "Winter").id == second.id
    assert [s.id for s in slider_service.search("clear")] == [second.id]
    assert slider_service.get_single(Slider.title1 == "Autumn") is None


def test_unknown_include_is_rejected(slider_service):
    with pytest.raises(ValueError):
        slider_service.get_all(includes=["images"])


def test_create_rejects_duplicate_titles_ignoring_case(slider_service, assets):
    create_slider(slider_service, title1="Spring", title2="Fresh picks")

    result = slider_service.create(sale_form(title1="SPRING", title2="fresh PICKS"), png_upload())

    assert [(e.field, e.code) for e in result.errors] == [
        ("title1", ErrorCode.VALIDATION),
        ("title2", ErrorCode.VALIDATION),
    ]
    assert len(slider_service.get_all()) == 1
    assert len(stored_files(assets, FOLDER)) == 1


def test_update_checks_titles_against_other_sliders_only(slider_service):
    spring = create_slider(slider_service, title1="Spring", title2="Fresh picks")
    winter = create_slider(slider_service, title1="Winter", title2="Clearance")

    assert slider_service.update(spring.id, sale_form(title1="spring", title2="Fresh picks")).success

    result = slider_service.update(winter.id, sale_form(title1="Winter", title2="FRESH PICKS"))
    assert [e.field for e in result.errors] == ["title2"]
    assert slider_service.get_by_id(winter.id).title2 == "Clearance"


def test_search_matches_wildcard_characters_literally(slider_service):
    spring = create_slider(slider_service, title1="Spring", title2="50% Off")
    create_slider(slider_service, title1="Winter", title2="Clearance")

    assert [s.id for s in slider_service.search("%")] == [spring.id]
    assert [s.id for s in slider_service.search("50%")] == [spring.id]
    assert slider_service.search("_") == []


def test_update_removes_new_asset_when_commit_fails(slider_service, assets, monkeypatch):
    slider = create_slider(slider_service)
    slider_id, old_ref = slider.id, slider.image_url

    def fail():
        raise OperationalError("UPDATE", {}, Exception("db down"))

    monkeypatch.setattr(slider_service.sliders.session, "commit", fail)
    with pytest.raises(OperationalError):
        slider_service.update(slider_id, sale_form(title1="Mega sale"), jpeg_upload())

    assert stored_files(assets, FOLDER) == [old_ref]
    unchanged = slider_service.get_by_id(slider_id)
    assert unchanged.image_url == old_ref
    assert unchanged.title1 == "Sale"


def test_update_reports_asset_write_failure_without_changes(slider_service, assets, monkeypatch):
    slider = create_slider(slider_service)
    before = (slider.title1, slider.image_url, slider.modified_at)

    def fail(upload, folder):
        raise AssetWriteError("disk full")

    monkeypatch.setattr(slider_service.assets, "save", fail)
    result = slider_service.update(slider.id, sale_form(title1="Changed"), jpeg_upload())

    assert result.errors[0].code is ErrorCode.UNEXPECTED
    assert (slider.title1, slider.image_url, slider.modified_at) == before
    assert stored_files(assets, FOLDER) == [before[1]]
