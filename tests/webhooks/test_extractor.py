"""
表单字段提取测试

提取器是纯函数：载荷 -> 领域数据，不需要数据库
"""
import copy

import pytest

from hireline.core.exceptions import ExtractionError
from hireline.core.loader import get_resource_loader
from hireline.schemas.webhook import TallyWebhookPayload
from hireline.webhooks.extractor import FieldExtractor
from hireline.webhooks.field_maps import FieldMaps, get_field_maps
from tests.payloads import (
    PACKAGE_IDS,
    agreement_payload,
    application_payload,
    field,
    gc_payload,
    sc_payload,
)


@pytest.fixture
def extractor() -> FieldExtractor:
    return FieldExtractor(get_field_maps())


def parse(payload: dict) -> TallyWebhookPayload:
    return TallyWebhookPayload.model_validate(payload)


# ========== 投递表单 ==========

def test_person_data_normalizes_email(extractor: FieldExtractor):
    payload = parse(application_payload(email="  Ada.Lovelace@Example.COM "))
    person = extractor.extract_person_data(payload)
    
    assert person.email == "ada.lovelace@example.com"
    assert person.first_name == "Ada"
    assert person.last_name == "Lovelace"
    assert person.country == "United Kingdom"
    assert person.respondent_id == "resp-1"


def test_application_data_reads_package_and_files(extractor: FieldExtractor):
    payload = parse(application_payload(package=("resume", "videoIntro")))
    data = extractor.extract_application_data(payload)
    
    assert data.position == "Software Developer"
    assert data.submission_id == payload.data.submission_id
    assert data.has_resume is True
    assert data.has_video_intro is True
    assert data.has_academic_bg is False
    assert data.resume_url.endswith("resume.pdf")
    assert data.video_link is None


def test_optional_file_upload_missing_is_none(extractor: FieldExtractor):
    payload = parse(application_payload(with_resume=False))
    data = extractor.extract_application_data(payload)
    
    assert data.has_resume is True
    assert data.resume_url is None


def test_missing_email_raises(extractor: FieldExtractor):
    raw = application_payload()
    raw["data"]["fields"] = [f for f in raw["data"]["fields"] if f["label"] != "Email"]
    
    with pytest.raises(ExtractionError) as exc:
        extractor.extract_person_data(parse(raw))
    assert exc.value.code == 400
    assert exc.value.message == "Email is required but missing from webhook payload"


def test_missing_position_raises(extractor: FieldExtractor):
    raw = application_payload()
    for f in raw["data"]["fields"]:
        if f["label"] == "Position":
            f["value"] = "   "
    
    with pytest.raises(ExtractionError, match="Position is required"):
        extractor.extract_application_data(parse(raw))


def test_package_contents_wrong_shape_raises(extractor: FieldExtractor):
    raw = application_payload()
    for f in raw["data"]["fields"]:
        if f["label"] == "Package Contents":
            f["value"] = "resume"
    
    with pytest.raises(ExtractionError, match="checkbox selection"):
        extractor.extract_application_data(parse(raw))


def test_label_change_falls_back_to_key(extractor: FieldExtractor):
    """表单改版后 label 变化，按 key 前缀仍能找到字段"""
    raw = application_payload()
    for f in raw["data"]["fields"]:
        if f["label"] == "Email":
            f["label"] = "Your email address"
            f["key"] = "question_eaYYNE_1a2b"
    
    person = extractor.extract_person_data(parse(raw))
    assert person.email == "ada@example.com"


def test_checkbox_options_as_objects(extractor: FieldExtractor):
    raw = application_payload(package=())
    for f in raw["data"]["fields"]:
        if f["label"] == "Package Contents":
            f["value"] = [{"id": PACKAGE_IDS["previousExp"], "text": "Previous Experience"}]
    
    data = extractor.extract_application_data(parse(raw))
    assert data.has_previous_exp is True
    assert data.has_resume is False


def test_injected_field_maps_are_used():
    """传入另一版映射表即可适配新表单"""
    tables = copy.deepcopy(get_resource_loader().get_config("field_maps"))
    tables["application"]["fields"]["position"] = {"key": "question_role", "label": "Role"}
    extractor = FieldExtractor(FieldMaps.from_dict(tables))
    
    raw = application_payload()
    raw["data"]["fields"] = [f for f in raw["data"]["fields"] if f["label"] != "Position"]
    raw["data"]["fields"].append(field("question_role", "Role", "Data Analyst"))
    
    assert extractor.extract_application_data(parse(raw)).position == "Data Analyst"


# ========== 测评表单 ==========

def test_gc_score_from_numeric_string(extractor: FieldExtractor):
    data = extractor.extract_gc_assessment_data(parse(gc_payload("person-1", "82")))
    
    assert data.person_id == "person-1"
    assert data.score == 82.0
    assert data.culture_score == 30.0
    assert data.raw_data["subscores"]["digitalScore"] == 20.0


def test_gc_score_not_numeric_raises(extractor: FieldExtractor):
    with pytest.raises(ExtractionError, match="score must be a number"):
        extractor.extract_gc_assessment_data(parse(gc_payload("person-1", "eighty")))


def test_gc_score_missing_raises(extractor: FieldExtractor):
    with pytest.raises(ExtractionError, match="Score is required"):
        extractor.extract_gc_assessment_data(parse(gc_payload("person-1", None)))


def test_sc_without_score_or_application(extractor: FieldExtractor):
    data = extractor.extract_sc_assessment_data(parse(sc_payload()))
    
    assert data.score is None
    assert data.application_id is None
    assert data.respondent_id == "resp-1"
    assert data.specialised_competency_id == "sc-frontend"
    assert len(data.submission_urls) == 1
    assert data.submission_urls[0]["label"] == "Your submission"


def test_sc_with_score(extractor: FieldExtractor):
    data = extractor.extract_sc_assessment_data(parse(sc_payload("app-1", 75)))
    assert data.application_id == "app-1"
    assert data.score == 75.0


# ========== 协议表单 ==========

def test_agreement_data(extractor: FieldExtractor):
    data = extractor.extract_agreement_data(parse(agreement_payload("app-1")))
    
    assert data.application_id == "app-1"
    assert data.legal_first_name == "Ada"
    assert data.legal_last_name == "Lovelace"
    assert data.privacy_policy_accepted is True
    assert data.signature_url.endswith("signature.png")
    assert data.date_of_birth == "1990-12-10"


def test_agreement_requires_legal_name(extractor: FieldExtractor):
    with pytest.raises(ExtractionError, match="Legal last name"):
        extractor.extract_agreement_data(parse(agreement_payload("app-1", last_name="")))
