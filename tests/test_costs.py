import pytest

from juriscan.services.costs import (
    calculate_chat_cost,
    get_analysis_cost,
    get_export_cost,
    get_report_cost,
)


def test_text_message_costs_one_credit():
    assert calculate_chat_cost() == 1
    assert calculate_chat_cost([]) == 1


@pytest.mark.parametrize(
    "attachments, expected",
    [
        (["image"], 2),
        ([{"type": "file"}], 3),
        (["audio"], 2),
        (["image", "file"], 4),
        (["image", "image", "audio"], 4),
        (["video"], 1),
    ],
)
def test_attachments_add_difference_to_base(attachments, expected):
    assert calculate_chat_cost(attachments) == expected


def test_attachment_objects_with_type_attribute():
    class Anexo:
        type = "file"

    assert calculate_chat_cost([Anexo()]) == 3


@pytest.mark.parametrize(
    "tipo, expected",
    [
        ("JURIMETRICS", 5),
        ("jurimetrics", 5),
        ("PREDICTIVE_ANALYSIS", 8),
        ("RELATOR_PROFILE", 6),
        ("EXECUTIVE_SUMMARY", 10),
        ("CUSTOM", 15),
        ("DESCONHECIDO", 15),
        (None, 15),
    ],
)
def test_report_costs(tipo, expected):
    assert get_report_cost(tipo) == expected


def test_export_and_analysis_costs():
    assert get_export_cost("pdf") == 2
    assert get_export_cost("TXT") == 0
    assert get_export_cost("docx") == 2
    assert get_analysis_cost() == 10
    assert get_analysis_cost("outra") == 10
